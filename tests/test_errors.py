from rest_framework.exceptions import ErrorDetail

from billing.api.exceptions import _field_errors
from billing.errors import (
    ConfigurationError,
    ErrorCode,
    GatewayError,
    NotificationError,
    ValidationError,
    format_validation_errors,
)


class TestFormatValidationErrors:
    def test_nested_item_errors_get_dotted_paths(self):
        fields = format_validation_errors({"items": {"1": {"quantity": ["Quantity must be greater than 0"]}}})

        assert [(f.field, f.code) for f in fields] == [("items.1.quantity", ErrorCode.FIELD_OUT_OF_RANGE.value)]

    def test_plain_string_is_accepted(self):
        fields = format_validation_errors({"customer_id": "This field is required."})
        assert fields[0].code == ErrorCode.FIELD_REQUIRED.value


class TestBillingErrors:
    def test_body_envelope(self):
        error = ValidationError.from_dict({"due_date": ["Invalid date"]})

        body = error.to_body("req-1")

        assert body == {
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Validation failed",
                "fields": [{"field": "due_date", "code": "FIELD_INVALID", "message": "Invalid date"}],
            },
            "request_id": "req-1",
        }

    def test_statuses(self):
        assert ConfigurationError().status == 422
        assert GatewayError("down", provider_status=503).status == 502

    def test_notification_warning(self):
        assert NotificationError("bounced").to_warning() == {"code": "NOTIFICATION_FAILED", "message": "bounced"}


class TestDrfFieldErrors:
    def test_list_level_error_is_reported_on_the_list_field(self):
        detail = {"items": {"non_field_errors": [ErrorDetail("This list may not be empty.", code="empty")]}}

        fields = _field_errors(detail)

        assert [(f.field, f.code) for f in fields] == [("items", ErrorCode.FIELD_REQUIRED.value)]

    def test_top_level_non_field_error(self):
        fields = _field_errors({"non_field_errors": [ErrorDetail("Bad combination.", code="invalid")]})
        assert [(f.field, f.code) for f in fields] == [("__all__", ErrorCode.FIELD_INVALID.value)]

    def test_item_object_error_keeps_its_index(self):
        detail = {"items": [{}, {"non_field_errors": [ErrorDetail("Invalid data.", code="invalid")]}]}
        assert [f.field for f in _field_errors(detail)] == ["items.1"]
