"""
Failure kinds raised by the billing workflow.

Each kind carries a stable machine code and the HTTP status the API answers
with. The API renders them as:

    {"success": false, "error": {"code", "message", "fields"?}, "request_id"}

NotificationError never fails a request; the workflow downgrades it to a
``warning`` on an otherwise successful response.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    FIELD_REQUIRED = "FIELD_REQUIRED"
    FIELD_INVALID = "FIELD_INVALID"
    FIELD_OUT_OF_RANGE = "FIELD_OUT_OF_RANGE"

    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
    RECONCILIATION_ERROR = "RECONCILIATION_ERROR"

    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass
class FieldError:
    field: str
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "code": self.code, "message": self.message}


def error_body(code: str, message: str, request_id: str, fields: Optional[List[FieldError]] = None) -> Dict[str, Any]:
    """Build the error envelope shared by workflow errors and DRF exceptions."""
    error: Dict[str, Any] = {"code": code, "message": message}
    if fields:
        error["fields"] = [f.to_dict() for f in fields]
    return {"success": False, "error": error, "request_id": request_id}


class BillingError(Exception):
    code = ErrorCode.INTERNAL_ERROR
    status = 500
    default_message = "Unexpected billing failure"

    def __init__(self, message: Optional[str] = None, fields: Optional[List[FieldError]] = None):
        self.message = message or self.default_message
        self.fields = fields
        super().__init__(self.message)

    def to_body(self, request_id: str) -> Dict[str, Any]:
        return error_body(self.code.value, self.message, request_id, self.fields)

    def to_warning(self) -> Dict[str, str]:
        return {"code": self.code.value, "message": self.message}


class ValidationError(BillingError):
    code = ErrorCode.VALIDATION_ERROR
    status = 400
    default_message = "Validation failed"

    @classmethod
    def from_dict(cls, errors: Dict[str, Any], message: Optional[str] = None) -> "ValidationError":
        return cls(message, fields=format_validation_errors(errors))


class AuthorizationError(BillingError):
    """The entity exists but belongs to another tenant."""
    code = ErrorCode.PERMISSION_DENIED
    status = 403
    default_message = "You do not have permission to access this resource"


class NotFoundError(BillingError):
    code = ErrorCode.RESOURCE_NOT_FOUND
    status = 404
    default_message = "Resource not found"


class ConfigurationError(BillingError):
    """Credentials are missing or malformed for the acting tenant."""
    code = ErrorCode.CONFIGURATION_ERROR
    status = 422
    default_message = "Payment gateway is not configured"


class GatewayError(BillingError):
    code = ErrorCode.GATEWAY_ERROR
    status = 502
    default_message = "Payment provider request failed"

    def __init__(self, message: Optional[str] = None, provider_status: Optional[int] = None):
        self.provider_status = provider_status
        super().__init__(message)


class NotificationError(BillingError):
    code = ErrorCode.NOTIFICATION_FAILED
    status = 200
    default_message = "Invoice email could not be sent"


class ReconciliationError(BillingError):
    """A webhook delivery that cannot be verified or parsed."""
    code = ErrorCode.RECONCILIATION_ERROR
    status = 400
    default_message = "Webhook payload rejected"


def format_validation_errors(errors: Dict[str, Any], prefix: str = "") -> List[FieldError]:
    """Flatten ``{"items": {"0": {"quantity": [...]}}}`` into dotted field errors."""
    field_errors = []

    for name, value in errors.items():
        path = f"{prefix}{name}"
        if isinstance(value, dict):
            field_errors.extend(format_validation_errors(value, f"{path}."))
            continue
        for message in value if isinstance(value, list) else [value]:
            field_errors.append(FieldError(path, _code_for_message(str(message)), str(message)))

    return field_errors


def _code_for_message(message: str) -> str:
    lowered = message.lower()
    if "required" in lowered:
        return ErrorCode.FIELD_REQUIRED.value
    if "greater than" in lowered or "negative" in lowered:
        return ErrorCode.FIELD_OUT_OF_RANGE.value
    return ErrorCode.FIELD_INVALID.value
