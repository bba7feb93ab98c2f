"""
DRF exception handler.

Workflow errors and DRF's own exceptions leave the API in the same error
envelope (see ``billing.errors.error_body``).
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from django.http import Http404
from rest_framework import exceptions as drf
from rest_framework.response import Response
from rest_framework.settings import api_settings
from rest_framework.views import exception_handler

from billing.errors import BillingError, ErrorCode, FieldError, error_body

logger = logging.getLogger(__name__)

DRF_FIELD_CODES = {
    "required": ErrorCode.FIELD_REQUIRED,
    "blank": ErrorCode.FIELD_REQUIRED,
    "null": ErrorCode.FIELD_REQUIRED,
    "empty": ErrorCode.FIELD_REQUIRED,
    "max_value": ErrorCode.FIELD_OUT_OF_RANGE,
    "min_value": ErrorCode.FIELD_OUT_OF_RANGE,
    "does_not_exist": ErrorCode.RESOURCE_NOT_FOUND,
}


def custom_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    request = context.get("request")
    request_id = getattr(request, "request_id", None) or uuid.uuid4().hex

    if isinstance(exc, BillingError):
        log = logger.error if exc.status >= 500 else logger.info
        log(f"{exc.code.value}: {exc.message}")
        return Response(exc.to_body(request_id), status=exc.status)

    response = exception_handler(exc, context)
    if response is None:
        return None

    code, message, fields = _describe(exc)
    headers = {"Retry-After": response["Retry-After"]} if response.has_header("Retry-After") else None
    return Response(
        error_body(code.value, message, request_id, fields),
        status=response.status_code,
        headers=headers,
    )


def _describe(exc: Exception) -> Tuple[ErrorCode, str, Optional[List[FieldError]]]:
    if isinstance(exc, drf.NotAuthenticated):
        return ErrorCode.AUTHENTICATION_REQUIRED, "Authentication required.", None
    if isinstance(exc, drf.AuthenticationFailed):
        return ErrorCode.AUTHENTICATION_FAILED, str(exc.detail), None
    if isinstance(exc, drf.PermissionDenied):
        return ErrorCode.PERMISSION_DENIED, str(exc.detail), None
    if isinstance(exc, (drf.NotFound, Http404)):
        return ErrorCode.RESOURCE_NOT_FOUND, "Resource not found.", None
    if isinstance(exc, drf.Throttled):
        if exc.wait:
            return ErrorCode.RATE_LIMITED, f"Too many requests. Retry in {int(exc.wait)} seconds.", None
        return ErrorCode.RATE_LIMITED, "Too many requests.", None
    if isinstance(exc, drf.ValidationError):
        return ErrorCode.VALIDATION_ERROR, "Validation failed.", _field_errors(exc.detail)
    if isinstance(exc, drf.APIException):
        return ErrorCode.INTERNAL_ERROR, str(exc.detail), None
    return ErrorCode.INTERNAL_ERROR, "An unexpected error occurred.", None


def _field_errors(detail: Any, path: str = "") -> List[FieldError]:
    """Walk DRF's nested error detail (dicts for fields, lists for items) into dotted paths."""
    if isinstance(detail, dict):
        found = []
        for name, nested in detail.items():
            if name == api_settings.NON_FIELD_ERRORS_KEY:
                found.extend(_field_errors(nested, path))
            else:
                found.extend(_field_errors(nested, f"{path}.{name}" if path else str(name)))
        return found

    if isinstance(detail, list):
        found = []
        for index, nested in enumerate(detail):
            if isinstance(nested, (dict, list)):
                found.extend(_field_errors(nested, f"{path or '__all__'}.{index}"))
            else:
                found.extend(_field_errors(nested, path))
        return found

    code = DRF_FIELD_CODES.get(getattr(detail, "code", ""), ErrorCode.FIELD_INVALID)
    return [FieldError(path or "__all__", code.value, str(detail))]
