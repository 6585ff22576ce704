"""
Error envelope for the discovery admin API.

Every failure leaves the API in one shape:

    {"error": {"code": ..., "message": ..., "field"?: ..., "details"?: ...},
     "request_id": ...}

Services raise the ServiceException subclasses below; views let them
propagate and api_exception_handler renders them.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    # 400
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_VALUE = "INVALID_VALUE"
    # 401 / 403 / 429
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    RATE_LIMITED = "RATE_LIMITED"
    # 404 / 409
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    # 502, LLM discovery service
    DISCOVERY_ERROR = "DISCOVERY_ERROR"
    # 5xx
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


# Error code used when DRF itself rejects a request
DRF_STATUS_CODES = {
    status.HTTP_401_UNAUTHORIZED: ErrorCode.AUTHENTICATION_REQUIRED,
    status.HTTP_403_FORBIDDEN: ErrorCode.PERMISSION_DENIED,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED: ErrorCode.INVALID_VALUE,
    status.HTTP_429_TOO_MANY_REQUESTS: ErrorCode.RATE_LIMITED,
}

PASSTHROUGH_HEADERS = ('Retry-After', 'WWW-Authenticate')


# =============================================================================
# Envelope
# =============================================================================

@dataclass
class ErrorDetail:
    code: ErrorCode
    message: str
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "code": self.code.value if isinstance(self.code, ErrorCode) else self.code,
            "message": self.message,
        }
        if self.field:
            body["field"] = self.field
        if self.details:
            body["details"] = self.details
        return body


@dataclass
class ErrorResponse:
    error: ErrorDetail
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error.to_dict(), "request_id": self.request_id}

    def to_response(self, status_code: int = 400) -> Response:
        return Response(self.to_dict(), status=status_code)


# =============================================================================
# Service exceptions
# =============================================================================

class ServiceException(APIException):
    """
    Base class for domain errors raised by the service layer.

    Args:
        message: Human readable message (defaults to default_detail)
        code: Overrides the class error_code
        field: Request field the error refers to, when there is one
        details: Extra structured context for the client
        status_code: Overrides the class HTTP status
    """

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = ErrorCode.INTERNAL_ERROR
    default_detail = "An error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.default_detail
        self.error_code = code or self.error_code
        self.field = field
        self.error_details = details or {}
        if status_code:
            self.status_code = status_code
        super().__init__(detail=self.message)

    def get_error_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        return ErrorResponse(
            error=ErrorDetail(
                code=self.error_code,
                message=self.message,
                field=self.field,
                details=self.error_details or None,
            ),
            request_id=request_id or str(uuid.uuid4()),
        )


class ValidationError(ServiceException):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = ErrorCode.VALIDATION_ERROR
    default_detail = "Validation failed"


class NotFoundError(ServiceException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = ErrorCode.NOT_FOUND
    default_detail = "Resource not found"


class ConflictError(ServiceException):
    """The resource is in a state that does not allow the request (409)."""
    status_code = status.HTTP_409_CONFLICT
    error_code = ErrorCode.CONFLICT
    default_detail = "Request conflicts with current state"


class PermissionDeniedError(ServiceException):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = ErrorCode.PERMISSION_DENIED
    default_detail = "Permission denied"


class DiscoveryServiceError(ServiceException):
    """
    External discovery service failure.

    Raised inside the executor and recorded on the run; it reaches an HTTP
    caller only from the discovery preview.
    """
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = ErrorCode.DISCOVERY_ERROR
    default_detail = "Vendor discovery service failed"


# =============================================================================
# DRF exception handler
# =============================================================================

def get_request_id(request) -> str:
    return getattr(request, 'request_id', None) or str(uuid.uuid4())


def _envelope(request_id, status_code, code, message, details=None) -> Response:
    return ErrorResponse(
        error=ErrorDetail(code=code, message=message, details=details),
        request_id=request_id,
    ).to_response(status_code)


def _from_drf_response(response, request_id) -> Response:
    if response.status_code >= 500:
        code = ErrorCode.INTERNAL_ERROR
    else:
        code = DRF_STATUS_CODES.get(response.status_code, ErrorCode.VALIDATION_ERROR)

    data = response.data
    details = None
    if isinstance(data, dict) and 'detail' in data:
        message = str(data['detail'])
    elif isinstance(data, dict):
        message, details = "Validation failed", data
    elif isinstance(data, list):
        message = str(data[0]) if data else "Error"
        details = {"errors": data}
    else:
        message = str(data)

    api_response = _envelope(request_id, response.status_code, code, message, details)
    for header in PASSTHROUGH_HEADERS:
        if header in response:
            api_response[header] = response[header]
    return api_response


def api_exception_handler(exc, context):
    """REST_FRAMEWORK['EXCEPTION_HANDLER']: render any exception as the error envelope."""
    request = context.get('request')
    request_id = get_request_id(request) if request else str(uuid.uuid4())

    if isinstance(exc, ServiceException):
        logger.warning(
            f"API Error: {exc.error_code.value}: {exc.message}",
            extra={"error_code": exc.error_code.value, "field": exc.field, "status_code": exc.status_code},
        )
        return exc.get_error_response(request_id).to_response(exc.status_code)

    if isinstance(exc, DjangoValidationError):
        if hasattr(exc, 'message_dict'):
            message, details = "Validation failed", exc.message_dict
        else:
            message = exc.messages[0] if exc.messages else "Validation failed"
            details = {"errors": exc.messages}
        return _envelope(request_id, status.HTTP_400_BAD_REQUEST, ErrorCode.VALIDATION_ERROR, message, details)

    if isinstance(exc, Http404):
        return _envelope(
            request_id, status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, str(exc) or "Resource not found",
        )

    response = drf_exception_handler(exc, context)
    if response is not None:
        return _from_drf_response(response, request_id)

    logger.exception(f"Unhandled exception: {type(exc).__name__}: {exc}")
    return _envelope(
        request_id, status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCode.INTERNAL_ERROR, "An unexpected error occurred",
    )
