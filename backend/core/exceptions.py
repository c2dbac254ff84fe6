import logging

from django.core.exceptions import PermissionDenied
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for errors raised by booking and payment services."""

    code = "error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be processed."

    def __init__(self, message: str | None = None, *, details: dict | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(DomainError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input."


class NotFoundError(DomainError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found."


class StateConflictError(DomainError):
    code = "state_conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "The resource is not in a state that allows this action."


class PolicyViolationError(DomainError):
    code = "policy_violation"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "The action is not allowed by the booking policy."


class ExternalDependencyError(DomainError):
    code = "external_dependency_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "An upstream service is unavailable."


def error_payload(code: str, message: str, details=None) -> dict:
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
    }


def _drf_code(exc: drf_exceptions.APIException) -> str:
    if isinstance(exc, drf_exceptions.ValidationError):
        return ValidationError.code
    if isinstance(exc, drf_exceptions.NotFound):
        return NotFoundError.code
    codes = exc.get_codes()
    if isinstance(codes, str):
        return codes
    return "error"


def envelope_exception_handler(exc, context):
    """
    Render every API error as ``{"success": false, "error": {...}}``.

    Service-level ``DomainError`` subclasses map to their own status code; DRF and
    Django exceptions keep the status code DRF would have chosen.
    """

    if isinstance(exc, DomainError):
        set_rollback()
        return Response(
            error_payload(exc.code, exc.message, exc.details),
            status=exc.status_code,
        )

    if isinstance(exc, Http404):
        exc = drf_exceptions.NotFound()
    elif isinstance(exc, PermissionDenied):
        exc = drf_exceptions.PermissionDenied()

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, drf_exceptions.ValidationError):
        message = "Invalid input."
        details = response.data
    else:
        data = response.data if isinstance(response.data, dict) else {}
        message = str(data.get("detail", "Request could not be processed."))
        details = {}

    response.data = error_payload(_drf_code(exc), message, details)
    return response
