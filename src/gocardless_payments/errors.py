"""Exception hierarchy for the GoCardless payments client.

Every failure surfaced by the client derives from :class:`GoCardlessError`.
Structured error responses from the API are mapped onto :class:`ApiError`
subclasses by :func:`error_from_response`.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from .models import ApiErrorBody, ErrorDetail

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = (
    "Something went wrong with this request. Please check the response property."
)

#: Error types forced by HTTP status, regardless of the body's ``type``.
STATUS_ERROR_TYPES = {
    401: "authentication_failed",
    403: "insufficient_permissions",
    429: "rate_limit_reached",
}

__all__ = [
    "GoCardlessError",
    "InvalidArgument",
    "NetworkError",
    "Cancelled",
    "ProtocolError",
    "InvalidSignatureError",
    "ApiError",
    "ApiValidationError",
    "ApiUsageError",
    "AuthenticationFailedError",
    "InsufficientPermissionsError",
    "RateLimitReachedError",
    "InvalidStateError",
    "ApiInternalError",
    "error_from_response",
]


class GoCardlessError(Exception):
    """Base class for every error raised by this library."""


class InvalidArgument(GoCardlessError, ValueError):
    """Caller input rejected before any request was sent."""


class NetworkError(GoCardlessError):
    """The request could not be delivered (connection failure or timeout)."""

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts


class Cancelled(GoCardlessError):
    """The caller cancelled the call before it completed."""


class ProtocolError(GoCardlessError):
    """The API returned a body that could not be parsed."""

    def __init__(
        self, message: str, response: Optional[requests.Response] = None
    ) -> None:
        super().__init__(message)
        self.response = response

    @property
    def status_code(self) -> Optional[int]:
        return self.response.status_code if self.response is not None else None


class InvalidSignatureError(GoCardlessError):
    """A webhook body did not match its signature header."""


class ApiError(GoCardlessError):
    """An error response returned by the API.

    Args:
        error: The parsed ``error`` object from the response body.
        response: The raw HTTP response, if available.
    """

    def __init__(
        self, error: ApiErrorBody, response: Optional[requests.Response] = None
    ) -> None:
        super().__init__(error.message or GENERIC_ERROR_MESSAGE)
        self.error = error
        self.response = response

    @property
    def type(self) -> Optional[str]:
        return self.error.type

    @property
    def code(self) -> Optional[int]:
        """HTTP status code reported for the error."""
        return self.error.code

    @property
    def message(self) -> str:
        return str(self)

    @property
    def errors(self) -> List[ErrorDetail]:
        """Per-field or per-reason sub-errors."""
        return self.error.errors

    @property
    def request_id(self) -> Optional[str]:
        """Request ID to quote to GoCardless support."""
        return self.error.request_id

    @property
    def documentation_url(self) -> Optional[str]:
        return self.error.documentation_url

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, type={self.type!r}, message={self.message!r})"


class ApiValidationError(ApiError):
    """The request parameters failed validation (``validation_failed``)."""

    @property
    def field_errors(self) -> Dict[str, List[str]]:
        """Map each invalid field to its messages."""
        result: Dict[str, List[str]] = {}
        for err in self.errors:
            if err.field:
                result.setdefault(err.field, []).append(err.message or "")
        return result


class ApiUsageError(ApiError):
    """The request was malformed or not allowed (``invalid_api_usage``)."""


class AuthenticationFailedError(ApiUsageError):
    """The access token was missing or invalid (HTTP 401)."""


class InsufficientPermissionsError(ApiUsageError):
    """The access token lacks permission for this request (HTTP 403)."""


class RateLimitReachedError(ApiUsageError):
    """Too many requests were made (HTTP 429)."""


class InvalidStateError(ApiUsageError):
    """The resource is in a state that does not allow the action."""

    @property
    def conflicting_resource_id(self) -> Optional[str]:
        """ID of the existing resource for an idempotent creation conflict."""
        if not self.errors:
            return None
        first = self.errors[0]
        if first.reason != "idempotent_creation_conflict":
            return None
        return (first.links or {}).get("conflicting_resource_id")


class ApiInternalError(ApiError):
    """GoCardless failed to process the request (``gocardless`` or 5xx)."""


ERROR_TYPES: Dict[str, type] = {
    "validation_failed": ApiValidationError,
    "invalid_api_usage": ApiUsageError,
    "authentication_failed": AuthenticationFailedError,
    "insufficient_permissions": InsufficientPermissionsError,
    "rate_limit_reached": RateLimitReachedError,
    "invalid_state": InvalidStateError,
    "gocardless": ApiInternalError,
}


def _class_for_status(status_code: int) -> type:
    if status_code >= 500:
        return ApiInternalError
    if status_code == 422:
        return ApiValidationError
    return ApiUsageError


def error_from_response(response: requests.Response) -> GoCardlessError:
    """Map a non-2xx response onto a typed exception.

    Bodies that cannot be parsed become :class:`ApiInternalError` for 5xx
    statuses (HTML error pages from proxies) and :class:`ProtocolError`
    otherwise.
    """
    status_code = response.status_code
    try:
        payload: Any = response.json()
        error = ApiErrorBody.model_validate(payload["error"])
    except (ValueError, KeyError, TypeError, ValidationError):
        if status_code >= 500:
            logger.debug("Unparseable %d error body, treating as internal", status_code)
            return ApiInternalError(
                ApiErrorBody(
                    type="gocardless", code=status_code, message=GENERIC_ERROR_MESSAGE
                ),
                response,
            )
        return ProtocolError(
            f"Could not parse error response (HTTP {status_code})", response
        )

    if error.code is None:
        error.code = status_code
    if status_code in STATUS_ERROR_TYPES:
        error.type = STATUS_ERROR_TYPES[status_code]

    error_class = ERROR_TYPES.get(error.type or "")
    if error_class is None:
        error_class = _class_for_status(status_code)
    return error_class(error, response)
