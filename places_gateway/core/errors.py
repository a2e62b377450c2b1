# places_gateway/core/errors.py
"""
Error taxonomy for the places gateway.

Configuration errors abort startup. Errors derived from APIError are raised
at the request boundary and rendered as ``{error, message, code, details?}``
JSON bodies. Registration failures never leave the registration service.
"""
from typing import Any, Dict, Optional

from starlette.responses import JSONResponse


class ConfigurationError(Exception):
    """Fatal, startup-only: the service must not serve traffic."""


class APIError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.retry_after = retry_after
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.error,
            "message": self.message,
            "code": self.status_code,
        }
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(APIError):
    """Malformed user input. Always recoverable by the caller."""

    status_code = 400
    error = "Invalid Request"


class PaymentRejected(APIError):
    """
    A payment proof was presented but cannot be accepted.

    400 when the proof itself is malformed or does not match the challenge,
    402 when it is well formed but the facilitator refused it.
    """

    status_code = 400
    error = "Payment Rejected"


class UpstreamUnavailable(APIError):
    """The search provider or the facilitator could not be reached."""

    status_code = 503
    error = "Service Unavailable"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, retry_after: int = 30):
        super().__init__(message, details=details, retry_after=retry_after)


class FacilitatorUnavailable(UpstreamUnavailable):
    """The settlement facilitator was unreachable or answered garbage."""


class RegistrationFailure(Exception):
    """Logged by the registration service only, never surfaced to callers."""


def api_error_response(exc: APIError, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    """Render an APIError as a JSON response, adding Retry-After when known."""
    response_headers = dict(headers or {})
    if exc.retry_after is not None:
        response_headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=response_headers,
    )
