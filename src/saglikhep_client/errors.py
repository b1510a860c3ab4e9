# src/saglikhep_client/errors.py

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

NETWORK_ERROR_MESSAGE = "Network connection error. Please check your internet connection."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred."


class FieldError(BaseModel):
    field: str
    message: str


class ApiError(Exception):
    """Base class for every failure surfaced by the client."""


class NetworkFailure(ApiError):
    """No response was received (DNS, timeout, connection refused)."""

    def __init__(self, message: str, method: Optional[str] = None, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.method = method
        self.url = url


class ServerFailure(ApiError):
    """A response arrived with a non-2xx status."""

    def __init__(self, status_code: int, message: Optional[str] = None, payload: Any = None):
        super().__init__(message or f"Server error: {status_code}")
        self.status_code = status_code
        self.message = message
        self.payload = payload


class ValidationFailure(ServerFailure):
    """A ServerFailure carrying field-level messages."""

    def __init__(
        self,
        status_code: int,
        message: Optional[str],
        errors: List[FieldError],
        payload: Any = None,
    ):
        super().__init__(status_code, message, payload)
        self.errors = errors

    @property
    def field_errors(self) -> Dict[str, str]:
        # First message per field wins
        result: Dict[str, str] = {}
        for error in self.errors:
            result.setdefault(error.field, error.message)
        return result


class SessionExpired(ApiError):
    """Raised once token renewal has failed and the session has been torn down."""

    def __init__(self, cause: Exception):
        super().__init__(f"Session expired: {cause}")
        self.cause = cause


def failure_from_response(status_code: int, payload: Any) -> ServerFailure:
    """Builds the right failure type from an error envelope {message, errors?}."""
    message = None
    raw_errors: Any = None
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("detail")
        if not isinstance(message, str):
            message = None
        raw_errors = payload.get("errors")

    errors: List[FieldError] = []
    if isinstance(raw_errors, list):
        for item in raw_errors:
            if isinstance(item, dict) and "field" in item:
                errors.append(FieldError(field=str(item["field"]), message=str(item.get("message", ""))))

    if errors:
        return ValidationFailure(status_code, message, errors, payload)
    return ServerFailure(status_code, message, payload)


def format_api_error(error: BaseException) -> str:
    """
    Converts any failure into one human-readable line for toasts and banners.
    The exception itself is left untouched so callers can still read field errors.
    """
    if isinstance(error, SessionExpired):
        return format_api_error(error.cause)
    if isinstance(error, ServerFailure):
        return error.message or f"Server error: {error.status_code}"
    if isinstance(error, NetworkFailure):
        return NETWORK_ERROR_MESSAGE
    return str(error) or UNEXPECTED_ERROR_MESSAGE
