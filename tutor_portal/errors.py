"""
Error types raised by the portal's service layer.

Three kinds of failure reach callers:
- TransportError: the backend could not be reached or did not answer with JSON.
- ApiError: the backend answered with ``success: false``. The verbatim message is kept
  for display, and ``code`` carries a structured ErrorCode that callers switch on.
- Token expiry never reaches callers directly; the API client refreshes and retries
  once, and only re-raises if that fails.

Role mismatches are not errors at all, they are decided by the route guard.
"""
import enum
from typing import Any, Optional


class ErrorCode(str, enum.Enum):
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    SESSION_NOT_CONFIRMED = "SESSION_NOT_CONFIRMED"
    NOT_SESSION_TUTOR = "NOT_SESSION_TUTOR"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    SESSION_FULL = "SESSION_FULL"
    SERVER_ERROR = "SERVER_ERROR"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_response(cls, status_code: int, payload: Optional[dict]) -> "ErrorCode":
        """
        Derive the structured code of a failed response.

        An explicit ``code`` field sent by the backend always wins. The legacy backend
        only signals token expiry through a 401 whose message mentions "expired", so
        that one case is recognised here and nowhere else.
        """
        payload = payload or {}
        explicit = payload.get("code")
        if explicit:
            try:
                return cls(str(explicit).upper())
            except ValueError:
                pass

        message = str(payload.get("message") or "")
        if status_code == 401:
            if "expired" in message.lower():
                return cls.TOKEN_EXPIRED
            return cls.UNAUTHENTICATED

        return _STATUS_CODES.get(status_code, cls.SERVER_ERROR if status_code >= 500 else cls.UNKNOWN)


_STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMITED,
}


class PortalError(Exception):
    """Base class for every error raised by the portal."""


class TransportError(PortalError):
    """The request never produced a usable response (connection refused, bad JSON...)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ApiError(PortalError):
    """The backend answered with ``success: false``."""

    def __init__(self, status_code: int, message: str, code: ErrorCode = ErrorCode.UNKNOWN, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.payload = payload

    @classmethod
    def from_response(cls, status_code: int, payload: Optional[dict]) -> "ApiError":
        payload = payload if isinstance(payload, dict) else {}
        message = payload.get("message") or "API call failed"
        return cls(status_code, message, ErrorCode.from_response(status_code, payload), payload)

    def __repr__(self):
        return f"<ApiError(status_code={self.status_code}, code={self.code.value}, message={self.message!r})>"
