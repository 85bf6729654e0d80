"""
Error taxonomy for the Orbitport client
"""

from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorCode(str, Enum):
    """Machine-readable failure kinds"""

    # Authentication
    AUTH_FAILED = "AUTH_FAILED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_REFRESH_FAILED = "TOKEN_REFRESH_FAILED"

    # Configuration
    INVALID_CONFIG = "INVALID_CONFIG"

    # Network
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    CONNECTION_FAILED = "CONNECTION_FAILED"

    # API
    API_ERROR = "API_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INVALID_RESPONSE = "INVALID_RESPONSE"

    # Storage
    STORAGE_ERROR = "STORAGE_ERROR"

    # Requests and chain traversal
    INVALID_REQUEST = "INVALID_REQUEST"
    BLOCK_NOT_FOUND = "BLOCK_NOT_FOUND"
    BLOCK_UNREACHABLE = "BLOCK_UNREACHABLE"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"

    UNKNOWN_ERROR = "UNKNOWN_ERROR"


RETRYABLE_CODES = frozenset({
    ErrorCode.NETWORK_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.CONNECTION_FAILED,
    ErrorCode.SERVICE_UNAVAILABLE,
    ErrorCode.RATE_LIMITED,
    ErrorCode.PROVIDER_UNAVAILABLE,
})

AUTH_CODES = frozenset({
    ErrorCode.AUTH_FAILED,
    ErrorCode.INVALID_CREDENTIALS,
    ErrorCode.TOKEN_EXPIRED,
    ErrorCode.TOKEN_REFRESH_FAILED,
})


class OrbitportError(Exception):
    """Raised on every unrecoverable failure above the transport layer"""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
                 status: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.details = details

    @property
    def retryable(self) -> bool:
        return is_retryable_error(self)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "status": self.status}

    def __repr__(self) -> str:
        return f"OrbitportError(code={self.code.value!r}, message={self.message!r})"


def is_retryable_error(error: BaseException) -> bool:
    """Check whether the backoff policy may retry this error"""
    return isinstance(error, OrbitportError) and error.code in RETRYABLE_CODES


def is_auth_error(error: BaseException) -> bool:
    """Check whether the error relates to authentication"""
    return isinstance(error, OrbitportError) and error.code in AUTH_CODES


def error_from_api_response(payload: Any, status: Optional[int] = None) -> OrbitportError:
    """Build an error from a non-success API response body"""
    if not isinstance(payload, dict):
        payload = {}

    code = ErrorCode.API_ERROR
    raw_code = payload.get("error_code")
    if raw_code in ErrorCode.__members__:
        code = ErrorCode(raw_code)
    elif status == 429:
        code = ErrorCode.RATE_LIMITED
    elif status in (502, 503, 504):
        code = ErrorCode.SERVICE_UNAVAILABLE
    elif status in (401, 403):
        code = ErrorCode.AUTH_FAILED

    message = payload.get("error_description") or payload.get("error") or "API Error"
    return OrbitportError(message, code, status, payload.get("details"))


def error_from_network_exception(exc: Exception, status: Optional[int] = None) -> OrbitportError:
    """Translate an httpx transport exception into an OrbitportError"""
    if isinstance(exc, httpx.TimeoutException):
        return OrbitportError("Request timeout", ErrorCode.TIMEOUT, status, {"original_error": str(exc)})
    if isinstance(exc, httpx.ConnectError):
        return OrbitportError("Connection failed", ErrorCode.CONNECTION_FAILED, status,
                              {"original_error": str(exc)})
    return OrbitportError(str(exc) or exc.__class__.__name__, ErrorCode.NETWORK_ERROR, status,
                          {"original_error": str(exc)})


_FRIENDLY_MESSAGES = {
    ErrorCode.AUTH_FAILED: "Authentication failed. Please check your credentials.",
    ErrorCode.INVALID_CREDENTIALS: "Invalid client ID or client secret.",
    ErrorCode.TOKEN_EXPIRED: "Authentication token has expired. Please re-authenticate.",
    ErrorCode.NETWORK_ERROR: "Network error occurred. Please check your connection.",
    ErrorCode.TIMEOUT: "Request timed out. Please try again.",
    ErrorCode.RATE_LIMITED: "Rate limit exceeded. Please wait before making another request.",
    ErrorCode.SERVICE_UNAVAILABLE: "Service is temporarily unavailable. Please try again later.",
    ErrorCode.INVALID_CONFIG: "Invalid client configuration. Please check your settings.",
}


def format_error_message(error: OrbitportError) -> str:
    """User-facing message for an error"""
    return _FRIENDLY_MESSAGES.get(error.code, error.message)
