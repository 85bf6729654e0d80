"""
Validation utilities for configuration and access tokens
"""

import base64
import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .errors import ErrorCode, OrbitportError
from .settings import Settings


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def is_valid_url(url: str) -> bool:
    if not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_config(settings: Settings, require_credentials: bool = False) -> ValidationResult:
    """Validate a Settings instance"""
    errors = []

    if require_credentials:
        if not settings.client_id or not settings.client_id.strip():
            errors.append("client_id is required")
        if not settings.client_secret or not settings.client_secret.strip():
            errors.append("client_secret is required")

    for name in ("auth_url", "api_url", "ipfs_gateway"):
        if not is_valid_url(getattr(settings, name)):
            errors.append(f"{name} must be a valid URL")

    if settings.ipfs_api_url and not is_valid_url(settings.ipfs_api_url):
        errors.append("ipfs_api_url must be a valid URL")

    if settings.timeout_ms <= 0:
        errors.append("timeout_ms must be a positive number")
    if settings.retry_attempts < 0:
        errors.append("retry_attempts must be a non-negative number")
    if settings.retry_delay_ms <= 0:
        errors.append("retry_delay_ms must be a positive number")

    return ValidationResult(valid=not errors, errors=errors)


def sanitize_config(settings: Settings, require_credentials: bool = False) -> Settings:
    """Return settings with trimmed credentials, or raise INVALID_CONFIG"""
    result = validate_config(settings, require_credentials)
    if not result.valid:
        raise OrbitportError(f"Invalid configuration: {', '.join(result.errors)}",
                             ErrorCode.INVALID_CONFIG, details=result.errors)

    return settings.model_copy(update={
        "client_id": settings.client_id.strip() if settings.client_id else None,
        "client_secret": settings.client_secret.strip() if settings.client_secret else None,
    })


def _decode_segment(segment: str) -> Dict[str, Any]:
    padded = segment + "=" * (-len(segment) % 4)
    decoded = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    if not isinstance(decoded, dict):
        raise ValueError("JWT segment is not an object")
    return decoded


def decode_jwt_payload(token: str) -> Optional[Dict[str, Any]]:
    """Payload claims of a structurally valid JWT, or None"""
    if not isinstance(token, str):
        return None

    parts = token.split(".")
    if len(parts) != 3:
        return None

    try:
        _decode_segment(parts[0])
        return _decode_segment(parts[1])
    except (ValueError, UnicodeError):
        return None


def is_valid_jwt(token: str) -> bool:
    return decode_jwt_payload(token) is not None


def is_token_expired(token: str, buffer_seconds: int = 60) -> bool:
    """True when the token is malformed, lacks exp, or expires within the buffer"""
    payload = decode_jwt_payload(token)
    if payload is None:
        return True

    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return True

    return exp <= time.time() + buffer_seconds
