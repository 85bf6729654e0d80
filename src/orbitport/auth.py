"""
Authentication service - OAuth client-credentials tokens for the cTRNG API
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from .errors import ErrorCode, OrbitportError, error_from_api_response, error_from_network_exception
from .monitors import emit_event
from .retry import RETRY_STRATEGIES, with_retry
from .settings import Settings
from .storage import TokenStorage
from .validation import decode_jwt_payload, is_token_expired

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME_S = 3600


class TokenData(BaseModel):
    access_token: str
    expires_at: float
    token_type: str = "Bearer"


class AuthService:
    """Obtains, caches and refreshes bearer tokens"""

    def __init__(self, settings: Settings, storage: TokenStorage,
                 event_handler=None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.storage = storage
        self.event_handler = event_handler
        self.client = client or httpx.AsyncClient()
        self._lock = asyncio.Lock()

    async def get_valid_token(self) -> Optional[str]:
        """Return a stored token or request a fresh one; concurrent callers share one refresh"""
        async with self._lock:
            return await self._get_valid_token()

    async def _get_valid_token(self) -> Optional[str]:
        try:
            existing = await self.storage.get()
            if existing and not is_token_expired(existing):
                logger.debug("Using existing valid token")
                return existing

            logger.debug("Token expired or not found, requesting new token")
            token_data = await self._request_new_token()

            await self.storage.set(token_data.access_token, token_data.expires_at)
            emit_event(self.event_handler, "token_refresh", {"expires_at": token_data.expires_at})
            return token_data.access_token

        except OrbitportError as e:
            logger.error(f"Token retrieval failed: {e.message}")
            await self.storage.clear()
            raise

    async def _request_new_token(self) -> TokenData:
        if not self.settings.credentials_present:
            raise OrbitportError("Client credentials are not configured", ErrorCode.INVALID_CREDENTIALS)

        auth_url = f"{self.settings.auth_url.rstrip('/')}/oauth/token"
        body = {
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "audience": f"{self.settings.api_url.rstrip('/')}/api",
            "grant_type": "client_credentials",
        }
        logger.debug(f"Requesting token from: {auth_url}")

        async def post() -> httpx.Response:
            try:
                return await self.client.post(auth_url, json=body,
                                              timeout=self.settings.timeout_ms / 1000.0)
            except httpx.HTTPError as e:
                raise error_from_network_exception(e) from e

        def on_retry(error: OrbitportError, attempt: int):
            logger.warning(f"Token request attempt {attempt} failed: {error.message}")

        response = await with_retry(post, RETRY_STRATEGIES["standard"], on_retry)

        if not response.is_success:
            try:
                payload = response.json()
            except ValueError:
                payload = {"error": "Unknown error", "error_description": "Failed to parse error response"}
            raise error_from_api_response(payload, response.status_code)

        try:
            token_response = response.json()
        except ValueError as e:
            raise OrbitportError("Invalid token response: body is not JSON",
                                 ErrorCode.INVALID_RESPONSE) from e

        if not isinstance(token_response, dict) or not token_response.get("access_token"):
            raise OrbitportError("Invalid token response: missing access_token", ErrorCode.INVALID_RESPONSE)

        expires_in = token_response.get("expires_in") or DEFAULT_TOKEN_LIFETIME_S
        return TokenData(
            access_token=token_response["access_token"],
            expires_at=time.time() + float(expires_in),
            token_type=token_response.get("token_type") or "Bearer",
        )

    async def clear_token(self):
        await self.storage.clear()
        emit_event(self.event_handler, "token_refresh", {"action": "cleared"})

    async def is_token_valid(self) -> bool:
        token = await self.storage.get()
        return token is not None and not is_token_expired(token)

    async def get_token_info(self) -> Dict[str, Any]:
        """Token validity and expiry without refreshing"""
        token = await self.storage.get()
        if not token or is_token_expired(token):
            return {"valid": False}

        payload = decode_jwt_payload(token) or {}
        return {"valid": True, "expires_at": payload.get("exp")}
