"""
Transport Fetcher - single bounded-timeout retrievals against one named source
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

from .models import TransportResult
from .settings import BeaconDefaults

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {"Cache-Control": "no-cache"}


class TransportFailure(Exception):
    """Raised inside a retrieval; always converted into a TransportResult error"""


class TransportFetcher:
    """Retrieves raw beacon bodies through the IPFS gateway or the IPFS HTTP API"""

    def __init__(self, defaults: BeaconDefaults, client: Optional[httpx.AsyncClient] = None):
        self.defaults = defaults
        self.client = client or httpx.AsyncClient()
        self._owns_client = client is None

    @property
    def gateway_label(self) -> str:
        return f"gateway:{self.defaults.gateway_base_url}"

    @property
    def api_label(self) -> str:
        return f"api:{self.defaults.api_base_url}"

    async def fetch(self, source: str, request: Callable[[], Awaitable[str]],
                    timeout_ms: Optional[int] = None) -> TransportResult:
        """Run one retrieval under a timeout; never raises"""
        timeout_ms = timeout_ms or self.defaults.timeout_ms

        try:
            text = await asyncio.wait_for(request(), timeout=timeout_ms / 1000.0)
            return TransportResult(source=source, text=text)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning(f"⏱️ {source} timed out after {timeout_ms}ms")
            return TransportResult(source=source, error=f"{source} timed out after {timeout_ms}ms")
        except Exception as e:
            logger.debug(f"{source} retrieval failed: {e}")
            return TransportResult(source=source, error=str(e) or e.__class__.__name__)

    async def fetch_gateway(self, path: str, timeout_ms: Optional[int] = None) -> TransportResult:
        """Direct content fetch at <gateway><path>"""
        return await self.fetch(self.gateway_label, lambda: self._read_via_gateway(path, timeout_ms), timeout_ms)

    async def fetch_api(self, path: str, timeout_ms: Optional[int] = None) -> TransportResult:
        """Resolve (for /ipns/ paths) then cat through the IPFS HTTP API"""
        if not self.defaults.api_base_url:
            return TransportResult(source=self.api_label, error="IPFS API URL not configured")
        return await self.fetch(self.api_label, lambda: self._read_via_api(path, timeout_ms), timeout_ms)

    async def _read_via_gateway(self, path: str, timeout_ms: Optional[int]) -> str:
        gateway = self.defaults.gateway_base_url
        url = f"{gateway}{path}"
        logger.debug(f"Reading from gateway: {url}")

        response = await self.client.get(url, headers=NO_CACHE_HEADERS, timeout=self._seconds(timeout_ms))
        if not response.is_success:
            raise TransportFailure(f"Gateway {gateway} returned {response.status_code}")
        return response.text

    async def _read_via_api(self, path: str, timeout_ms: Optional[int]) -> str:
        api = self.defaults.api_base_url
        timeout = self._seconds(timeout_ms)
        logger.debug(f"Reading from API {api}: {path}")

        effective = path
        if path.startswith("/ipns/"):
            response = await self.client.post(f"{api}/api/v0/name/resolve", params={"arg": path},
                                              headers=NO_CACHE_HEADERS, timeout=timeout)
            if not response.is_success:
                raise TransportFailure(f"API resolve failed: {response.status_code}")

            resolved = response.json()
            if not isinstance(resolved, dict) or not resolved.get("Path"):
                raise TransportFailure("API resolve failed: no path returned")
            effective = str(resolved["Path"]).strip()

        response = await self.client.post(f"{api}/api/v0/cat", params={"arg": effective},
                                          headers=NO_CACHE_HEADERS, timeout=timeout)
        if not response.is_success:
            raise TransportFailure(f"API cat failed: {response.status_code}")
        return response.text

    def _seconds(self, timeout_ms: Optional[int]) -> float:
        return (timeout_ms or self.defaults.timeout_ms) / 1000.0

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()
