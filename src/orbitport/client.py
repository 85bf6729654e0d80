"""
Orbitport client - wires the token, beacon and cTRNG services together
"""

import logging
from typing import Any, Dict, Iterable, Optional, Union

import httpx

from .auth import AuthService
from .beacon_resolver import BeaconResolver
from .chain_traversal import ChainTraversal
from .ctrng import CTRNGService
from .models import LATEST_BLOCK, BeaconRecord, BeaconResult, RandomSelection, ServiceResult
from .secure_config import SecureConfig
from .settings import BeaconDefaults, Settings
from .storage import TokenStorage, create_default_storage
from .transport import TransportFetcher
from .validation import sanitize_config

logger = logging.getLogger(__name__)


def load_settings(secure_config: Optional[SecureConfig] = None) -> Settings:
    """Settings from the environment after .env discovery, with placeholders dropped"""
    secure_config = secure_config or SecureConfig()
    credentials = secure_config.get_credentials()
    return Settings().model_copy(update={
        "client_id": credentials[0] if credentials else None,
        "client_secret": credentials[1] if credentials else None,
    })


class OrbitportClient:
    """
    Entry point for obtaining cosmic random values.

    Example:
        async with OrbitportClient() as client:
            result = await client.random({"src": "ipfs", "index": 3})
            print(result.data.data)
    """

    def __init__(self, settings: Optional[Settings] = None,
                 storage: Optional[TokenStorage] = None,
                 event_handler=None,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.settings = sanitize_config(settings or load_settings())
        self.defaults = BeaconDefaults.from_settings(self.settings)
        self.event_handler = event_handler

        self.http_client = http_client or httpx.AsyncClient()
        self._owns_http_client = http_client is None

        self.storage = storage or create_default_storage(self.settings)
        self.auth = AuthService(self.settings, self.storage, event_handler, self.http_client)
        self.fetcher = TransportFetcher(self.defaults, self.http_client)
        self.resolver = BeaconResolver(self.fetcher, self.defaults, event_handler)
        self.traversal = ChainTraversal(self.resolver)
        self.ctrng = CTRNGService(
            self.settings,
            self.defaults,
            self.traversal,
            self.auth.get_valid_token,
            self.http_client,
            event_handler,
        )

        logger.info(f"Orbitport client initialized: {self.get_config()}")

    async def random(self, request: Any = None, options: Any = None) -> ServiceResult[RandomSelection]:
        return await self.ctrng.random(request, options)

    async def beacon(self, path: Optional[str] = None, sources: Optional[Iterable[str]] = None,
                     enable_comparison: bool = False, timeout_ms: Optional[int] = None) -> BeaconResult:
        """Resolve a beacon directly (defaults to the configured beacon path)"""
        return await self.resolver.resolve(path or self.defaults.default_beacon_path, sources,
                                           enable_comparison, timeout_ms)

    async def beacon_with_fallback(self, path: Optional[str] = None,
                                   timeout_ms: Optional[int] = None) -> BeaconRecord:
        return await self.resolver.resolve_with_fallback(path or self.defaults.default_beacon_path, timeout_ms)

    async def beacon_at_block(self, block: Union[int, str] = LATEST_BLOCK, path: Optional[str] = None,
                              sources: Optional[Iterable[str]] = None, enable_comparison: bool = False,
                              timeout_ms: Optional[int] = None) -> BeaconResult:
        return await self.traversal.resolve_at_block(path or self.defaults.default_beacon_path, block,
                                                     sources, enable_comparison, timeout_ms)

    def get_config(self) -> Dict[str, Any]:
        """Current configuration with credentials redacted"""
        config = self.settings.model_dump()
        config["client_id"] = "[REDACTED]" if self.settings.client_id else None
        config["client_secret"] = "[REDACTED]" if self.settings.client_secret else None
        return config

    async def aclose(self):
        if self._owns_http_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "OrbitportClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
