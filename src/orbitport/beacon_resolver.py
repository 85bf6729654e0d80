"""
Beacon Resolver - dual-source retrieval, parsing and selection
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from .beacon_parser import compare_beacons, parse_beacon
from .errors import ErrorCode, OrbitportError
from .models import BeaconRecord, BeaconResult, TransportResult, expand_sources
from .monitors import emit_event
from .retry import RETRY_STRATEGIES, RetryOptions, with_retry
from .settings import BeaconDefaults
from .transport import TransportFetcher

logger = logging.getLogger(__name__)

VALID_PATH_PREFIXES = ("/ipns/", "/ipfs/")


def is_valid_path(path) -> bool:
    return isinstance(path, str) and path.startswith(VALID_PATH_PREFIXES)


class BeaconResolver:
    """Fetches a beacon from the gateway and/or the IPFS API and reconciles the copies"""

    def __init__(self, fetcher: TransportFetcher, defaults: BeaconDefaults, event_handler=None):
        self.fetcher = fetcher
        self.defaults = defaults
        self.event_handler = event_handler

    def _retry_options(self, retries: Optional[int]) -> RetryOptions:
        attempts = retries if retries is not None else self.defaults.retry_attempts
        return RETRY_STRATEGIES["standard"].with_overrides(
            max_attempts=attempts,
            base_delay_ms=self.defaults.retry_delay_ms,
        )

    async def resolve(self, path: str, sources: Optional[Iterable[str]] = None,
                      enable_comparison: bool = False, timeout_ms: Optional[int] = None,
                      retries: Optional[int] = None) -> BeaconResult:
        """
        Resolve the beacon at ``path``.

        Returns a ComparisonResult when comparison is enabled and at least two
        sources parsed, otherwise the first parsed BeaconRecord (gateway first).
        """
        if not is_valid_path(path):
            raise OrbitportError("Invalid path: must start with /ipns/ or /ipfs/", ErrorCode.INVALID_REQUEST)

        source_list = expand_sources(sources)
        timeout_ms = timeout_ms or self.defaults.timeout_ms
        logger.debug(f"Resolving beacon {path} from {source_list} (comparison={enable_comparison})")

        async def attempt() -> BeaconResult:
            results = await self._read_from_sources(path, source_list, timeout_ms)

            failures = [r for r in results if not r.ok]
            if len(failures) == len(results):
                joined = ", ".join(r.error or f"{r.source} returned nothing" for r in failures)
                raise OrbitportError(f"All sources failed: {joined}", ErrorCode.NETWORK_ERROR,
                                     details=[r.model_dump() for r in failures])

            parsed: Dict[str, BeaconRecord] = {}
            for kind, result in zip(source_list, results):
                if not result.ok:
                    logger.debug(f"{result.source} failed: {result.error}")
                    continue
                try:
                    parsed[kind] = parse_beacon(result.text)
                except OrbitportError as e:
                    logger.warning(f"⚠️ Parse error for {result.source}: {e.message}")

            if not parsed:
                raise OrbitportError("No valid beacon data found from any source", ErrorCode.INVALID_RESPONSE)

            if enable_comparison and len(parsed) >= 2:
                return compare_beacons(parsed.get("gateway"), parsed.get("api"))

            return next(iter(parsed.values()))

        def on_retry(error: OrbitportError, attempt_number: int):
            logger.warning(f"Beacon request attempt {attempt_number} failed: {error.message}")
            emit_event(self.event_handler, "retry", {
                "path": path, "attempt": attempt_number, "code": error.code.value,
            })

        return await with_retry(attempt, self._retry_options(retries), on_retry)

    async def _read_from_sources(self, path: str, source_list: List[str],
                                 timeout_ms: int) -> List[TransportResult]:
        """Issue one retrieval per source concurrently and wait for all of them"""
        tasks = []
        for kind in source_list:
            if kind == "gateway":
                tasks.append(self.fetcher.fetch_gateway(path, timeout_ms))
            elif kind == "api":
                tasks.append(self.fetcher.fetch_api(path, timeout_ms))

        return list(await asyncio.gather(*tasks))

    async def resolve_with_fallback(self, path: str, timeout_ms: Optional[int] = None,
                                    retries: Optional[int] = None) -> BeaconRecord:
        """Read through the gateway alone, falling back to the IPFS API alone"""
        if not is_valid_path(path):
            raise OrbitportError("Invalid path: must start with /ipns/ or /ipfs/", ErrorCode.INVALID_REQUEST)

        if not self.defaults.enable_fallback:
            result = await self.resolve(path, timeout_ms=timeout_ms, retries=retries)
            return self._expect_record(result, "resolver")

        try:
            result = await self.resolve(path, ["gateway"], timeout_ms=timeout_ms, retries=retries)
            return self._expect_record(result, "gateway")
        except OrbitportError as e:
            logger.info(f"Gateway failed ({e.code.value}), trying API fallback")

        result = await self.resolve(path, ["api"], timeout_ms=timeout_ms, retries=retries)
        return self._expect_record(result, "API")

    @staticmethod
    def _expect_record(result: BeaconResult, origin: str) -> BeaconRecord:
        if isinstance(result, BeaconRecord):
            return result
        raise OrbitportError(f"Unexpected response type from {origin}", ErrorCode.INVALID_RESPONSE)
