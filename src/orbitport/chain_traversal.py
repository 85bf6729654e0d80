"""
Chain Traversal - walks the beacon chain backwards to a historical block
"""

import logging
from typing import Iterable, Optional, Union

from .beacon_resolver import BeaconResolver
from .errors import ErrorCode, OrbitportError
from .models import LATEST_BLOCK, BeaconRecord, BeaconResult, ComparisonResult

logger = logging.getLogger(__name__)


def extract_record(result: BeaconResult) -> BeaconRecord:
    """Single record from a resolver result, preferring the gateway copy of a comparison"""
    if isinstance(result, BeaconRecord):
        return result
    if isinstance(result, ComparisonResult):
        record = result.gateway or result.api
        if record is not None:
            return record
    raise OrbitportError("Invalid beacon data structure", ErrorCode.INVALID_RESPONSE)


def is_latest(block) -> bool:
    return isinstance(block, str) and block.upper() in ("LATEST", "INF")


class ChainTraversal:
    """Follows ``previous`` links from the latest beacon until a target sequence"""

    def __init__(self, resolver: BeaconResolver):
        self.resolver = resolver

    async def resolve_at_block(self, path: str, block: Union[int, str] = LATEST_BLOCK,
                               sources: Optional[Iterable[str]] = None,
                               enable_comparison: bool = False,
                               timeout_ms: Optional[int] = None,
                               retries: Optional[int] = None) -> BeaconResult:
        """
        Resolve the beacon at ``block`` on the chain rooted at ``path``.

        The result mirrors the shape of the latest-block resolution: a plain
        record stays a plain record, a comparison becomes a synthetic agreeing
        comparison holding the found record in the gateway slot.
        """
        sources = list(sources) if sources else None

        async def resolve(target_path: str) -> BeaconResult:
            return await self.resolver.resolve(target_path, sources, enable_comparison, timeout_ms, retries)

        if is_latest(block):
            return await resolve(path)

        if isinstance(block, bool) or not isinstance(block, int) or block < 0:
            raise OrbitportError("Block number must be a non-negative integer", ErrorCode.INVALID_REQUEST)

        logger.debug(f"Starting block traversal to block {block}")
        latest_result = await resolve(path)
        current = extract_record(latest_result)
        latest_sequence = current.sequence

        if block > latest_sequence:
            raise OrbitportError(
                f"Requested block {block} is greater than current block {latest_sequence}",
                ErrorCode.INVALID_REQUEST,
                details={"requested": block, "latest": latest_sequence},
            )

        if block == latest_sequence:
            return latest_result

        max_hops = latest_sequence - block
        hops = 0
        while current.sequence != block:
            if hops >= max_hops:
                raise OrbitportError(
                    f"Failed to reach block {block} after {hops} steps. Current block: {current.sequence}",
                    ErrorCode.BLOCK_UNREACHABLE,
                )
            if not current.previous:
                raise OrbitportError(
                    f"Failed to reach block {block}. Chain ends at block {current.sequence}",
                    ErrorCode.BLOCK_UNREACHABLE,
                )

            logger.debug(f"Traversing from block {current.sequence} to {current.previous}")
            current = extract_record(await resolve(current.previous))
            hops += 1

            if current.sequence < block:
                raise OrbitportError(
                    f"Block {block} not found in chain. Last available block: {current.sequence}",
                    ErrorCode.BLOCK_NOT_FOUND,
                    details={"requested": block, "last_seen": current.sequence},
                )

        logger.info(f"Traversed to block {block} in {hops} steps")

        if isinstance(latest_result, BeaconRecord):
            return current
        return ComparisonResult(gateway=current, api=None, agrees=True)
