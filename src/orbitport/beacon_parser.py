"""
Beacon Parser and Comparator
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from .errors import ErrorCode, OrbitportError
from .models import (
    BeaconRecord,
    ComparisonResult,
    Divergence,
    PreviousDivergence,
    SequenceDivergence,
)

logger = logging.getLogger(__name__)

# Numeric timestamps below this are seconds since the epoch
EPOCH_MILLIS_THRESHOLD = 1e12


def normalize_timestamp(value: Any) -> str:
    """Render a beacon timestamp as ISO-8601 when given epoch seconds"""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value < EPOCH_MILLIS_THRESHOLD:
            try:
                moment = datetime.fromtimestamp(value, tz=timezone.utc)
            except (ValueError, OverflowError, OSError) as e:
                raise OrbitportError(f"Beacon timestamp {value!r} is out of range: {e}",
                                     ErrorCode.INVALID_RESPONSE) from e
            return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
    return str(value)


def parse_beacon(text: str) -> BeaconRecord:
    """
    Parse a raw beacon body.

    Expected shape: {"data": {"sequence", "timestamp", "ctrng": [...]}, "previous"}.
    Only the top-level ``previous`` is read; a missing or non-array ``ctrng``
    becomes an empty batch.
    """
    try:
        obj = json.loads(text)
    except (TypeError, ValueError) as e:
        raise OrbitportError(f"Beacon body is not valid JSON: {e}", ErrorCode.INVALID_RESPONSE) from e

    if not isinstance(obj, dict) or not isinstance(obj.get("data"), dict):
        raise OrbitportError("Unexpected beacon JSON structure", ErrorCode.INVALID_RESPONSE)

    data = obj["data"]
    if "sequence" not in data or "timestamp" not in data:
        raise OrbitportError("Beacon data is missing sequence or timestamp", ErrorCode.INVALID_RESPONSE)

    sequence = data["sequence"]
    if isinstance(sequence, bool) or not isinstance(sequence, int):
        raise OrbitportError(f"Beacon sequence must be an integer, got {sequence!r}",
                             ErrorCode.INVALID_RESPONSE)

    ctrng = data.get("ctrng")
    previous = obj.get("previous")

    try:
        return BeaconRecord(
            previous=str(previous) if previous else None,
            sequence=sequence,
            timestamp=normalize_timestamp(data["timestamp"]),
            ctrng=ctrng if isinstance(ctrng, list) else [],
        )
    except ValidationError as e:
        raise OrbitportError(f"Beacon ctrng batch holds {e.error_count()} non-integer entries",
                             ErrorCode.INVALID_RESPONSE) from e


def compare_beacons(gateway: Optional[BeaconRecord], api: Optional[BeaconRecord]) -> ComparisonResult:
    """Judge whether the gateway and api copies agree on sequence and previous"""
    if gateway is None or api is None:
        return ComparisonResult(gateway=gateway, api=api, agrees=False)

    agrees = gateway.sequence == api.sequence and gateway.previous == api.previous
    if agrees:
        return ComparisonResult(gateway=gateway, api=api, agrees=True)

    divergence = Divergence(
        sequence=SequenceDivergence(gateway=gateway.sequence, api=api.sequence)
        if gateway.sequence != api.sequence else None,
        previous=PreviousDivergence(gateway=gateway.previous, api=api.previous)
        if gateway.previous != api.previous else None,
    )
    logger.warning(f"⚠️ Gateway and API beacons disagree: {divergence.model_dump(exclude_none=True)}")
    return ComparisonResult(gateway=gateway, api=api, agrees=False, divergence=divergence)
