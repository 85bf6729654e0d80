"""
cTRNG service - source routing and random value selection
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional

import httpx

from .chain_traversal import ChainTraversal
from .errors import ErrorCode, OrbitportError, error_from_api_response, error_from_network_exception
from .models import (
    BEACON_SERVICE,
    LATEST_BLOCK,
    ApiRandomRequest,
    BeaconRandomRequest,
    BeaconRecord,
    BeaconResult,
    RandomSelection,
    RequestOptions,
    ResponseMetadata,
    ServiceResult,
    Signature,
    parse_random_request,
    parse_request_options,
)
from .monitors import emit_event, now_ms
from .settings import BeaconDefaults, Settings

logger = logging.getLogger(__name__)

TokenSupplier = Callable[[], Awaitable[Optional[str]]]


def select_authoritative(result: BeaconResult) -> BeaconRecord:
    """
    Pick the record to draw values from.

    When the two copies disagree the one with the strictly greater sequence
    wins; on equal sequences the gateway copy is kept.
    """
    if isinstance(result, BeaconRecord):
        return result

    gateway, api = result.gateway, result.api
    if gateway is None and api is None:
        raise OrbitportError("No valid beacon data found from any source", ErrorCode.INVALID_RESPONSE)

    if result.agrees:
        logger.debug("✓ Gateway and API agree on sequence/previous")
    elif result.divergence is not None:
        logger.warning(f"⚠ Difference detected: {result.divergence.model_dump(exclude_none=True)}")

    if gateway is not None and api is not None and not result.agrees and api.sequence > gateway.sequence:
        return api
    return gateway or api


def select_value(values: List[int], index: int) -> int:
    """
    Value at ``index`` wrapped modulo the batch length.

    Out-of-range indices alias onto the batch instead of failing, so with a
    batch of 3 the indices 1, 4 and 7 all return the same value.
    """
    if not values:
        raise OrbitportError("No cTRNG values found in beacon data", ErrorCode.INVALID_RESPONSE)

    actual_index = index % len(values)
    if actual_index != index:
        logger.debug(f"index {index} adjusted to {actual_index} (array length: {len(values)})")
    return values[actual_index]


def _require_string(payload: dict, field: str):
    value = payload.get(field)
    if not isinstance(value, str) or not value:
        raise OrbitportError(f"Invalid response: missing or invalid {field} field", ErrorCode.INVALID_RESPONSE)


def validate_api_response(payload: Any) -> RandomSelection:
    """Check the shape of a cTRNG API body; the signature itself is not verified"""
    if not isinstance(payload, dict):
        raise OrbitportError("Invalid response: expected object", ErrorCode.INVALID_RESPONSE)

    for field in ("service", "src", "data"):
        _require_string(payload, field)

    signature = payload.get("signature")
    if signature is not None:
        if not isinstance(signature, dict):
            raise OrbitportError("Invalid response: invalid signature field", ErrorCode.INVALID_RESPONSE)
        if signature.get("value") is None:
            raise OrbitportError("Invalid response: missing signature value", ErrorCode.INVALID_RESPONSE)
        # pk may legitimately be an empty string
        if "pk" not in signature:
            raise OrbitportError("Invalid response: missing signature pk field", ErrorCode.INVALID_RESPONSE)
        signature = Signature(value=signature["value"], pk=signature["pk"], algo=signature.get("algo"))

    timestamp = payload.get("timestamp")
    provider = payload.get("provider")
    return RandomSelection(
        service=payload["service"],
        src=payload["src"],
        data=payload["data"],
        signature=signature,
        timestamp=str(timestamp) if timestamp is not None else None,
        provider=str(provider) if provider is not None else None,
    )


class CTRNGService:
    """Routes random requests to the cTRNG API or the IPFS beacon pipeline"""

    def __init__(self, settings: Settings, defaults: BeaconDefaults, traversal: ChainTraversal,
                 get_token: TokenSupplier, client: Optional[httpx.AsyncClient] = None,
                 event_handler=None):
        self.settings = settings
        self.defaults = defaults
        self.traversal = traversal
        self.get_token = get_token
        self.client = client or httpx.AsyncClient()
        self.event_handler = event_handler

    async def random(self, request: Any = None, options: Any = None) -> ServiceResult[RandomSelection]:
        """
        Generate a random value.

        ``{"src": "ipfs"}`` always uses the beacon. Otherwise the API is tried
        first when credentials are configured, and any API failure falls back
        to the latest beacon at index 0.
        """
        parsed_request = parse_random_request(request)
        request_options = parse_request_options(options)
        logger.debug(f"Generating random data with request: {parsed_request.model_dump()}")

        try:
            if isinstance(parsed_request, BeaconRandomRequest):
                return await self._get_from_beacon(parsed_request, request_options)

            if not self.settings.credentials_present:
                return await self._get_from_beacon(BeaconRandomRequest(), request_options)

            try:
                return await self._get_from_api(parsed_request, request_options)
            except Exception as e:
                logger.info(f"API failed, trying IPFS fallback: {e}")
                emit_event(self.event_handler, "provider_switch", {
                    "from": parsed_request.src, "to": "ipfs", "reason": str(e),
                })

            return await self._get_from_beacon(
                BeaconRandomRequest(block=LATEST_BLOCK, index=0), request_options
            )

        except OrbitportError as e:
            logger.error(f"cTRNG generation failed: {e.message}")
            emit_event(self.event_handler, "error", {"code": e.code.value, "message": e.message})
            raise

    async def _get_from_api(self, request: ApiRandomRequest,
                            options: RequestOptions) -> ServiceResult[RandomSelection]:
        token = await self.get_token()
        if not token:
            raise OrbitportError("No valid authentication token available", ErrorCode.AUTH_FAILED)

        url = f"{self.settings.api_url.rstrip('/')}/api/v1/services/trng"
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            **options.headers,
        }
        timeout_ms = options.timeout_ms or self.settings.timeout_ms
        logger.debug(f"Making API request to: {url}?src={request.src}")

        try:
            response = await self.client.get(url, params={"src": request.src}, headers=headers,
                                             timeout=timeout_ms / 1000.0)
        except httpx.TimeoutException as e:
            raise OrbitportError("cTRNG request timeout", ErrorCode.TIMEOUT) from e
        except httpx.HTTPError as e:
            raise error_from_network_exception(e) from e

        if not response.is_success:
            try:
                api_error = response.json()
            except ValueError:
                api_error = {
                    "error": "Unknown error",
                    "error_description": f"HTTP {response.status_code}: {response.reason_phrase}",
                }
            raise error_from_api_response(api_error, response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise OrbitportError("Invalid response: body is not JSON", ErrorCode.INVALID_RESPONSE) from e

        selection = validate_api_response(payload)
        metadata = ResponseMetadata(timestamp_ms=now_ms(), request_id=response.headers.get("x-request-id"))
        return ServiceResult[RandomSelection](data=selection, metadata=metadata)

    async def _get_from_beacon(self, request: BeaconRandomRequest,
                               options: RequestOptions) -> ServiceResult[RandomSelection]:
        beacon_path = request.beacon_path or self.defaults.default_beacon_path
        if not beacon_path:
            raise OrbitportError("No beacon path provided and no default beacon path configured",
                                 ErrorCode.INVALID_REQUEST)

        logger.debug(f"Reading beacon {beacon_path} at block {request.block}, index {request.index}")

        result = await self.traversal.resolve_at_block(
            beacon_path,
            request.block,
            sources=["both"],
            enable_comparison=True,
            timeout_ms=options.timeout_ms,
            retries=options.retries,
        )

        record = select_authoritative(result)
        value = select_value(record.ctrng, request.index)

        selection = RandomSelection(
            service=BEACON_SERVICE,
            src="ipfs",
            data=str(value),
            timestamp=record.timestamp,
            provider=BEACON_SERVICE,
        )
        return ServiceResult[RandomSelection](data=selection, metadata=ResponseMetadata(timestamp_ms=now_ms()))
