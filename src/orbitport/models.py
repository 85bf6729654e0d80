"""Pydantic models for beacon records, comparisons and random selections."""

from typing import Annotated, Any, Callable, Dict, Generic, Iterable, List, Literal, Optional, TypeVar, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from .errors import ErrorCode, OrbitportError

LATEST_BLOCK = "latest"
BEACON_SERVICE = "ipfs-beacon"

BeaconSource = Literal["gateway", "api", "both"]
SourceKind = Literal["trng", "rng", "ipfs"]

T = TypeVar("T")


class BeaconRecord(BaseModel):
    """One published unit of randomness."""
    model_config = ConfigDict(frozen=True)

    previous: Optional[str] = None
    sequence: int
    timestamp: str
    ctrng: List[int] = Field(default_factory=list)


class TransportResult(BaseModel):
    """Outcome of one retrieval attempt against one named source."""
    source: str
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.text is not None and self.error is None


class SequenceDivergence(BaseModel):
    gateway: int
    api: int


class PreviousDivergence(BaseModel):
    gateway: Optional[str] = None
    api: Optional[str] = None


class Divergence(BaseModel):
    sequence: Optional[SequenceDivergence] = None
    previous: Optional[PreviousDivergence] = None


class ComparisonResult(BaseModel):
    """Agreement judgment between the gateway and api copies of a beacon."""
    model_config = ConfigDict(frozen=True)

    gateway: Optional[BeaconRecord] = None
    api: Optional[BeaconRecord] = None
    agrees: bool = False
    divergence: Optional[Divergence] = None


BeaconResult = Union[BeaconRecord, ComparisonResult]


class Signature(BaseModel):
    value: Any
    pk: Any
    algo: Optional[str] = None


class RandomSelection(BaseModel):
    """A single random value together with its provenance."""
    service: str
    src: str
    data: str
    signature: Optional[Signature] = None
    timestamp: Optional[str] = None
    provider: Optional[str] = None


class ResponseMetadata(BaseModel):
    timestamp_ms: int
    request_id: Optional[str] = None


class ServiceResult(BaseModel, Generic[T]):
    data: T
    metadata: ResponseMetadata
    success: bool = True


class SDKEvent(BaseModel):
    type: Literal["token_refresh", "provider_switch", "error", "retry"]
    timestamp_ms: int
    data: Optional[Dict[str, Any]] = None


EventHandler = Callable[[SDKEvent], None]


class RequestOptions(BaseModel):
    """Per-call overrides"""
    model_config = ConfigDict(extra="forbid")

    timeout_ms: Optional[int] = Field(default=None, gt=0)
    retries: Optional[int] = Field(default=None, ge=0, le=10)
    headers: Dict[str, str] = Field(default_factory=dict)


class ApiRandomRequest(BaseModel):
    """Request served by the centralized cTRNG API"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    src: Literal["trng", "rng"] = "trng"


class BeaconRandomRequest(BaseModel):
    """Request served by the IPFS beacon pipeline"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    src: Literal["ipfs"] = "ipfs"
    beacon_path: Optional[str] = None
    block: Union[Literal["latest"], NonNegativeInt] = LATEST_BLOCK
    index: NonNegativeInt = 0

    @field_validator("block", mode="before")
    @classmethod
    def _normalize_block(cls, value):
        # "INF" is the historical spelling of the latest-block sentinel
        if isinstance(value, str) and value.upper() in ("INF", "LATEST"):
            return LATEST_BLOCK
        return value


RandomRequest = Annotated[Union[ApiRandomRequest, BeaconRandomRequest], Field(discriminator="src")]

_random_request_adapter = TypeAdapter(RandomRequest)


def _describe_validation_error(exc: ValidationError) -> List[str]:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg", "invalid"))
    return messages


def parse_random_request(request: Any = None) -> Union[ApiRandomRequest, BeaconRandomRequest]:
    """Validate a caller-supplied request into one of the tagged variants"""
    if isinstance(request, (ApiRandomRequest, BeaconRandomRequest)):
        return request

    if request is None:
        request = {}
    elif isinstance(request, BaseModel):
        request = request.model_dump(exclude_none=True)
    elif not isinstance(request, dict):
        raise OrbitportError("Request must be a mapping", ErrorCode.INVALID_REQUEST)

    payload = dict(request)
    payload.setdefault("src", "trng")

    try:
        return _random_request_adapter.validate_python(payload)
    except ValidationError as e:
        errors = _describe_validation_error(e)
        raise OrbitportError(", ".join(errors), ErrorCode.INVALID_REQUEST, details=errors) from e


def parse_request_options(options: Any = None) -> RequestOptions:
    if options is None:
        return RequestOptions()
    if isinstance(options, RequestOptions):
        return options

    try:
        return RequestOptions.model_validate(options)
    except ValidationError as e:
        errors = _describe_validation_error(e)
        raise OrbitportError("Invalid request options", ErrorCode.INVALID_REQUEST, details=errors) from e


def expand_sources(sources: Optional[Iterable[str]] = None) -> List[str]:
    """Turn a source selection into the ordered list of transports to query"""
    requested = list(sources) if sources else ["both"]

    unknown = [s for s in requested if s not in ("gateway", "api", "both")]
    if unknown:
        raise OrbitportError(f"Unknown beacon sources: {', '.join(map(str, unknown))}",
                             ErrorCode.INVALID_REQUEST)

    if "both" in requested:
        return ["gateway", "api"]
    return [s for s in ("gateway", "api") if s in requested]
