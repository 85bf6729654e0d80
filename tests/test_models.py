"""
Tests for request models and source selection
"""

import pytest

from orbitport.errors import ErrorCode, OrbitportError
from orbitport.models import (
    ApiRandomRequest,
    BeaconRandomRequest,
    TransportResult,
    expand_sources,
    parse_random_request,
    parse_request_options,
)


def test_parse_request_defaults_to_trng():
    request = parse_random_request(None)

    assert isinstance(request, ApiRandomRequest)
    assert request.src == "trng"


def test_parse_beacon_request():
    request = parse_random_request({"src": "ipfs", "block": 42, "index": 3, "beacon_path": "/ipns/x"})

    assert isinstance(request, BeaconRandomRequest)
    assert request.block == 42
    assert request.index == 3
    assert request.beacon_path == "/ipns/x"


@pytest.mark.parametrize("block", ["INF", "inf", "latest", "LATEST"])
def test_latest_block_aliases(block):
    assert parse_random_request({"src": "ipfs", "block": block}).block == "latest"


@pytest.mark.parametrize("request_body", [
    {"src": "rng", "index": 1},
    {"src": "trng", "beacon_path": "/ipns/x"},
    {"src": "ipfs", "block": -5},
    {"src": "ipfs", "block": "yesterday"},
    {"src": "other"},
    "trng",
])
def test_parse_request_rejects(request_body):
    with pytest.raises(OrbitportError) as exc_info:
        parse_random_request(request_body)

    assert exc_info.value.code == ErrorCode.INVALID_REQUEST


def test_parse_request_options():
    options = parse_request_options({"timeout_ms": 500, "retries": 2})

    assert options.timeout_ms == 500
    assert options.retries == 2
    assert options.headers == {}

    with pytest.raises(OrbitportError):
        parse_request_options({"retries": 11})
    with pytest.raises(OrbitportError):
        parse_request_options({"timeout_ms": 0})


def test_expand_sources():
    assert expand_sources(None) == ["gateway", "api"]
    assert expand_sources(["both"]) == ["gateway", "api"]
    assert expand_sources(["api", "gateway"]) == ["gateway", "api"]
    assert expand_sources(["api"]) == ["api"]

    with pytest.raises(OrbitportError) as exc_info:
        expand_sources(["satellite"])
    assert exc_info.value.code == ErrorCode.INVALID_REQUEST


def test_transport_result_ok():
    assert TransportResult(source="gateway:x", text="{}").ok
    assert not TransportResult(source="gateway:x", error="boom").ok
    assert not TransportResult(source="gateway:x").ok
