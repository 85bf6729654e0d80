"""
Tests for retry with backoff and the error taxonomy
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from orbitport.errors import (
    ErrorCode,
    OrbitportError,
    error_from_api_response,
    error_from_network_exception,
    format_error_message,
    is_auth_error,
    is_retryable_error,
)
from orbitport.retry import RETRY_STRATEGIES, RetryOptions, calculate_delay, with_retry

NO_DELAY = RetryOptions(max_attempts=3, base_delay_ms=0, jitter=False)


@pytest.mark.asyncio
async def test_retry_until_success():
    fn = AsyncMock(side_effect=[
        OrbitportError("down", ErrorCode.NETWORK_ERROR),
        OrbitportError("slow", ErrorCode.TIMEOUT),
        "ok",
    ])
    attempts = []

    result = await with_retry(fn, NO_DELAY, lambda error, attempt: attempts.append(attempt))

    assert result == "ok"
    assert fn.await_count == 3
    assert attempts == [1, 2]


@pytest.mark.asyncio
async def test_non_retryable_propagates_immediately():
    fn = AsyncMock(side_effect=OrbitportError("bad", ErrorCode.INVALID_REQUEST))

    with pytest.raises(OrbitportError) as exc_info:
        await with_retry(fn, NO_DELAY)

    assert exc_info.value.code == ErrorCode.INVALID_REQUEST
    assert fn.await_count == 1


@pytest.mark.asyncio
async def test_foreign_exceptions_not_retried():
    fn = AsyncMock(side_effect=KeyError("x"))

    with pytest.raises(KeyError):
        await with_retry(fn, NO_DELAY)

    assert fn.await_count == 1


@pytest.mark.asyncio
async def test_last_error_propagates_after_exhaustion():
    fn = AsyncMock(side_effect=[
        OrbitportError("first", ErrorCode.NETWORK_ERROR),
        OrbitportError("second", ErrorCode.NETWORK_ERROR),
        OrbitportError("third", ErrorCode.SERVICE_UNAVAILABLE),
    ])

    with pytest.raises(OrbitportError) as exc_info:
        await with_retry(fn, NO_DELAY)

    assert exc_info.value.message == "third"


@pytest.mark.asyncio
async def test_sleeps_between_attempts():
    fn = AsyncMock(side_effect=[OrbitportError("down", ErrorCode.NETWORK_ERROR), "ok"])
    options = RetryOptions(max_attempts=2, base_delay_ms=250, jitter=False)

    with patch("orbitport.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        assert await with_retry(fn, options) == "ok"

    sleep.assert_awaited_once_with(0.25)


def test_calculate_delay():
    options = RetryOptions(base_delay_ms=1000, max_delay_ms=5000, backoff_multiplier=2.0, jitter=False)

    assert calculate_delay(1, options) == 1000
    assert calculate_delay(2, options) == 2000
    assert calculate_delay(3, options) == 4000
    assert calculate_delay(4, options) == 5000


def test_calculate_delay_jitter_bounds():
    options = RetryOptions(base_delay_ms=1000, jitter=True)

    for _ in range(50):
        assert 900 <= calculate_delay(1, options) <= 1100


def test_retry_strategies():
    assert RETRY_STRATEGIES["none"].max_attempts == 1
    assert RETRY_STRATEGIES["aggressive"].max_attempts == 5
    assert RETRY_STRATEGIES["standard"].with_overrides(max_attempts=None).max_attempts == 3


def test_error_classification():
    assert is_retryable_error(OrbitportError("x", ErrorCode.RATE_LIMITED))
    assert not is_retryable_error(OrbitportError("x", ErrorCode.INVALID_RESPONSE))
    assert not is_retryable_error(ValueError("x"))
    assert is_auth_error(OrbitportError("x", ErrorCode.TOKEN_EXPIRED))
    assert OrbitportError("x", ErrorCode.TIMEOUT).retryable


@pytest.mark.parametrize("payload,status,expected", [
    ({"error_code": "INVALID_CREDENTIALS"}, 400, ErrorCode.INVALID_CREDENTIALS),
    ({"error_code": "made-up"}, 429, ErrorCode.RATE_LIMITED),
    ({}, 503, ErrorCode.SERVICE_UNAVAILABLE),
    ({}, 401, ErrorCode.AUTH_FAILED),
    ({"error": "teapot"}, 418, ErrorCode.API_ERROR),
    ("not a dict", 500, ErrorCode.API_ERROR),
])
def test_error_from_api_response(payload, status, expected):
    error = error_from_api_response(payload, status)

    assert error.code == expected
    assert error.status == status


def test_error_from_api_response_message():
    error = error_from_api_response({"error": "bad", "error_description": "Bad things"}, 400)
    assert error.message == "Bad things"


def test_error_from_network_exception():
    assert error_from_network_exception(httpx.ReadTimeout("t")).code == ErrorCode.TIMEOUT
    assert error_from_network_exception(httpx.ConnectError("c")).code == ErrorCode.CONNECTION_FAILED
    assert error_from_network_exception(httpx.ReadError("r")).code == ErrorCode.NETWORK_ERROR


def test_format_error_message():
    assert "Rate limit" in format_error_message(OrbitportError("x", ErrorCode.RATE_LIMITED))
    assert format_error_message(OrbitportError("raw", ErrorCode.BLOCK_NOT_FOUND)) == "raw"
