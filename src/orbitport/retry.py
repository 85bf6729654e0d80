"""
Retry logic with exponential backoff and jitter
"""

import asyncio
import logging
import random
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import OrbitportError, is_retryable_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryOptions:
    """Backoff configuration (delays in milliseconds)"""
    max_attempts: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 10000
    backoff_multiplier: float = 2.0
    jitter: bool = True

    def with_overrides(self, **kwargs) -> "RetryOptions":
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})


DEFAULT_RETRY_OPTIONS = RetryOptions()

RETRY_STRATEGIES = {
    "fast": RetryOptions(max_attempts=2, base_delay_ms=500, max_delay_ms=2000),
    "standard": DEFAULT_RETRY_OPTIONS,
    "aggressive": RetryOptions(max_attempts=5, base_delay_ms=1000, max_delay_ms=30000),
    "conservative": RetryOptions(max_attempts=2, base_delay_ms=2000, max_delay_ms=5000,
                                 backoff_multiplier=1.5),
    "none": RetryOptions(max_attempts=1, base_delay_ms=0, max_delay_ms=0,
                         backoff_multiplier=1.0, jitter=False),
}


def calculate_delay(attempt: int, options: RetryOptions) -> float:
    """Delay in milliseconds before the retry following `attempt` (1-based)"""
    exponential = options.base_delay_ms * (options.backoff_multiplier ** (attempt - 1))
    capped = min(exponential, options.max_delay_ms)

    if options.jitter:
        jitter_amount = capped * 0.1
        return max(0.0, capped + random.uniform(-jitter_amount, jitter_amount))

    return capped


async def with_retry(fn: Callable[[], Awaitable[T]],
                     options: Optional[RetryOptions] = None,
                     on_retry: Optional[Callable[[OrbitportError, int], None]] = None) -> T:
    """Await `fn` until it succeeds, a non-retryable error occurs, or attempts run out"""
    options = options or DEFAULT_RETRY_OPTIONS
    max_attempts = max(1, options.max_attempts)

    for attempt in range(1, max_attempts + 1):
        try:
            return await fn()
        except OrbitportError as e:
            if not is_retryable_error(e) or attempt == max_attempts:
                raise

            if on_retry:
                on_retry(e, attempt)

            delay = calculate_delay(attempt, options)
            logger.debug(f"Attempt {attempt}/{max_attempts} failed ({e.code.value}), retrying in {delay:.0f}ms")
            await asyncio.sleep(delay / 1000.0)

    # Unreachable: the loop either returns or raises
    raise OrbitportError("Retry loop exhausted")
