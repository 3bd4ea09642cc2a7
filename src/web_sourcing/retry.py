"""Bounded retry loop with exponential backoff for network operations."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Transport-level failures only. Any HTTP status code is a terminal answer,
# so HTTPStatusError is not transient.
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    httpx.TransportError,
    TimeoutError,
    ConnectionError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """How often, and how patiently, a failing network call is repeated.

    Attributes:
        retries: Extra attempts after the first one.
        base_delay: Seconds to wait before the first retry.
        max_delay: Upper bound for any single wait.
        multiplier: Growth factor between consecutive waits.
        jitter: Fraction of random spread applied to each wait. Zero keeps
            the waits non-decreasing.
    """

    retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.retries < 0:
            raise ValueError(f"retries must be >= 0, got {self.retries}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if not 0 <= self.jitter < 1:
            raise ValueError(f"jitter must be in [0, 1), got {self.jitter}")

    @property
    def attempts(self) -> int:
        return self.retries + 1

    def delay_for(self, retry: int) -> float:
        """Seconds to sleep before retry number ``retry`` (0-based)."""
        delay = min(self.base_delay * self.multiplier**retry, self.max_delay)
        if self.jitter:
            delay *= 1 + random.uniform(-self.jitter, self.jitter)
        return max(0.0, delay)

    def delays(self) -> Iterator[float]:
        """Every wait the policy would sleep through, in order."""
        return (self.delay_for(retry) for retry in range(self.retries))


def is_transient(error: BaseException) -> bool:
    """True when repeating the call could plausibly succeed."""
    return isinstance(error, TRANSIENT_ERRORS)


async def retry_async(
    func: Callable[..., Awaitable[T]],
    policy: RetryPolicy | None = None,
    *args: Any,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)``, repeating it on transient failures.

    Args:
        func: Coroutine function to call.
        policy: Retry policy, defaults to ``RetryPolicy()``.
        *args: Positional arguments for ``func``.
        **kwargs: Keyword arguments for ``func``.

    Returns:
        The first successful result.

    Raises:
        The error of the last attempt, or the first non-transient error.
    """
    policy = policy or RetryPolicy()
    name = getattr(func, "__name__", repr(func))
    waits = policy.delays()

    for attempt in range(1, policy.attempts + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_transient(e) or attempt == policy.attempts:
                if attempt > 1:
                    logger.warning(f"{name} gave up after {attempt} attempts: {type(e).__name__}: {e}")
                raise
            delay = next(waits)
            logger.info(f"{name} attempt {attempt}/{policy.attempts} failed ({type(e).__name__}), retrying in {delay:.2f}s")
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
