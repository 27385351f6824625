"""Bounded async retries for background jobs.

The interactive ``send()`` path never retries here: transport errors reach
the caller unchanged (the SDK's own ``max_retries`` still applies).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
from typing import TYPE_CHECKING, TypeVar

import httpx

from colloquy.errors import APIError, _walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset(
    {408, 409, 429, 500, 502, 503, 504, 529}
)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to attempt a call and how long to wait in between.

    The wait before retry *n* is ``delay_s * multiplier ** (n - 1)``, capped
    at ``max_delay_s``. A server-supplied Retry-After is honored when longer.
    """

    attempts: int = 3
    delay_s: float = 1.0
    multiplier: float = 1.0
    max_delay_s: float | None = None
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("RetryPolicy.attempts must be >= 1")
        if self.delay_s < 0:
            raise ValueError("RetryPolicy.delay_s must be >= 0")
        if self.multiplier < 1:
            raise ValueError("RetryPolicy.multiplier must be >= 1")
        if self.max_delay_s is not None and self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0 or None")

    @classmethod
    def fixed(cls, *, attempts: int, delay_s: float) -> RetryPolicy:
        """Same wait before every retry, no jitter."""
        return cls(attempts=attempts, delay_s=delay_s)

    def delay_before(self, retry: int) -> float:
        """Seconds to wait before retry number *retry* (1-based)."""
        delay = self.delay_s * self.multiplier ** max(0, retry - 1)
        if self.max_delay_s is not None:
            delay = min(delay, self.max_delay_s)
        if self.jitter and delay > 0:
            delay = random.uniform(0, delay)  # noqa: S311
        return delay


def is_transient(exc: BaseException) -> bool:
    """Whether *exc* looks like a failure worth repeating unchanged.

    API errors count when flagged retryable or carrying a retryable status;
    raw timeouts and httpx transport errors anywhere in the chain count too.
    Cancellation never does.
    """
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, APIError):
        return exc.retryable is True or exc.status_code in RETRYABLE_STATUS_CODES
    return any(
        isinstance(e, (TimeoutError, httpx.TransportError))
        for e in _walk_exception_chain(exc)
    )


def should_retry_api_error(exc: BaseException) -> bool:
    """Retry any APIError; configuration problems and bugs fail fast."""
    return isinstance(exc, APIError)


async def retry_async(
    factory: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool] = is_transient,
) -> T:
    """Await ``factory()`` until it succeeds or *policy* is exhausted.

    The last exception is re-raised unchanged.
    """
    retry = 0
    while True:
        try:
            return await factory()
        except Exception as exc:
            retry += 1
            if retry >= policy.attempts or not should_retry(exc):
                raise

            delay = policy.delay_before(retry)
            if isinstance(exc, APIError) and exc.retry_after_s is not None:
                delay = max(delay, exc.retry_after_s)

            logger.debug(
                "Attempt %d/%d failed with %s; retrying in %.1fs",
                retry,
                policy.attempts,
                type(exc).__name__,
                delay,
            )
            if delay > 0:
                await asyncio.sleep(delay)
