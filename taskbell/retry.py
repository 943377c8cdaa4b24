"""
Retry policy for push subscription attempts.

A RetryPolicy bundles the attempt limit, the backoff function and the
sleep primitive, so the subscribe flow can be tested with a fake clock.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
)

from taskbell.exceptions import is_transient
from taskbell.logging_config import get_logger

logger = get_logger("push")

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_UNIT = 1.0  # seconds


def linear_backoff(attempt: int, unit: float = DEFAULT_BACKOFF_UNIT) -> float:
    """Delay after the given (1-based) failed attempt: attempt x unit."""
    return attempt * unit


@dataclass
class RetryPolicy:
    """
    Retry configuration for transient subscribe failures.

    Attributes:
        max_attempts: Total number of attempts (first try included)
        backoff: Maps the 1-based number of the failed attempt to a delay
        sleep: Awaitable sleep used between attempts
        retry_on: Predicate deciding whether an exception is retried
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff: Callable[[int], float] = linear_backoff
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    retry_on: Callable[[BaseException], bool] = is_transient

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got: {self.max_attempts}")

    def delays(self) -> List[float]:
        """Delays slept between attempts when every attempt fails."""
        return [self.backoff(n) for n in range(1, self.max_attempts)]

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.backoff(retry_state.attempt_number)

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Call ``fn`` until it succeeds or the policy gives up.

        Non-retryable exceptions propagate immediately; after the last
        attempt the final exception is re-raised unchanged. ``fn`` may be
        any zero-argument callable returning an awaitable (a lambda or a
        partial included); it is awaited on every attempt.
        """

        async def _attempt() -> T:
            return await fn()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(self.retry_on),
            sleep=self.sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return await retrying(_attempt)
