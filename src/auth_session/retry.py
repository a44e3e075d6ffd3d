"""
Bounded retry for transient persistence failures.

Only StoreUnavailableError is retried. Everything else, and the last
StoreUnavailableError once attempts run out, propagates unchanged.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass

from .errors import StoreUnavailableError
from .logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay: Delay before the second attempt, in seconds.
        max_delay: Upper bound for any single delay.
        exponential_base: Growth factor between delays.
        jitter: Randomize each delay between 50% and 100% of its value.
    """

    max_attempts: int = 3
    base_delay: float = 0.05
    max_delay: float = 2.0
    exponential_base: float = 2.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must not be negative")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        delay = min(self.base_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay


NO_RETRY = RetryPolicy(max_attempts=1)


def call_with_retry[T](
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    operation: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn``, retrying on StoreUnavailableError with backoff."""
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return fn()
        except StoreUnavailableError as e:
            if attempt == policy.max_attempts:
                logger.error(
                    "store_retries_exhausted",
                    operation=operation,
                    attempts=attempt,
                    error=str(e),
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "store_unavailable_retrying",
                operation=operation,
                attempt=attempt,
                delay=delay,
                error=str(e),
            )
            sleep(delay)
    raise AssertionError("unreachable")
