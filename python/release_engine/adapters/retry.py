"""
Bounded retry for adapter calls.

Only retryable errors (timeouts) are retried, with exponential backoff, up
to a fixed attempt budget; everything else propagates on the first failure.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from release_engine.exceptions import ReleaseEngineError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attributes:
        max_attempts: Total attempts including the first one.
        delay_seconds: Delay before the second attempt.
        backoff: Multiplier applied to the delay after each attempt.
    """

    max_attempts: int = 3
    delay_seconds: float = 1.0
    backoff: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return self.delay_seconds * (self.backoff ** (attempt - 1))


def call_with_retry(
    operation: str,
    fn: Callable[[], T],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[T, int]:
    """
    Run ``fn`` under ``policy``.

    Returns:
        The function result and the number of attempts used.

    Raises:
        ReleaseEngineError: The last error once the budget is exhausted, or
            the first non-retryable error.
    """
    attempts = 0
    while True:
        attempts += 1
        try:
            return fn(), attempts
        except ReleaseEngineError as e:
            if not e.is_retryable or attempts >= max(1, policy.max_attempts):
                if e.is_retryable:
                    logger.error(
                        "adapter_retries_exhausted",
                        operation=operation,
                        attempts=attempts,
                        error=str(e),
                    )
                raise

            delay = policy.delay_for(attempts)
            logger.warning(
                "adapter_call_retrying",
                operation=operation,
                attempt=attempts,
                delay_seconds=delay,
                error=str(e),
            )
            sleep(delay)
