"""Bounded retry with exponential backoff and jitter.

RetryState is an explicit state machine (attempt count, last error, next
delay). Randomness and waiting are injected so attempt limits and delays
can be asserted deterministically in tests.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass

from rx.pipeline.errors import PipelineError, RateLimitedError, is_retryable

__all__ = ["RetryPolicy", "RetryState"]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry limits.

    Attributes:
        attempts: Total attempts including the first one
        base_delay: Delay before the second attempt, in seconds
        max_delay: Upper bound for any single delay (also the longest
            rate-limit hint we are willing to wait out)
        jitter: Fraction of the delay randomised (+/-)
    """

    attempts: int = 4
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.25

    def backoff(self, failures: int, rand: Callable[[], float]) -> float:
        """Delay after the given number of consecutive failures (>= 1)."""
        delay = min(self.max_delay, self.base_delay * (2 ** (failures - 1)))
        spread = delay * self.jitter
        return max(0.0, min(self.max_delay, delay + (rand() * 2 - 1) * spread))


@dataclass(slots=True)
class RetryState:
    """Progress of one retried operation.

    Usage:
        state = RetryState(policy)
        while True:
            result = attempt()
            if isinstance(result, Ok):
                return result
            if not state.failed(result.error):
                return result
            wait(state.next_delay)
    """

    policy: RetryPolicy
    rand: Callable[[], float] | None = None
    attempt: int = 1
    last_error: PipelineError | None = None
    next_delay: float = 0.0

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.policy.attempts

    def failed(self, error: PipelineError) -> bool:
        """Record a failed attempt.

        Returns:
            True if another attempt should be made after ``next_delay`` seconds
        """
        self.last_error = error
        if not is_retryable(error) or self.exhausted:
            return False

        if isinstance(error, RateLimitedError) and error.retry_after is not None:
            if error.retry_after > self.policy.max_delay:
                return False
            self.next_delay = error.retry_after
        else:
            self.next_delay = self.policy.backoff(self.attempt, self.rand or random.random)

        self.attempt += 1
        return True
