"""Reconnect delay schedule for the bus connection."""

from __future__ import annotations

import random


class RetryPolicy:
    """Exponential backoff with an upper bound and optional jitter.

    With the defaults the schedule is 1s, 2s, 4s, then 5s for every further
    attempt; retries never give up.
    """

    def __init__(
        self,
        base_delay_seconds: float = 1.0,
        max_delay_seconds: float = 5.0,
        jitter_factor: float = 0.0,
    ):
        """Initialize retry policy.

        Args:
            base_delay_seconds: Delay before the first retry after a loss
            max_delay_seconds: Steady repeat interval once backoff is exhausted
            jitter_factor: Jitter as fraction of delay (0 disables)
        """
        if base_delay_seconds <= 0 or max_delay_seconds <= 0:
            msg = "retry delays must be positive"
            raise ValueError(msg)
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max(max_delay_seconds, base_delay_seconds)
        self.jitter_factor = jitter_factor

    def get_delay(self, attempt: int) -> float:
        """Delay before retry `attempt` (0-indexed: attempt 0 follows the first failure)."""
        # Exponential backoff: base * 2^attempt
        delay = self.base_delay_seconds * (2 ** min(attempt, 32))
        delay = min(delay, self.max_delay_seconds)
        if self.jitter_factor > 0:
            delay += random.uniform(0, delay * self.jitter_factor)
        return delay

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(base_delay={self.base_delay_seconds}s, "
            f"max_delay={self.max_delay_seconds}s, "
            f"jitter_factor={self.jitter_factor})"
        )
