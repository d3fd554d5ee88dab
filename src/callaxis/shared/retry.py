"""
Explicit retry/schedule policy for network-calling components.

Every component that talks to the network takes one of these instead of
relying on being re-invoked by its caller.
"""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and spacing for a network operation.

    Attributes:
        max_attempts: Attempts per unit of work (None means unbounded).
        interval_seconds: Base delay between attempts.
        jitter_seconds: Uniform random jitter added to each delay.
        max_elapsed_seconds: Wall-clock budget for the whole operation
            (None means unbounded).
    """

    max_attempts: int | None = 1
    interval_seconds: float = 0.0
    jitter_seconds: float = 0.0
    max_elapsed_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.interval_seconds < 0 or self.jitter_seconds < 0:
            raise ValueError("interval and jitter must be non-negative")

    def delay(self) -> float:
        """Seconds to wait before the next attempt."""
        if self.jitter_seconds:
            return self.interval_seconds + random.uniform(0, self.jitter_seconds)
        return self.interval_seconds

    def attempts_left(self, attempts_made: int) -> bool:
        return self.max_attempts is None or attempts_made < self.max_attempts

    def expired(self, elapsed_seconds: float) -> bool:
        return self.max_elapsed_seconds is not None and elapsed_seconds >= self.max_elapsed_seconds


def poll_policy(interval_seconds: float = 2.0, max_session_seconds: float | None = 1800.0) -> RetryPolicy:
    """Fixed-interval, unbounded-attempt schedule used by the call poller."""
    return RetryPolicy(
        max_attempts=None,
        interval_seconds=interval_seconds,
        max_elapsed_seconds=max_session_seconds,
    )
