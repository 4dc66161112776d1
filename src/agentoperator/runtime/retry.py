"""Exponential backoff policy applied by controllers when a reconcile fails.

The n-th retry of a key waits ``initial_interval * multiplier ** (n - 1)``
seconds, optionally capped and jittered. ``max_attempts`` counts retries after
the first failure; once exhausted the controller records the failure and waits
for the next event.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class BackoffPolicy:
    initial_interval: float = 2.0
    multiplier: float = 1.5
    max_attempts: int = 5
    max_interval: Optional[float] = None
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.initial_interval < 0:
            raise ValueError("initial_interval must be >= 0")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")

    def can_retry(self, attempt: int) -> bool:
        """Whether the ``attempt``-th retry (1-based) is still allowed."""
        return 1 <= attempt <= self.max_attempts

    def delay_for(self, attempt: int) -> float:
        delay = self.initial_interval * self.multiplier ** max(attempt - 1, 0)
        if self.max_interval is not None:
            delay = min(delay, self.max_interval)
        if self.jitter:
            delay *= random.uniform(0.8, 1.2)
        return delay


DEFAULT_RETRY_POLICY = BackoffPolicy(initial_interval=2.0, multiplier=1.5, max_attempts=5)
DISCOVERY_RETRY_POLICY = BackoffPolicy(initial_interval=5.0, multiplier=1.5, max_attempts=3)


__all__ = ["BackoffPolicy", "DEFAULT_RETRY_POLICY", "DISCOVERY_RETRY_POLICY"]
