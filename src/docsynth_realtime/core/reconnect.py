"""Reconnect delay policies for the connection manager.

A policy answers one question: given the number of consecutive failed
attempts so far, how long to wait before the next one, or whether to stop.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Protocol

from docsynth_realtime.core.config import ReconnectConfig


class ReconnectPolicy(Protocol):
    """Protocol for reconnect delay policies."""

    def next_delay(self, attempt: int) -> float | None:
        """Return the delay before reconnect attempt ``attempt``.

        Args:
            attempt: Number of consecutive reconnects already scheduled (0-indexed)

        Returns:
            Delay in seconds, or None when no further attempt should be made
        """
        ...


@dataclass(slots=True, frozen=True)
class FixedDelayPolicy:
    """Constant delay between attempts, optionally capped in count."""

    delay_seconds: float = 5.0
    max_attempts: int | None = None

    def next_delay(self, attempt: int) -> float | None:
        if self.max_attempts is not None and attempt >= self.max_attempts:
            return None
        return self.delay_seconds


@dataclass(slots=True, frozen=True)
class ExponentialBackoffPolicy:
    """Exponential backoff with random jitter.

    delay = min(base * 2^attempt, max_backoff) * (1 ± jitter%), never above
    max_backoff. Jitter spreads out reconnect storms after a backend restart.
    """

    base_seconds: float = 1.0
    max_backoff_seconds: float = 60.0
    jitter_percent: float = 20.0
    max_attempts: int | None = None

    def next_delay(self, attempt: int) -> float | None:
        if self.max_attempts is not None and attempt >= self.max_attempts:
            return None

        # Cap the exponent so large attempt counts cannot overflow
        exponential_delay = self.base_seconds * pow(2.0, min(attempt, 32))
        base_delay = min(exponential_delay, self.max_backoff_seconds)

        jitter_factor = 1.0 + random.uniform(
            -self.jitter_percent / 100.0,
            self.jitter_percent / 100.0,
        )
        return max(0.0, min(base_delay * jitter_factor, self.max_backoff_seconds))


def build_reconnect_policy(config: ReconnectConfig) -> ReconnectPolicy:
    """Create the policy described by a ReconnectConfig section.

    Args:
        config: Validated reconnect configuration

    Returns:
        FixedDelayPolicy or ExponentialBackoffPolicy
    """
    if config.strategy == "exponential":
        return ExponentialBackoffPolicy(
            base_seconds=config.delay_seconds,
            max_backoff_seconds=config.max_backoff_seconds,
            jitter_percent=config.jitter_percent,
            max_attempts=config.max_attempts,
        )
    return FixedDelayPolicy(
        delay_seconds=config.delay_seconds,
        max_attempts=config.max_attempts,
    )
