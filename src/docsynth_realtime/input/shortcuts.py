"""Two-key navigation shortcuts ("g" then a letter).

The machine is driven by key presses and an injectable monotonic clock so it
can be used from any input loop and tested without sleeping.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from enum import Enum

DEFAULT_PREFIX = "g"
DEFAULT_TIMEOUT_SECONDS = 1.0
ESCAPE = "Escape"

DEFAULT_BINDINGS: dict[str, str] = {
    "d": "/dashboard",
    "r": "/dashboard/repositories",
    "j": "/dashboard/jobs",
    "a": "/dashboard/analytics",
    "v": "/dashboard/visualizations",
    "s": "/dashboard/settings",
}


class SequenceState(Enum):
    """States of a key sequence."""

    IDLE = "idle"
    AWAITING_SECOND = "awaiting_second"


class KeySequenceMachine:
    """Resolve ``prefix`` + key sequences to dashboard routes.

    A sequence expires when the second key does not arrive within the
    timeout; a key pressed after expiry is treated as a new first key.

    Example:
        >>> machine = KeySequenceMachine()
        >>> machine.press("g")
        >>> machine.press("j")
        '/dashboard/jobs'
    """

    def __init__(
        self,
        bindings: Mapping[str, str] | None = None,
        *,
        prefix: str = DEFAULT_PREFIX,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the machine.

        Args:
            bindings: Second key -> route (default: dashboard navigation)
            prefix: First key of every sequence (default: "g")
            timeout_seconds: Maximum delay between the two keys (default: 1.0)
            clock: Monotonic time source in seconds
        """
        if timeout_seconds <= 0:
            msg = f"timeout_seconds must be positive, got {timeout_seconds}"
            raise ValueError(msg)
        self._bindings: dict[str, str] = {key.lower(): route for key, route in (bindings or DEFAULT_BINDINGS).items()}
        self._prefix: str = prefix.lower()
        self._timeout: float = timeout_seconds
        self._clock: Callable[[], float] = clock
        self._state: SequenceState = SequenceState.IDLE
        self._started_at: float = 0.0

    @property
    def state(self) -> SequenceState:
        self._expire(self._clock())
        return self._state

    @property
    def bindings(self) -> dict[str, str]:
        return dict(self._bindings)

    def press(self, key: str, *, modified: bool = False) -> str | None:
        """Feed one key press.

        Args:
            key: Key name (single characters are case-insensitive)
            modified: Whether a modifier (Ctrl, Alt, Meta) was held

        Returns:
            Route to navigate to, or None if the sequence is incomplete or unknown
        """
        now = self._clock()
        self._expire(now)

        if key == ESCAPE or modified:
            self.reset()
            return None

        normalized = key.lower()
        if self._state is SequenceState.IDLE:
            if normalized == self._prefix:
                self._state = SequenceState.AWAITING_SECOND
                self._started_at = now
            return None

        self.reset()
        return self._bindings.get(normalized)

    def reset(self) -> None:
        """Abandon any pending sequence."""
        self._state = SequenceState.IDLE
        self._started_at = 0.0

    def _expire(self, now: float) -> None:
        if self._state is SequenceState.AWAITING_SECOND and now - self._started_at > self._timeout:
            self.reset()
