"""Tests for two-key navigation shortcuts."""

from __future__ import annotations

import pytest

from docsynth_realtime.input.shortcuts import DEFAULT_BINDINGS, ESCAPE, KeySequenceMachine, SequenceState


class _FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now: float = 100.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> _FakeClock:
    """Clock starting at an arbitrary monotonic value."""
    return _FakeClock()


@pytest.fixture
def machine(clock: _FakeClock) -> KeySequenceMachine:
    """Machine with the default bindings and the fake clock."""
    return KeySequenceMachine(clock=clock)


@pytest.mark.unit
class TestKeySequenceMachine:
    """Test KeySequenceMachine."""

    @pytest.mark.parametrize(("key", "route"), sorted(DEFAULT_BINDINGS.items()))
    def test_default_bindings(self, machine: KeySequenceMachine, key: str, route: str) -> None:
        """Test that every default binding resolves after the prefix."""
        assert machine.press("g") is None
        assert machine.press(key) == route
        assert machine.state is SequenceState.IDLE

    def test_case_insensitive(self, machine: KeySequenceMachine) -> None:
        """Test that upper-case keys match."""
        _ = machine.press("G")

        assert machine.press("J") == "/dashboard/jobs"

    def test_second_key_within_timeout(self, machine: KeySequenceMachine, clock: _FakeClock) -> None:
        """Test that a key exactly at the timeout still completes."""
        _ = machine.press("g")
        clock.advance(1.0)

        assert machine.press("j") == "/dashboard/jobs"

    def test_sequence_expires(self, machine: KeySequenceMachine, clock: _FakeClock) -> None:
        """Test that a late second key starts over."""
        _ = machine.press("g")
        clock.advance(1.5)

        assert machine.state is SequenceState.IDLE
        assert machine.press("j") is None

    def test_prefix_after_expiry_starts_new_sequence(self, machine: KeySequenceMachine, clock: _FakeClock) -> None:
        """Test that the prefix pressed late begins a fresh sequence."""
        _ = machine.press("g")
        clock.advance(2.0)

        assert machine.press("g") is None
        assert machine.press("d") == "/dashboard"

    def test_escape_cancels(self, machine: KeySequenceMachine) -> None:
        """Test that Escape abandons the pending sequence."""
        _ = machine.press("g")

        assert machine.press(ESCAPE) is None
        assert machine.press("j") is None

    def test_modifier_cancels(self, machine: KeySequenceMachine) -> None:
        """Test that a modified key press resets the sequence."""
        _ = machine.press("g")

        assert machine.press("j", modified=True) is None
        assert machine.state is SequenceState.IDLE

    def test_modified_prefix_ignored(self, machine: KeySequenceMachine) -> None:
        """Test that Ctrl+g does not start a sequence."""
        _ = machine.press("g", modified=True)

        assert machine.state is SequenceState.IDLE

    def test_unknown_second_key(self, machine: KeySequenceMachine) -> None:
        """Test that an unbound key ends the sequence without a route."""
        _ = machine.press("g")

        assert machine.press("x") is None
        assert machine.state is SequenceState.IDLE

    def test_keys_without_prefix_ignored(self, machine: KeySequenceMachine) -> None:
        """Test that bound keys alone do nothing."""
        assert machine.press("j") is None
        assert machine.state is SequenceState.IDLE

    def test_custom_bindings_and_prefix(self, clock: _FakeClock) -> None:
        """Test custom prefix and bindings."""
        machine = KeySequenceMachine({"H": "/help"}, prefix="?", clock=clock)
        _ = machine.press("?")

        assert machine.bindings == {"h": "/help"}
        assert machine.press("h") == "/help"

    @pytest.mark.parametrize("timeout", [0, -1.0])
    def test_invalid_timeout(self, timeout: float) -> None:
        """Test that non-positive timeouts are rejected."""
        with pytest.raises(ValueError, match="must be positive"):
            _ = KeySequenceMachine(timeout_seconds=timeout)
