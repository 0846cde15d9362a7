"""State machine for the realtime connection lifecycle."""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum


class ConnectionState(Enum):
    """States of a realtime connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class StateTransitionError(Exception):
    """Exception raised when a state transition is not allowed."""

    def __init__(
        self,
        message: str,
        from_state: ConnectionState | None = None,
        to_state: ConnectionState | None = None,
    ) -> None:
        """Initialize state transition error.

        Args:
            message: Error message
            from_state: Source state of failed transition
            to_state: Target state of failed transition
        """
        super().__init__(message)
        self.from_state: ConnectionState | None = from_state
        self.to_state: ConnectionState | None = to_state


@dataclass
class StateContext:
    """Holds the current state and a bounded transition history."""

    current_state: ConnectionState = ConnectionState.DISCONNECTED
    previous_state: ConnectionState | None = None
    history_limit: int = 50
    _state_history: deque[ConnectionState] = field(default_factory=deque)

    def set_current_state(self, state: ConnectionState) -> None:
        """Set the current state and update history.

        Args:
            state: New current state
        """
        self.previous_state = self.current_state
        self.current_state = state
        self._state_history.append(state)
        while len(self._state_history) > self.history_limit:
            _ = self._state_history.popleft()

    def get_state_history(self) -> list[ConnectionState]:
        """Get the recorded transition history, oldest first."""
        return list(self._state_history)


class StateTransition:
    """Represents a state transition with an optional guard."""

    from_state: ConnectionState
    to_state: ConnectionState
    guard: Callable[[StateContext], bool] | None

    def __init__(
        self,
        from_state: ConnectionState,
        to_state: ConnectionState,
        guard: Callable[[StateContext], bool] | None = None,
    ) -> None:
        """Initialize state transition.

        Args:
            from_state: Source state
            to_state: Target state
            guard: Optional guard function that must return True for transition to proceed
        """
        self.from_state = from_state
        self.to_state = to_state
        self.guard = guard

    def can_transition(self, context: StateContext) -> bool:
        """Check if transition is allowed based on guard condition."""
        if self.guard is None:
            return True
        return self.guard(context)


class StateMachine:
    """Table-driven state machine.

    Only transitions registered with ``add_transition`` are allowed; all
    others raise StateTransitionError. Runs on the event loop thread only.
    """

    def __init__(self, initial_state: ConnectionState) -> None:
        """Initialize state machine.

        Args:
            initial_state: Initial state of the machine
        """
        self.context: StateContext = StateContext(current_state=initial_state)
        self._transitions: dict[ConnectionState, list[StateTransition]] = defaultdict(list)

    @property
    def current_state(self) -> ConnectionState:
        """Get current state of the machine."""
        return self.context.current_state

    def add_transition(self, transition: StateTransition) -> None:
        """Add a state transition to the machine."""
        self._transitions[transition.from_state].append(transition)

    def get_transitions(self, from_state: ConnectionState) -> list[StateTransition]:
        """Get all transitions from a given state."""
        return self._transitions[from_state].copy()

    def can_transition_to(self, to_state: ConnectionState) -> bool:
        """Check whether a transition to ``to_state`` is currently allowed."""
        return any(
            transition.to_state == to_state and transition.can_transition(self.context)
            for transition in self._transitions[self.current_state]
        )

    def transition_to(self, to_state: ConnectionState) -> None:
        """Transition to the specified state.

        Args:
            to_state: Target state

        Raises:
            StateTransitionError: If transition is not allowed
        """
        current_state = self.current_state
        if not self.can_transition_to(to_state):
            raise StateTransitionError(
                f"Cannot transition from {current_state.name} to {to_state.name}",
                from_state=current_state,
                to_state=to_state,
            )
        self.context.set_current_state(to_state)


def build_connection_state_machine() -> StateMachine:
    """Create the state machine governing a ConnectionManager.

    disconnected --connect--> connecting --open--> connected
    connected --close--> reconnecting --timer--> connecting
    connecting --open failed--> reconnecting | disconnected
    any --disconnect--> disconnected
    """
    machine = StateMachine(ConnectionState.DISCONNECTED)
    table = [
        (ConnectionState.DISCONNECTED, ConnectionState.CONNECTING),
        (ConnectionState.CONNECTING, ConnectionState.CONNECTED),
        (ConnectionState.CONNECTING, ConnectionState.RECONNECTING),
        (ConnectionState.CONNECTING, ConnectionState.DISCONNECTED),
        (ConnectionState.CONNECTED, ConnectionState.RECONNECTING),
        (ConnectionState.CONNECTED, ConnectionState.DISCONNECTED),
        (ConnectionState.RECONNECTING, ConnectionState.CONNECTING),
        (ConnectionState.RECONNECTING, ConnectionState.DISCONNECTED),
    ]
    for from_state, to_state in table:
        machine.add_transition(StateTransition(from_state, to_state))
    return machine
