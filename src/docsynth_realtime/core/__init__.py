"""Core building blocks: configuration, connection state machine and reconnect policies."""

from docsynth_realtime.core.config import (
    ConfigurationError,
    EnvironmentVariableError,
    MainConfig,
    load_main_config,
)
from docsynth_realtime.core.reconnect import (
    ExponentialBackoffPolicy,
    FixedDelayPolicy,
    ReconnectPolicy,
    build_reconnect_policy,
)
from docsynth_realtime.core.state_machine import (
    ConnectionState,
    StateMachine,
    StateTransitionError,
    build_connection_state_machine,
)

__all__ = [
    "ConfigurationError",
    "ConnectionState",
    "EnvironmentVariableError",
    "ExponentialBackoffPolicy",
    "FixedDelayPolicy",
    "MainConfig",
    "ReconnectPolicy",
    "StateMachine",
    "StateTransitionError",
    "build_connection_state_machine",
    "build_reconnect_policy",
    "load_main_config",
]
