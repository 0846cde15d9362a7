"""Type definitions and protocols for docsynth-realtime.

This package provides:
- Data models (dataclasses)
- Protocol definitions (structural subtyping interfaces)
- Type aliases (PEP 695 syntax)
"""

from docsynth_realtime.types.models import (
    JOB_TERMINAL_STATUSES,
    InboundMessage,
    JobProgress,
)
from docsynth_realtime.types.protocols import (
    ApiClient,
    KeyValueStore,
    MessageListener,
    TokenProvider,
    Transport,
    TransportFactory,
)

__all__ = [
    # Data models
    "JOB_TERMINAL_STATUSES",
    "InboundMessage",
    "JobProgress",
    # Protocols and aliases
    "ApiClient",
    "KeyValueStore",
    "MessageListener",
    "TokenProvider",
    "Transport",
    "TransportFactory",
]
