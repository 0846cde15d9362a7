"""Data models for docsynth-realtime.

This module defines the plain dataclasses passed between the connection,
router and consumer components.
"""

from collections.abc import Mapping
from dataclasses import dataclass

JOB_TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


@dataclass(slots=True, frozen=True)
class InboundMessage:
    """Decoded frame pushed by the backend.

    Represents the ``{type, channel?, data}`` envelope of every WebSocket
    text frame. ``data`` is left untyped; each consumer validates the
    fields it reads.
    """

    type: str
    data: object = None
    channel: str | None = None

    def data_mapping(self) -> Mapping[str, object]:
        """Return ``data`` when it is a mapping, otherwise an empty mapping."""
        if isinstance(self.data, Mapping):
            return self.data  # pyright: ignore[reportUnknownVariableType]  # JSON boundary
        return {}


@dataclass(slots=True)
class JobProgress:
    """Progress snapshot of a single backend job.

    Built from ``job:update``, ``job:completed`` and ``job:failed`` frames.
    """

    job_id: str
    status: str = "pending"
    progress: float = 0.0
    result: object = None
    error: str | None = None

    @property
    def done(self) -> bool:
        """Whether the job reached a terminal status."""
        return self.status in JOB_TERMINAL_STATUSES
