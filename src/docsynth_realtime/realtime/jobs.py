"""Job-scoped progress tracking over the realtime connection."""

from __future__ import annotations

import asyncio
import dataclasses
import math
from collections.abc import Callable
from typing import Self

from docsynth_realtime.realtime.connection import ConnectionManager
from docsynth_realtime.realtime.hub import RealtimeHub
from docsynth_realtime.types import InboundMessage, JobProgress
from docsynth_realtime.utils.logging import get_logger

logger = get_logger(__name__)

JOB_UPDATE = "job:update"
JOB_COMPLETED = "job:completed"
JOB_FAILED = "job:failed"
_JOB_MESSAGE_TYPES = frozenset({JOB_UPDATE, JOB_COMPLETED, JOB_FAILED})


def job_channel(job_id: str) -> str:
    """Return the channel name carrying updates for a job."""
    return f"job:{job_id}"


def _coerce_progress(value: object) -> float | None:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if math.isnan(value):
        return None
    return min(100.0, max(0.0, float(value)))


class JobProgressTracker:
    """Follow the progress of one backend job.

    Progress only moves forward: out-of-order or duplicate updates never
    lower the reported percentage. Once the job completes or fails, later
    frames are ignored.

    Given a RealtimeHub, the job channel is subscribed through the hub so
    other consumers of the same channel keep their subscription when the
    tracker stops. Given a bare ConnectionManager, the tracker owns the
    channel and unsubscribes it on stop.

    Example:
        >>> async with JobProgressTracker(connection, "job-1") as tracker:
        ...     final = await tracker.wait(timeout=300)
    """

    def __init__(
        self,
        source: ConnectionManager | RealtimeHub,
        job_id: str,
        *,
        on_update: Callable[[JobProgress], None] | None = None,
    ) -> None:
        """Initialize the tracker.

        Args:
            source: Connection delivering the job frames, or the hub sharing it
            job_id: Backend job identifier
            on_update: Optional callback receiving a snapshot after each accepted frame

        Raises:
            ValueError: If job_id is blank
        """
        if not job_id.strip():
            msg = "job_id must not be blank"
            raise ValueError(msg)
        self._hub: RealtimeHub | None = source if isinstance(source, RealtimeHub) else None
        self._connection: ConnectionManager = source.connection if isinstance(source, RealtimeHub) else source
        self._job_id: str = job_id
        self._on_update: Callable[[JobProgress], None] | None = on_update
        self._progress: JobProgress = JobProgress(job_id=job_id)
        self._done: asyncio.Event = asyncio.Event()
        self._remove_listener: Callable[[], None] | None = None

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.stop()

    @property
    def job_id(self) -> str:
        return self._job_id

    @property
    def channel(self) -> str:
        return job_channel(self._job_id)

    @property
    def progress(self) -> JobProgress:
        """Snapshot of the current progress."""
        return dataclasses.replace(self._progress)

    async def start(self) -> None:
        """Register with the connection and subscribe to the job channel."""
        if self._remove_listener is not None:
            return
        self._remove_listener = self._connection.add_listener(self.handle_message)
        if self._hub is not None:
            await self._hub.subscribe(self.channel)
        else:
            await self._connection.subscribe(self.channel)

    async def stop(self) -> None:
        """Unregister and unsubscribe from the job channel."""
        if self._remove_listener is None:
            return
        self._remove_listener()
        self._remove_listener = None
        if self._hub is not None:
            await self._hub.unsubscribe(self.channel)
        else:
            await self._connection.unsubscribe(self.channel)

    async def wait(self, timeout: float | None = None) -> JobProgress:
        """Wait until the job completes or fails.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            Final progress snapshot

        Raises:
            TimeoutError: If the job does not finish in time
        """
        async with asyncio.timeout(timeout):
            _ = await self._done.wait()
        return self.progress

    def handle_message(self, message: InboundMessage) -> bool:
        """Apply a frame if it belongs to this job.

        Returns:
            True if the frame changed the tracked progress
        """
        if message.type not in _JOB_MESSAGE_TYPES:
            return False
        data = message.data_mapping()
        if message.channel != self.channel and data.get("jobId") != self._job_id:
            return False
        if self._progress.done:
            return False

        if message.type == JOB_UPDATE:
            self._apply_update(data.get("status"), data.get("progress"))
        elif message.type == JOB_COMPLETED:
            self._progress.status = "completed"
            self._progress.progress = 100.0
            self._progress.result = data.get("result")
        else:
            error = data.get("error")
            self._progress.status = "failed"
            self._progress.error = error if isinstance(error, str) and error else "Job failed"

        if self._progress.done:
            logger.info("Job %s finished with status %s", self._job_id, self._progress.status)
            self._done.set()

        if self._on_update is not None:
            self._on_update(self.progress)
        return True

    def _apply_update(self, status: object, progress: object) -> None:
        if isinstance(status, str) and status:
            self._progress.status = status
        value = _coerce_progress(progress)
        if value is not None:
            self._progress.progress = max(self._progress.progress, value)
        if self._progress.status == "completed":
            self._progress.progress = 100.0
