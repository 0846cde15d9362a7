"""Application-scoped shared connection.

One RealtimeHub wraps the single ConnectionManager of a process. Consumers
take leases instead of owning connections: the first lease connects, the
last release disconnects, and all consumers share one transport and one
router. Channel subscriptions taken through the hub are reference counted
so one consumer leaving does not unsubscribe another.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from docsynth_realtime.realtime.connection import ConnectionManager
from docsynth_realtime.utils.logging import get_logger

logger = get_logger(__name__)


class RealtimeHub:
    """Reference-counted access to a shared ConnectionManager."""

    def __init__(self, connection: ConnectionManager) -> None:
        self._connection: ConnectionManager = connection
        self._leases: int = 0
        self._channel_refs: Counter[str] = Counter()
        self._lock: asyncio.Lock = asyncio.Lock()

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def lease_count(self) -> int:
        return self._leases

    async def acquire(self) -> ConnectionManager:
        """Take a lease, connecting if this is the first one.

        Returns:
            The shared connection manager
        """
        async with self._lock:
            self._leases += 1
            if self._leases == 1:
                logger.debug("First realtime lease taken, connecting")
                await self._connection.connect()
        return self._connection

    async def release(self) -> None:
        """Return a lease, disconnecting when none remain.

        Raises:
            RuntimeError: If called more often than acquire()
        """
        async with self._lock:
            if self._leases == 0:
                msg = "release() called without a matching acquire()"
                raise RuntimeError(msg)
            self._leases -= 1
            if self._leases == 0:
                logger.debug("Last realtime lease released, disconnecting")
                await self._connection.disconnect()

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[ConnectionManager]:
        """Hold a lease for the duration of the ``async with`` block."""
        connection = await self.acquire()
        try:
            yield connection
        finally:
            await self.release()

    async def subscribe(self, channel: str) -> None:
        """Subscribe to a channel on behalf of one consumer."""
        self._channel_refs[channel] += 1
        if self._channel_refs[channel] == 1:
            await self._connection.subscribe(channel)

    async def unsubscribe(self, channel: str) -> None:
        """Drop one consumer's interest in a channel.

        The connection unsubscribes only when no consumer remains.
        """
        if self._channel_refs[channel] <= 0:
            return
        self._channel_refs[channel] -= 1
        if self._channel_refs[channel] == 0:
            del self._channel_refs[channel]
            await self._connection.unsubscribe(channel)

    @asynccontextmanager
    async def subscription(self, channel: str) -> AsyncIterator[None]:
        """Keep a channel subscribed for the duration of the ``async with`` block."""
        await self.subscribe(channel)
        try:
            yield
        finally:
            await self.unsubscribe(channel)
