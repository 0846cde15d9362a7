"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator

import pytest

from docsynth_realtime.core.reconnect import FixedDelayPolicy
from docsynth_realtime.realtime.connection import ConnectionManager
from docsynth_realtime.storage.local_store import MemoryStorage
from tests.fixtures.realtime_fakes import WS_URL, FakeApiClient, FakeTransportFactory, TokenHolder


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    """Transport factory handing out in-memory transports."""
    return FakeTransportFactory()


@pytest.fixture
def token_holder() -> TokenHolder:
    """Mutable token provider holding a valid token."""
    return TokenHolder()


@pytest.fixture
async def connection(
    transport_factory: FakeTransportFactory,
    token_holder: TokenHolder,
) -> AsyncIterator[ConnectionManager]:
    """Connection manager with a short fixed reconnect delay."""
    manager = ConnectionManager(
        WS_URL,
        token_provider=token_holder,
        transport_factory=transport_factory,
        reconnect_policy=FixedDelayPolicy(delay_seconds=0.01),
    )
    yield manager
    await manager.disconnect()


@pytest.fixture
def api() -> FakeApiClient:
    """Scripted REST client."""
    return FakeApiClient()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    """Empty in-memory key-value store."""
    return MemoryStorage()


@pytest.fixture
def restore_root_logger() -> Iterator[logging.Logger]:
    """Restore root handlers and level changed by configure_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
