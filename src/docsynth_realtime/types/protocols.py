"""Protocol definitions for component interfaces.

This module defines structural subtyping protocols for the collaborators the
realtime layer talks to: the socket transport, the REST API and the
key-value store used for client-side persistence.
"""

from collections.abc import Awaitable, Callable, Mapping
from typing import Protocol, runtime_checkable

from docsynth_realtime.types.models import InboundMessage

# Returns the current bearer token, or None when the user is signed out
type TokenProvider = Callable[[], str | None]

# Callback receiving every decoded inbound frame
type MessageListener = Callable[[InboundMessage], None]


@runtime_checkable
class Transport(Protocol):
    """Protocol for one open, bidirectional text-frame connection."""

    @property
    def closed(self) -> bool:
        """Whether the underlying connection is closed."""
        ...

    @property
    def close_code(self) -> int | None:
        """Close code sent by the peer, if the connection was closed by it."""
        ...

    async def send_text(self, data: str) -> None:
        """Send one text frame.

        Args:
            data: Encoded frame payload
        """
        ...

    async def receive(self) -> str | None:
        """Wait for the next text frame.

        Returns:
            Frame text, or None once the connection is closed
        """
        ...

    async def close(self) -> None:
        """Close the connection."""
        ...


class TransportFactory(Protocol):
    """Protocol for opening transports to an authenticated URL."""

    def __call__(self, url: str) -> Awaitable[Transport]:
        """Open a new transport.

        Args:
            url: Full endpoint URL including the token query parameter

        Returns:
            Awaitable resolving to the open transport
        """
        ...


class ApiClient(Protocol):
    """Protocol for the authenticated REST client.

    Mirrors the front-end ``apiFetch`` helper: attaches the bearer token,
    decodes the JSON body and raises on non-2xx responses.
    """

    async def fetch(
        self,
        path: str,
        *,
        method: str = "GET",
        payload: Mapping[str, object] | None = None,
    ) -> Mapping[str, object]:
        """Perform a request against the backend API.

        Args:
            path: Path relative to the API base URL (e.g. ``/api/notifications``)
            method: HTTP method
            payload: Optional JSON body

        Returns:
            Decoded JSON response body

        Raises:
            ApiError: If the response status is not 2xx or the request failed
        """
        ...


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for string key-value persistence (browser local storage)."""

    def get_item(self, key: str) -> str | None:
        """Return the raw value stored under key, or None."""
        ...

    def set_item(self, key: str, value: str) -> None:
        """Store a raw value under key."""
        ...

    def remove_item(self, key: str) -> None:
        """Delete key if present."""
        ...

    def keys(self) -> list[str]:
        """Return all stored keys."""
        ...
