"""WebSocket transport built on aiohttp.

This module adapts ``aiohttp.ClientWebSocketResponse`` to the Transport
protocol used by the connection manager, and provides the factory that
opens authenticated sockets from a shared ``ClientSession``.
"""

import asyncio
import logging
from typing import Self
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import aiohttp

# Close code the backend uses for a missing or invalid token
AUTH_REJECTED_CLOSE_CODE = 4001


def build_socket_url(ws_url: str, token: str) -> str:
    """Append the bearer token as the ``token`` query parameter.

    Existing query parameters are preserved; an existing ``token`` is replaced.

    Args:
        ws_url: WebSocket endpoint (``ws://`` or ``wss://``)
        token: Bearer token

    Returns:
        Endpoint URL carrying the token
    """
    parts = urlsplit(ws_url)
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != "token"]
    query.append(("token", token))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class AIOHTTPTransport:
    """Transport wrapping one aiohttp WebSocket response."""

    def __init__(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._ws: aiohttp.ClientWebSocketResponse = ws
        self._logger: logging.Logger = logging.getLogger(__name__)

    @property
    def closed(self) -> bool:
        return self._ws.closed

    @property
    def close_code(self) -> int | None:
        return self._ws.close_code

    async def send_text(self, data: str) -> None:
        await self._ws.send_str(data)

    async def receive(self) -> str | None:
        """Wait for the next text frame.

        Control frames are handled by aiohttp (autoping); binary frames are
        decoded as UTF-8.

        Returns:
            Frame text, or None once the socket is closed

        Raises:
            ConnectionError: If the socket reports a protocol error
        """
        while True:
            message = await self._ws.receive()
            if message.type is aiohttp.WSMsgType.TEXT:
                return message.data  # pyright: ignore[reportAny]  # str for TEXT frames
            if message.type is aiohttp.WSMsgType.BINARY:
                payload: bytes = message.data  # pyright: ignore[reportAny]  # bytes for BINARY frames
                return payload.decode("utf-8", errors="replace")
            if message.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                return None
            if message.type is aiohttp.WSMsgType.ERROR:
                error = self._ws.exception()
                raise ConnectionError(f"WebSocket error: {error}") from error
            self._logger.debug("Ignoring WebSocket frame of type %s", message.type)

    async def close(self) -> None:
        _ = await self._ws.close()


class AIOHTTPTransportFactory:
    """Open authenticated WebSocket transports.

    Implements the TransportFactory Protocol. The aiohttp session is
    created in ``__aenter__`` and shared by every transport it opens.

    Example:
        >>> async with AIOHTTPTransportFactory() as factory:
        ...     transport = await factory("wss://api.example.com/ws?token=...")
    """

    def __init__(
        self,
        *,
        open_timeout_seconds: float = 10.0,
        heartbeat_seconds: float | None = 30.0,
    ) -> None:
        """Initialize the factory.

        Args:
            open_timeout_seconds: Timeout for the opening handshake (default: 10.0)
            heartbeat_seconds: Ping interval, or None to disable (default: 30.0)
        """
        self._open_timeout_seconds: float = open_timeout_seconds
        self._heartbeat_seconds: float | None = heartbeat_seconds
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> Self:
        self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __call__(self, url: str) -> AIOHTTPTransport:
        """Open a WebSocket to ``url``.

        Args:
            url: Endpoint URL including the token query parameter

        Returns:
            Open transport

        Raises:
            RuntimeError: If the factory is used outside ``async with``
            TimeoutError: If the handshake exceeds the open timeout
            aiohttp.ClientError: If the handshake fails
        """
        if self._session is None:
            msg = "Transport factory session not initialized. Use 'async with' context manager."
            raise RuntimeError(msg)

        async with asyncio.timeout(self._open_timeout_seconds):
            ws = await self._session.ws_connect(url, heartbeat=self._heartbeat_seconds, autoping=True)
        return AIOHTTPTransport(ws)
