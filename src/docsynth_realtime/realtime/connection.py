"""Connection manager for the realtime WebSocket link.

The ConnectionManager owns at most one live transport at a time. It drives
the connection lifecycle through the connection state machine, replays the
tracked channel subscriptions on every (re)connect before the connection is
published as CONNECTED, and schedules reconnects according to a
ReconnectPolicy when the link drops unexpectedly.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable, Mapping
from typing import Self

from docsynth_realtime.core.reconnect import FixedDelayPolicy, ReconnectPolicy
from docsynth_realtime.core.state_machine import ConnectionState, build_connection_state_machine
from docsynth_realtime.realtime.router import MessageRouter, encode_frame
from docsynth_realtime.realtime.transport import AUTH_REJECTED_CLOSE_CODE, build_socket_url
from docsynth_realtime.types import MessageListener, TokenProvider, Transport, TransportFactory
from docsynth_realtime.utils.logging import get_logger, log_with_context, set_correlation_id
from docsynth_realtime.utils.sanitization import sanitize_exception, sanitize_url

type StateListener = Callable[[ConnectionState], None]

AUTH_REJECTED_ERROR = "Authentication rejected"


def _validate_channel(channel: str) -> str:
    name = channel.strip()
    if not name:
        msg = "Channel name must not be blank"
        raise ValueError(msg)
    return name


class ConnectionManager:
    """Single persistent, authenticated realtime connection.

    Example:
        >>> manager = ConnectionManager(
        ...     "wss://api.example.com/ws",
        ...     token_provider=lambda: token,
        ...     transport_factory=factory,
        ... )
        >>> await manager.subscribe("job:42")
        >>> await manager.connect()
    """

    def __init__(
        self,
        url: str,
        *,
        token_provider: TokenProvider,
        transport_factory: TransportFactory,
        reconnect_policy: ReconnectPolicy | None = None,
        auto_reconnect: bool = True,
        router: MessageRouter | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        """Initialize the connection manager.

        Args:
            url: WebSocket endpoint without the token parameter
            token_provider: Callable returning the current bearer token or None
            transport_factory: Opens a transport for a fully-qualified URL
            reconnect_policy: Delay policy after unexpected closes (default: fixed 5 s, unlimited)
            auto_reconnect: Whether unexpected closes schedule a reconnect (default: True)
            router: Router receiving inbound frames (default: a new MessageRouter)
            logger_obj: Logger override for tests
        """
        self._url: str = url
        self._token_provider: TokenProvider = token_provider
        self._transport_factory: TransportFactory = transport_factory
        self._reconnect_policy: ReconnectPolicy = reconnect_policy or FixedDelayPolicy()
        self._auto_reconnect: bool = auto_reconnect
        self._router: MessageRouter = router or MessageRouter()
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

        self._machine = build_connection_state_machine()
        # Insertion-ordered set of channel names
        self._subscriptions: dict[str, None] = {}
        self._transport: Transport | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._attempt: int = 0
        self._error: str | None = None
        # Bumped by disconnect(); in-flight connects and readers from an older generation stand down
        self._generation: int = 0
        self._state_listeners: list[StateListener] = []

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.disconnect()

    @property
    def url(self) -> str:
        return self._url

    @property
    def router(self) -> MessageRouter:
        return self._router

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._machine.current_state

    @property
    def connected(self) -> bool:
        """Whether the connection is open and subscriptions have been replayed."""
        return self._machine.current_state is ConnectionState.CONNECTED

    @property
    def error(self) -> str | None:
        """Last connection error (sanitized), cleared on successful connect."""
        return self._error

    @property
    def subscriptions(self) -> tuple[str, ...]:
        """Tracked channel names in subscription order."""
        return tuple(self._subscriptions)

    @property
    def reconnect_attempts(self) -> int:
        """Reconnects scheduled since the last successful connect."""
        return self._attempt

    def add_listener(self, listener: MessageListener) -> Callable[[], None]:
        """Register a listener for every inbound frame.

        Returns:
            Callable removing the listener
        """
        return self._router.add_listener(listener)

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback invoked with the new state after each transition.

        Returns:
            Callable removing the listener
        """
        self._state_listeners.append(listener)

        def remove() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return remove

    async def connect(self) -> None:
        """Open the connection if it is not already open or opening.

        Without a token this returns silently and the transport factory is
        never called. Open failures never raise; they set ``error`` and
        follow the reconnect policy.
        """
        if self.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return

        token = self._token_provider()
        if not token:
            self._logger.debug("No token available, skipping realtime connect")
            self._cancel_reconnect_timer()
            self._set_state(ConnectionState.DISCONNECTED)
            return

        self._cancel_reconnect_timer()
        generation = self._generation
        set_correlation_id(f"conn-{uuid.uuid4().hex[:8]}")
        self._set_state(ConnectionState.CONNECTING)

        url = build_socket_url(self._url, token)
        log_with_context(
            self._logger,
            logging.INFO,
            "Opening realtime connection",
            extra={"url": sanitize_url(url), "attempt": self._attempt},
        )

        try:
            transport = await self._transport_factory(url)
        except Exception as exc:
            if self._is_stale(generation):
                return
            self._fail_connect(exc)
            return

        if self._is_stale(generation):
            await self._close_quietly(transport)
            return

        try:
            await self._replay_subscriptions(transport)
        except Exception as exc:
            await self._close_quietly(transport)
            if self._is_stale(generation):
                return
            self._fail_connect(exc)
            return

        if self._is_stale(generation):
            await self._close_quietly(transport)
            return

        self._transport = transport
        self._attempt = 0
        self._error = None
        self._set_state(ConnectionState.CONNECTED)
        self._reader_task = asyncio.create_task(
            self._read_loop(transport, generation),
            name="docsynth-realtime-reader",
        )
        log_with_context(
            self._logger,
            logging.INFO,
            "Realtime connection established",
            extra={"subscriptions": len(self._subscriptions)},
        )

    async def disconnect(self) -> None:
        """Close the connection and cancel any pending reconnect.

        The state stays DISCONNECTED until ``connect()`` or ``reconnect()``.
        """
        self._generation += 1
        self._attempt = 0
        self._cancel_reconnect_timer()

        reader = self._reader_task
        transport = self._transport
        self._reader_task = None
        self._transport = None

        was_active = self.state is not ConnectionState.DISCONNECTED
        self._set_state(ConnectionState.DISCONNECTED)

        if reader is not None and reader is not asyncio.current_task():
            _ = reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        if transport is not None:
            await self._close_quietly(transport)

        if was_active:
            self._logger.info("Realtime connection closed")

    async def reconnect(self) -> None:
        """Force a fresh connection."""
        await self.disconnect()
        await self.connect()

    async def subscribe(self, channel: str) -> None:
        """Track a channel and subscribe to it now if connected.

        Subscribing twice is a no-op. Tracked channels are replayed on every
        (re)connect.

        Raises:
            ValueError: If the channel name is blank
        """
        name = _validate_channel(channel)
        if name in self._subscriptions:
            return
        self._subscriptions[name] = None
        self._logger.debug("Subscribed to %s", name)
        if self.connected:
            _ = await self.send({"type": "subscribe", "channel": name})

    async def unsubscribe(self, channel: str) -> None:
        """Stop tracking a channel and unsubscribe now if connected.

        Unsubscribing from an untracked channel is a no-op.

        Raises:
            ValueError: If the channel name is blank
        """
        name = _validate_channel(channel)
        if name not in self._subscriptions:
            return
        del self._subscriptions[name]
        self._logger.debug("Unsubscribed from %s", name)
        if self.connected:
            _ = await self.send({"type": "unsubscribe", "channel": name})

    async def send(self, payload: Mapping[str, object]) -> bool:
        """Send one JSON frame.

        Args:
            payload: JSON-serializable frame body

        Returns:
            True if the frame was written, False if it was dropped because
            the connection is not open or the write failed
        """
        frame = encode_frame(payload)
        transport = self._transport
        if transport is None or not self.connected or transport.closed:
            self._logger.debug("Dropping outbound frame while not connected", extra={"frame_type": payload.get("type")})
            return False
        try:
            await transport.send_text(frame)
        except Exception as exc:
            self._logger.debug(
                "Dropping outbound frame after write failure",
                extra={"frame_type": payload.get("type"), "error": sanitize_exception(exc)},
            )
            return False
        return True

    async def ping(self) -> bool:
        """Send an application-level ping; the backend answers with ``pong``."""
        return await self.send({"type": "ping"})

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation or self.state is not ConnectionState.CONNECTING

    def _set_state(self, new_state: ConnectionState) -> None:
        previous = self._machine.current_state
        if previous is new_state:
            return
        self._machine.transition_to(new_state)
        self._logger.debug("Connection state %s -> %s", previous.value, new_state.value)
        for listener in tuple(self._state_listeners):
            try:
                listener(new_state)
            except Exception:
                self._logger.exception("State listener failed", extra={"state": new_state.value})

    async def _replay_subscriptions(self, transport: Transport) -> None:
        # Channels may be added or removed while frames are being written; loop
        # until the wire matches the tracked set with no await in between.
        on_wire: dict[str, None] = {}
        while True:
            to_subscribe = [channel for channel in self._subscriptions if channel not in on_wire]
            to_unsubscribe = [channel for channel in on_wire if channel not in self._subscriptions]
            if not to_subscribe and not to_unsubscribe:
                return
            for channel in to_subscribe:
                await transport.send_text(encode_frame({"type": "subscribe", "channel": channel}))
                on_wire[channel] = None
            for channel in to_unsubscribe:
                await transport.send_text(encode_frame({"type": "unsubscribe", "channel": channel}))
                del on_wire[channel]

    def _fail_connect(self, exc: Exception) -> None:
        self._error = sanitize_exception(exc)
        log_with_context(
            self._logger,
            logging.WARNING,
            "Realtime connection failed",
            extra={"error": self._error},
        )
        self._handle_connection_lost()

    async def _read_loop(self, transport: Transport, generation: int) -> None:
        try:
            while True:
                raw = await transport.receive()
                if raw is None:
                    break
                _ = self._router.dispatch_raw(raw)
        except Exception as exc:
            if generation == self._generation:
                self._error = sanitize_exception(exc)
                log_with_context(
                    self._logger,
                    logging.WARNING,
                    "Realtime connection read failed",
                    extra={"error": self._error},
                )

        if generation != self._generation or self._transport is not transport:
            return

        self._transport = None
        self._reader_task = None
        close_code = transport.close_code

        if close_code == AUTH_REJECTED_CLOSE_CODE:
            self._error = AUTH_REJECTED_ERROR
            self._logger.warning("Realtime connection rejected the token, not reconnecting")
            self._set_state(ConnectionState.DISCONNECTED)
        else:
            log_with_context(
                self._logger,
                logging.INFO,
                "Realtime connection closed unexpectedly",
                extra={"close_code": close_code},
            )
            self._handle_connection_lost()

        await self._close_quietly(transport)

    def _handle_connection_lost(self) -> None:
        if not self._auto_reconnect:
            self._set_state(ConnectionState.DISCONNECTED)
            return

        delay = self._reconnect_policy.next_delay(self._attempt)
        if delay is None:
            self._error = f"Gave up reconnecting after {self._attempt} attempts"
            self._logger.warning(self._error)
            self._set_state(ConnectionState.DISCONNECTED)
            return

        self._attempt += 1
        self._set_state(ConnectionState.RECONNECTING)
        log_with_context(
            self._logger,
            logging.INFO,
            "Scheduling realtime reconnect",
            extra={"delay_seconds": round(delay, 3), "attempt": self._attempt},
        )
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay),
            name="docsynth-realtime-reconnect",
        )

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        await self.connect()

    def _cancel_reconnect_timer(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task():
            _ = task.cancel()

    async def _close_quietly(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as exc:
            self._logger.debug("Ignoring error while closing transport: %s", sanitize_exception(exc))
