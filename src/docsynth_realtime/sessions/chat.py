"""Chat session with streamed answers and a REST fallback.

While the realtime connection is up, questions are posted to the streaming
endpoint and the answer arrives as ``chat:stream:*`` frames. Without a
connection the blocking endpoint is used and its reply is appended as a
single assistant message.

States::

    IDLE --send_message--> AWAITING --chunk/start--> STREAMING --end--> IDLE
    AWAITING | STREAMING --stream error / connection lost--> IDLE
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from enum import StrEnum
from typing import Self

from pydantic import TypeAdapter, ValidationError

from docsynth_realtime.core.state_machine import ConnectionState
from docsynth_realtime.realtime.connection import ConnectionManager
from docsynth_realtime.sessions.models import ChatMessage, ChatSource
from docsynth_realtime.storage.recent import RecentItems
from docsynth_realtime.types import ApiClient, InboundMessage
from docsynth_realtime.utils.http_client import ApiError, unwrap_data
from docsynth_realtime.utils.logging import get_logger, log_with_context

logger = get_logger(__name__)

CHAT_SESSIONS_PATH = "/api/chat/sessions"

STREAM_START = "chat:stream:start"
STREAM_CHUNK = "chat:stream:chunk"
STREAM_END = "chat:stream:end"
STREAM_ERROR = "chat:stream:error"

# Finished answers remembered to drop redelivered stream frames
FINISHED_ID_HISTORY = 32

_SOURCES: TypeAdapter[list[ChatSource]] = TypeAdapter(list[ChatSource])


class ChatState(StrEnum):
    """Answer lifecycle of a chat session."""

    IDLE = "idle"
    AWAITING = "awaiting"
    STREAMING = "streaming"


def _iso_now(clock: Callable[[], datetime]) -> str:
    return clock().isoformat().replace("+00:00", "Z")


def _epoch_ms(clock: Callable[[], datetime]) -> int:
    return int(clock().timestamp() * 1000)


def _string(data: Mapping[str, object], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) and value else None


class ChatSession:
    """Question/answer session against one repository's documentation."""

    def __init__(
        self,
        connection: ConnectionManager,
        api: ApiClient,
        repository_id: str,
        *,
        recent_sessions: RecentItems | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            connection: Shared realtime connection
            api: REST client
            repository_id: Repository whose documentation is queried
            recent_sessions: Optional list recording started session ids
            clock: Source of the current time
        """
        self._connection: ConnectionManager = connection
        self._api: ApiClient = api
        self._repository_id: str = repository_id
        self._recent_sessions: RecentItems | None = recent_sessions
        self._clock: Callable[[], datetime] = clock or (lambda: datetime.now(UTC))

        self._session_id: str | None = None
        self._messages: list[ChatMessage] = []
        self._state: ChatState = ChatState.IDLE
        self._error: str | None = None
        self._stream_chunks: list[str] = []
        self._stream_message_id: str | None = None
        self._finished_ids: deque[str] = deque(maxlen=FINISHED_ID_HISTORY)
        self._idle: asyncio.Event = asyncio.Event()
        self._idle.set()
        self._remove_listener: Callable[[], None] | None = None
        self._remove_state_listener: Callable[[], None] | None = None
        self._background: set[asyncio.Task[bool]] = set()

    async def __aenter__(self) -> Self:
        _ = await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def repository_id(self) -> str:
        return self._repository_id

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def streaming_content(self) -> str:
        """Text received so far for the answer being streamed."""
        return "".join(self._stream_chunks)

    @property
    def busy(self) -> bool:
        return self._state is not ChatState.IDLE

    async def start(self) -> str:
        """Create the backend session and join it over the socket.

        The session is re-joined after every reconnect.

        Returns:
            Backend session id

        Raises:
            ApiError: If the session cannot be created
        """
        if self._session_id is not None:
            return self._session_id

        try:
            body = await self._api.fetch(
                CHAT_SESSIONS_PATH,
                method="POST",
                payload={"repositoryId": self._repository_id},
            )
            data = unwrap_data(body, path=CHAT_SESSIONS_PATH)
            session_id = _string(data, "sessionId") if isinstance(data, Mapping) else None
            if session_id is None:
                raise ApiError("Chat session response carried no sessionId", path=CHAT_SESSIONS_PATH)
        except ApiError as exc:
            self._error = str(exc) or "Failed to start chat"
            raise

        self._session_id = session_id
        if self._recent_sessions is not None:
            _ = self._recent_sessions.push(session_id)

        self._remove_listener = self._connection.add_listener(self.handle_message)
        self._remove_state_listener = self._connection.add_state_listener(self._on_connection_state)
        if self._connection.connected:
            _ = await self._join()

        log_with_context(
            logger,
            logging.INFO,
            "Chat session started",
            extra={"session_id": session_id, "repository_id": self._repository_id},
        )
        return session_id

    async def send_message(self, text: str) -> ChatMessage | None:
        """Ask a question.

        Blank text, a session that was not started, or a session still
        waiting for an answer return None without side effects. REST errors
        are reported through ``error``.

        Returns:
            The appended user message, or None if nothing was sent
        """
        content = text.strip()
        if not content or self._session_id is None or self.busy:
            return None

        user_message = ChatMessage(
            id=f"temp-{_epoch_ms(self._clock)}",
            role="user",
            content=content,
            timestamp=_iso_now(self._clock),
        )
        self._messages.append(user_message)
        self._error = None
        base_path = f"{CHAT_SESSIONS_PATH}/{self._session_id}"
        streaming = self._connection.connected
        self._set_state(ChatState.AWAITING)

        try:
            if streaming:
                # The answer arrives over the socket
                _ = await self._api.fetch(f"{base_path}/messages/stream", method="POST", payload={"message": content})
            else:
                body = await self._api.fetch(f"{base_path}/messages", method="POST", payload={"message": content})
                self._messages.append(self._reply_from_body(body, path=f"{base_path}/messages"))
                self._set_state(ChatState.IDLE)
        except ApiError as exc:
            self._error = str(exc) or "Failed to send message"
            logger.warning("Chat message failed: %s", self._error)
            self._reset_stream()
            self._set_state(ChatState.IDLE)

        return user_message

    async def wait_for_answer(self, timeout: float | None = None) -> ChatMessage | None:
        """Wait until the session is idle again.

        Returns:
            The last assistant message, or None if there is none

        Raises:
            TimeoutError: If no answer arrives in time
        """
        async with asyncio.timeout(timeout):
            _ = await self._idle.wait()
        for message in reversed(self._messages):
            if message.role == "assistant":
                return message
        return None

    def handle_message(self, message: InboundMessage) -> None:
        """Apply a ``chat:stream:*`` frame addressed to this session."""
        if not message.type.startswith("chat:stream:") or self._session_id is None:
            return
        data = message.data_mapping()
        if data.get("sessionId") != self._session_id:
            return

        message_id = _string(data, "messageId")
        if message_id is not None and message_id in self._finished_ids:
            return

        if message.type == STREAM_START:
            if self._state is ChatState.IDLE:
                return
            self._begin_stream(message_id)
        elif message.type == STREAM_CHUNK:
            if self._state is ChatState.IDLE:
                return
            if self._state is ChatState.AWAITING:
                self._begin_stream(message_id)
            chunk = data.get("chunk")
            if isinstance(chunk, str):
                self._stream_chunks.append(chunk)
        elif message.type == STREAM_END:
            if self._state is ChatState.IDLE:
                return
            reply = self._reply_from_stream(data, message_id)
            self._messages.append(reply)
            self._finished_ids.append(message_id or reply.id)
            self._reset_stream()
            self._set_state(ChatState.IDLE)
        elif message.type == STREAM_ERROR:
            if self._state is ChatState.IDLE:
                return
            self._error = _string(data, "error") or "Streaming failed"
            logger.warning("Chat stream failed: %s", self._error)
            self._reset_stream()
            self._set_state(ChatState.IDLE)

    async def close(self) -> None:
        """Leave the session and stop receiving frames."""
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        if self._remove_state_listener is not None:
            self._remove_state_listener()
            self._remove_state_listener = None
        for task in tuple(self._background):
            _ = task.cancel()
        if self._session_id is not None and self._connection.connected:
            _ = await self._connection.send({"type": "chat:leave", "sessionId": self._session_id})

    async def _join(self) -> bool:
        if self._session_id is None:
            return False
        return await self._connection.send({"type": "chat:join", "sessionId": self._session_id})

    def _on_connection_state(self, state: ConnectionState) -> None:
        if state is ConnectionState.CONNECTED:
            task = asyncio.create_task(self._join())
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        elif state in (ConnectionState.RECONNECTING, ConnectionState.DISCONNECTED) and self.busy:
            # Frames for the pending answer are lost with the connection
            self._error = "Connection lost while waiting for the answer"
            self._reset_stream()
            self._set_state(ChatState.IDLE)

    def _begin_stream(self, message_id: str | None) -> None:
        self._stream_message_id = message_id
        self._stream_chunks = []
        self._set_state(ChatState.STREAMING)

    def _reset_stream(self) -> None:
        self._stream_message_id = None
        self._stream_chunks = []

    def _set_state(self, state: ChatState) -> None:
        self._state = state
        if state is ChatState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()

    def _reply_from_body(self, body: Mapping[str, object], *, path: str) -> ChatMessage:
        data = unwrap_data(body, path=path)
        if not isinstance(data, Mapping):
            raise ApiError("Chat reply carried no data", path=path)
        try:
            reply = ChatMessage.model_validate(data.get("message"))
            sources = _SOURCES.validate_python(data.get("sources") or [])
        except ValidationError as exc:
            raise ApiError(f"Chat reply was malformed: {exc.error_count()} validation errors", path=path) from exc
        if sources and not reply.sources:
            reply = reply.model_copy(update={"sources": sources})
        return reply

    def _reply_from_stream(self, data: Mapping[str, object], message_id: str | None) -> ChatMessage:
        try:
            sources = _SOURCES.validate_python(data.get("sources") or [])
        except ValidationError:
            sources = []

        try:
            reply = ChatMessage.model_validate(data.get("message"))
        except ValidationError:
            # Fall back to the streamed text
            reply = ChatMessage(
                id=message_id or self._stream_message_id or f"stream-{_epoch_ms(self._clock)}",
                role="assistant",
                content=self.streaming_content,
                timestamp=_iso_now(self._clock),
            )
        if sources and not reply.sources:
            reply = reply.model_copy(update={"sources": sources})
        return reply
