"""Tests for chat sessions with streamed answers."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from docsynth_realtime.core.state_machine import ConnectionState
from docsynth_realtime.realtime.connection import ConnectionManager
from docsynth_realtime.sessions.chat import CHAT_SESSIONS_PATH, FINISHED_ID_HISTORY, ChatSession, ChatState
from docsynth_realtime.storage.local_store import MemoryStorage
from docsynth_realtime.storage.recent import recent_chat_sessions
from docsynth_realtime.types import InboundMessage
from docsynth_realtime.utils.http_client import ApiError
from tests.fixtures.realtime_fakes import FakeApiClient, FakeTransportFactory, wait_until

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)
SESSION_PATH = f"{CHAT_SESSIONS_PATH}/s1"

ASSISTANT_REPLY = {
    "id": "m-1",
    "role": "assistant",
    "content": "Use a bearer token.",
    "timestamp": "2024-05-01T12:00:05Z",
}
SOURCES = [{"documentId": "d1", "documentPath": "docs/auth.md", "excerpt": "Tokens...", "relevanceScore": 0.9}]


def _stream(kind: str, **data: object) -> InboundMessage:
    return InboundMessage(type=f"chat:stream:{kind}", data={"sessionId": "s1", **data})


@pytest.fixture
def chat_api(api: FakeApiClient) -> FakeApiClient:
    """API answering session creation and both message endpoints."""
    api.respond(CHAT_SESSIONS_PATH, {"success": True, "data": {"sessionId": "s1"}}, method="POST")
    api.respond(f"{SESSION_PATH}/messages/stream", {"success": True}, method="POST")
    api.respond(
        f"{SESSION_PATH}/messages",
        {"success": True, "data": {"message": ASSISTANT_REPLY, "sources": SOURCES}},
        method="POST",
    )
    return api


@pytest.fixture
def chat(connection: ConnectionManager, chat_api: FakeApiClient) -> ChatSession:
    """Chat session bound to repository repo-1 with a fixed clock."""
    return ChatSession(connection, chat_api, "repo-1", clock=lambda: NOW)


@pytest.mark.unit
class TestStart:
    """Test creating and joining sessions."""

    async def test_start_creates_session_and_joins(
        self,
        connection: ConnectionManager,
        transport_factory: FakeTransportFactory,
        chat_api: FakeApiClient,
        memory_storage: MemoryStorage,
    ) -> None:
        """Test that start posts the repository and joins over the socket."""
        await connection.connect()
        recent = recent_chat_sessions(memory_storage)
        chat = ChatSession(connection, chat_api, "repo-1", recent_sessions=recent)

        session_id = await chat.start()

        assert session_id == "s1"
        assert chat.session_id == "s1"
        assert chat_api.calls[0].payload == {"repositoryId": "repo-1"}
        assert transport_factory.latest.sent_frames() == [{"type": "chat:join", "sessionId": "s1"}]
        assert recent.items() == ["s1"]

    async def test_start_is_idempotent(self, chat: ChatSession, chat_api: FakeApiClient) -> None:
        """Test that a second start reuses the session."""
        _ = await chat.start()
        _ = await chat.start()

        assert chat_api.paths("POST") == [CHAT_SESSIONS_PATH]

    async def test_start_failure_sets_error(self, connection: ConnectionManager, api: FakeApiClient) -> None:
        """Test that an unsuccessful envelope raises and sets error."""
        api.respond(CHAT_SESSIONS_PATH, {"success": False, "error": "Repository not found"}, method="POST")
        chat = ChatSession(connection, api, "repo-404")

        with pytest.raises(ApiError, match="Repository not found"):
            _ = await chat.start()

        assert chat.error == "Repository not found"
        assert chat.session_id is None

    async def test_start_without_session_id(self, connection: ConnectionManager, api: FakeApiClient) -> None:
        """Test that a response without sessionId is an error."""
        api.respond(CHAT_SESSIONS_PATH, {"success": True, "data": {}}, method="POST")
        chat = ChatSession(connection, api, "repo-1")

        with pytest.raises(ApiError, match="sessionId"):
            _ = await chat.start()


@pytest.mark.unit
class TestRestFallback:
    """Test answers fetched over REST while disconnected."""

    async def test_reply_appended(self, chat: ChatSession, chat_api: FakeApiClient) -> None:
        """Test that the blocking endpoint's reply is appended with its sources."""
        _ = await chat.start()

        user_message = await chat.send_message("  How do I authenticate?  ")

        assert user_message is not None
        assert user_message.content == "How do I authenticate?"
        assert user_message.id == f"temp-{int(NOW.timestamp() * 1000)}"
        assert [message.role for message in chat.messages] == ["user", "assistant"]
        assert chat.messages[1].sources[0].document_path == "docs/auth.md"
        assert chat.state is ChatState.IDLE
        assert chat_api.calls[-1].path == f"{SESSION_PATH}/messages"
        assert chat_api.calls[-1].payload == {"message": "How do I authenticate?"}

    async def test_rest_error_reported(self, connection: ConnectionManager, api: FakeApiClient) -> None:
        """Test that a failing request sets error and returns to idle."""
        api.respond(CHAT_SESSIONS_PATH, {"success": True, "data": {"sessionId": "s1"}}, method="POST")
        api.respond(f"{SESSION_PATH}/messages", ApiError("POST failed: HTTP 500", status=500), method="POST")
        chat = ChatSession(connection, api, "repo-1")
        _ = await chat.start()

        user_message = await chat.send_message("Hello")

        assert user_message is not None
        assert chat.error == "POST failed: HTTP 500"
        assert chat.state is ChatState.IDLE
        assert len(chat.messages) == 1

    async def test_malformed_reply_reported(self, connection: ConnectionManager, api: FakeApiClient) -> None:
        """Test that a reply without a valid message is an error."""
        api.respond(CHAT_SESSIONS_PATH, {"success": True, "data": {"sessionId": "s1"}}, method="POST")
        api.respond(f"{SESSION_PATH}/messages", {"success": True, "data": {"message": {"role": "x"}}}, method="POST")
        chat = ChatSession(connection, api, "repo-1")
        _ = await chat.start()

        _ = await chat.send_message("Hello")

        assert chat.error is not None
        assert "malformed" in chat.error

    async def test_guard_conditions(self, chat: ChatSession) -> None:
        """Test that blank text or an unstarted session sends nothing."""
        assert await chat.send_message("Hello") is None

        _ = await chat.start()

        assert await chat.send_message("   ") is None
        assert chat.messages == ()


@pytest.mark.unit
class TestStreaming:
    """Test answers streamed over the socket."""

    async def _started(self, chat: ChatSession, connection: ConnectionManager) -> None:
        await connection.connect()
        _ = await chat.start()
        _ = await chat.send_message("How do I authenticate?")

    async def test_streamed_answer(self, chat: ChatSession, connection: ConnectionManager) -> None:
        """Test the full start, chunk, end sequence."""
        await self._started(chat, connection)
        assert chat.state is ChatState.AWAITING

        chat.handle_message(_stream("start", messageId="m-1"))
        chat.handle_message(_stream("chunk", messageId="m-1", chunk="Use a "))
        chat.handle_message(_stream("chunk", messageId="m-1", chunk="bearer token."))

        assert chat.state is ChatState.STREAMING
        assert chat.streaming_content == "Use a bearer token."

        chat.handle_message(_stream("end", messageId="m-1", message=ASSISTANT_REPLY, sources=SOURCES))

        answer = await chat.wait_for_answer(timeout=0.5)
        assert answer is not None
        assert answer.content == "Use a bearer token."
        assert answer.sources[0].document_id == "d1"
        assert chat.state is ChatState.IDLE
        assert chat.streaming_content == ""

    async def test_chunk_without_start_begins_stream(self, chat: ChatSession, connection: ConnectionManager) -> None:
        """Test that a first chunk also starts streaming."""
        await self._started(chat, connection)

        chat.handle_message(_stream("chunk", messageId="m-1", chunk="Hi"))

        assert chat.state is ChatState.STREAMING
        assert chat.streaming_content == "Hi"

    async def test_end_without_message_uses_streamed_text(
        self,
        chat: ChatSession,
        connection: ConnectionManager,
    ) -> None:
        """Test that the accumulated chunks become the answer."""
        await self._started(chat, connection)
        chat.handle_message(_stream("chunk", messageId="m-9", chunk="Partial "))
        chat.handle_message(_stream("chunk", messageId="m-9", chunk="answer"))

        chat.handle_message(_stream("end", messageId="m-9"))

        answer = chat.messages[-1]
        assert answer.id == "m-9"
        assert answer.role == "assistant"
        assert answer.content == "Partial answer"

    async def test_redelivered_frames_ignored(self, chat: ChatSession, connection: ConnectionManager) -> None:
        """Test that frames for a finished message are dropped."""
        await self._started(chat, connection)
        chat.handle_message(_stream("end", messageId="m-1", message=ASSISTANT_REPLY))
        _ = await chat.send_message("Follow-up")

        chat.handle_message(_stream("chunk", messageId="m-1", chunk="stale"))
        chat.handle_message(_stream("end", messageId="m-1", message=ASSISTANT_REPLY))

        assert chat.state is ChatState.AWAITING
        assert [message.role for message in chat.messages] == ["user", "assistant", "user"]

    async def test_frames_while_idle_ignored(self, chat: ChatSession, connection: ConnectionManager) -> None:
        """Test that stream frames without a pending question do nothing."""
        await connection.connect()
        _ = await chat.start()

        chat.handle_message(_stream("chunk", messageId="m-1", chunk="x"))
        chat.handle_message(_stream("end", messageId="m-1", message=ASSISTANT_REPLY))

        assert chat.messages == ()
        assert chat.state is ChatState.IDLE

    async def test_finished_id_history_is_bounded(self, chat: ChatSession, connection: ConnectionManager) -> None:
        """Test that only the most recent finished message ids are remembered."""
        await self._started(chat, connection)
        answers = FINISHED_ID_HISTORY + 5
        for index in range(answers):
            if index:
                _ = await chat.send_message(f"Question {index}")
            chat.handle_message(_stream("chunk", messageId=f"m-{index}", chunk=f"Answer {index}"))
            chat.handle_message(_stream("end", messageId=f"m-{index}"))

        finished = chat._finished_ids  # pyright: ignore[reportPrivateUsage]  # testing internal state
        assert len(finished) == FINISHED_ID_HISTORY
        assert "m-0" not in finished
        assert f"m-{answers - 1}" in finished
        assert len(chat.messages) == 2 * answers

    async def test_other_session_ignored(self, chat: ChatSession, connection: ConnectionManager) -> None:
        """Test that frames addressed to another session are ignored."""
        await self._started(chat, connection)

        chat.handle_message(InboundMessage(type="chat:stream:chunk", data={"sessionId": "other", "chunk": "x"}))

        assert chat.state is ChatState.AWAITING

    async def test_stream_error(self, chat: ChatSession, connection: ConnectionManager) -> None:
        """Test that a stream error ends the answer with an error."""
        await self._started(chat, connection)
        chat.handle_message(_stream("chunk", messageId="m-1", chunk="x"))

        chat.handle_message(_stream("error", error="Model overloaded"))

        assert chat.error == "Model overloaded"
        assert chat.state is ChatState.IDLE
        assert chat.streaming_content == ""

    async def test_busy_session_rejects_new_question(self, chat: ChatSession, connection: ConnectionManager) -> None:
        """Test that only one question is pending at a time."""
        await self._started(chat, connection)

        assert chat.busy
        assert await chat.send_message("Another one") is None

    async def test_connection_lost_while_waiting(
        self,
        chat: ChatSession,
        connection: ConnectionManager,
        transport_factory: FakeTransportFactory,
    ) -> None:
        """Test that a dropped connection ends the pending answer."""
        await self._started(chat, connection)

        transport_factory.latest.server_close(1006)
        await wait_until(lambda: chat.state is ChatState.IDLE)

        assert chat.error == "Connection lost while waiting for the answer"

    async def test_rejoins_after_reconnect(
        self,
        chat: ChatSession,
        connection: ConnectionManager,
        transport_factory: FakeTransportFactory,
    ) -> None:
        """Test that the session is joined again on a new socket."""
        await connection.connect()
        _ = await chat.start()

        transport_factory.latest.server_close(1006)
        await wait_until(lambda: transport_factory.calls == 2 and connection.state is ConnectionState.CONNECTED)
        await wait_until(lambda: bool(transport_factory.latest.sent))

        assert transport_factory.latest.sent_frames() == [{"type": "chat:join", "sessionId": "s1"}]

    async def test_close_leaves_session(
        self,
        chat: ChatSession,
        connection: ConnectionManager,
        transport_factory: FakeTransportFactory,
    ) -> None:
        """Test that close sends chat:leave and unregisters listeners."""
        await connection.connect()
        async with chat:
            assert connection.router.listener_count == 1

        assert transport_factory.latest.sent_frames()[-1] == {"type": "chat:leave", "sessionId": "s1"}
        assert connection.router.listener_count == 0
