"""In-memory fakes for the transport, transport factory and REST client."""

from __future__ import annotations

import asyncio
import inspect
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from docsynth_realtime.notifications.models import Notification, NotificationType
from docsynth_realtime.utils.http_client import ApiError

WS_URL = "ws://backend.test/ws"

type Incoming = str | None | BaseException
type ApiResponse = Mapping[str, object] | BaseException | Callable[[], object]


class FakeTransport:
    """Transport whose inbound frames are pushed by the test."""

    def __init__(self, *, fail_sends: bool = False) -> None:
        self.sent: list[str] = []
        self.fail_sends: bool = fail_sends
        self.close_calls: int = 0
        self._incoming: asyncio.Queue[Incoming] = asyncio.Queue()
        self._closed: bool = False
        self._close_code: int | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def close_code(self) -> int | None:
        return self._close_code

    async def send_text(self, data: str) -> None:
        if self._closed or self.fail_sends:
            raise ConnectionError("socket is closed")
        self.sent.append(data)

    async def receive(self) -> str | None:
        item = await self._incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.close_calls += 1
        if not self._closed:
            self._closed = True
            self._incoming.put_nowait(None)

    def push(self, frame: Mapping[str, object] | str) -> None:
        """Queue an inbound frame."""
        self._incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def server_close(self, code: int = 1006) -> None:
        """Simulate the peer closing the socket."""
        self._closed = True
        self._close_code = code
        self._incoming.put_nowait(None)

    def fail(self, exc: BaseException) -> None:
        """Make the pending receive() raise."""
        self._closed = True
        self._incoming.put_nowait(exc)

    def sent_frames(self) -> list[dict[str, object]]:
        return [json.loads(raw) for raw in self.sent]  # pyright: ignore[reportAny]


class FakeTransportFactory:
    """Transport factory recording every URL it is asked to open."""

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.transports: list[FakeTransport] = []
        self.errors: list[BaseException] = []
        self.prepared: list[FakeTransport] = []
        self.gate: asyncio.Event | None = None

    @property
    def calls(self) -> int:
        return len(self.urls)

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]

    async def __call__(self, url: str) -> FakeTransport:
        self.urls.append(url)
        if self.gate is not None:
            _ = await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        transport = self.prepared.pop(0) if self.prepared else FakeTransport()
        self.transports.append(transport)
        return transport


class TokenHolder:
    """Mutable token provider."""

    def __init__(self, token: str | None = "test-token") -> None:
        self.token: str | None = token

    def __call__(self) -> str | None:
        return self.token


@dataclass(slots=True)
class ApiCall:
    method: str
    path: str
    payload: dict[str, object] | None = None


@dataclass
class FakeApiClient:
    """ApiClient returning scripted responses per (method, path).

    The last scripted response for a route is repeated; routes without a
    response fail with a 404 ApiError.
    """

    calls: list[ApiCall] = field(default_factory=list)
    _responses: dict[tuple[str, str], list[ApiResponse]] = field(default_factory=dict)

    def respond(self, path: str, response: ApiResponse, *, method: str = "GET") -> None:
        self._responses.setdefault((method, path), []).append(response)

    async def fetch(
        self,
        path: str,
        *,
        method: str = "GET",
        payload: Mapping[str, object] | None = None,
    ) -> Mapping[str, object]:
        self.calls.append(ApiCall(method, path, dict(payload) if payload is not None else None))
        queue = self._responses.get((method, path))
        if not queue:
            raise ApiError(f"{method} {path} failed: HTTP 404", status=404, path=path)
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            result = response()
            if inspect.isawaitable(result):
                result = await result
            return result  # pyright: ignore[reportReturnType]
        return response

    def paths(self, method: str | None = None) -> list[str]:
        return [call.path for call in self.calls if method is None or call.method == method]


async def wait_until(predicate: Callable[[], bool], *, timeout: float = 1.0) -> None:
    """Yield to the event loop until predicate() holds."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)


def make_notification(notification_id: str, **overrides: object) -> Notification:
    """Build a notification with sensible defaults."""
    values: dict[str, object] = {
        "id": notification_id,
        "type": NotificationType.INFO,
        "title": f"Title {notification_id}",
        "message": f"Message {notification_id}",
        "timestamp": "2024-05-01T12:00:00Z",
        "read": False,
    }
    values.update(overrides)
    return Notification.model_validate(values)
