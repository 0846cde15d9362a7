"""Application runner wiring configuration, storage, REST and realtime layers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass

from docsynth_realtime.core.config import MainConfig
from docsynth_realtime.core.reconnect import build_reconnect_policy
from docsynth_realtime.core.state_machine import ConnectionState
from docsynth_realtime.notifications.models import Notification
from docsynth_realtime.notifications.store import NotificationStore, notifications_slot
from docsynth_realtime.realtime.connection import ConnectionManager
from docsynth_realtime.realtime.hub import RealtimeHub
from docsynth_realtime.realtime.jobs import JobProgressTracker
from docsynth_realtime.realtime.transport import AIOHTTPTransportFactory
from docsynth_realtime.sessions.activity import ActivityFeed
from docsynth_realtime.sessions.chat import ChatSession
from docsynth_realtime.sessions.models import ActivityEvent, ChatMessage
from docsynth_realtime.storage.local_store import JsonFileStorage
from docsynth_realtime.storage.preferences import storage_token_provider
from docsynth_realtime.storage.recent import recent_chat_sessions
from docsynth_realtime.types import InboundMessage, JobProgress, KeyValueStore, TokenProvider
from docsynth_realtime.utils.http_client import AIOHTTPApiClient, ApiError, AuthenticationRequiredError

logger = logging.getLogger(__name__)

# Interval between merges of notification changes made by other processes
STORAGE_SYNC_SECONDS = 5.0

type Printer = Callable[[str], None]


@dataclass(slots=True)
class Services:
    """Components shared by all commands of one run."""

    storage: KeyValueStore
    token_provider: TokenProvider
    api: AIOHTTPApiClient
    connection: ConnectionManager
    hub: RealtimeHub
    notifications: NotificationStore
    activity: ActivityFeed


def format_notification(notification: Notification) -> str:
    marker = " " if notification.read else "*"
    line = f"{marker} [{notification.type.value}] {notification.title}: {notification.message}"
    if notification.action_url:
        line += f" ({notification.action_url})"
    return line


def format_activity(event: ActivityEvent) -> str:
    repository = f" [{event.repository_name}]" if event.repository_name else ""
    return f"~ {event.type.value}{repository} {event.title}"


def format_job_progress(progress: JobProgress) -> str:
    line = f"job {progress.job_id}: {progress.status} {progress.progress:.0f}%"
    if progress.error:
        line += f" ({progress.error})"
    return line


class ApplicationRunner:
    """Main application runner that coordinates all components."""

    def __init__(self, config: MainConfig, *, printer: Printer = print) -> None:
        """Initialize the application runner.

        Args:
            config: Validated application configuration
            printer: Output sink for user-facing lines
        """
        self.config: MainConfig = config
        self._print: Printer = printer

    def build_storage(self) -> JsonFileStorage:
        return JsonFileStorage(self.config.storage.path)

    def build_token_provider(self, storage: KeyValueStore) -> TokenProvider:
        """Prefer the configured token, falling back to the stored dashboard token."""
        configured = self.config.connection.token
        stored = storage_token_provider(storage)

        def provide() -> str | None:
            return configured or stored()

        return provide

    def notification_store(self) -> NotificationStore:
        """Open the persisted notification store without any network access."""
        store = NotificationStore(
            notifications_slot(self.build_storage()),
            max_notifications=self.config.notifications.max_notifications,
        )
        store.load()
        return store

    @asynccontextmanager
    async def open_services(self) -> AsyncIterator[Services]:
        """Create and tear down the REST client and realtime connection."""
        connection_config = self.config.connection
        storage = self.build_storage()
        token_provider = self.build_token_provider(storage)

        async with AsyncExitStack() as stack:
            api = await stack.enter_async_context(
                AIOHTTPApiClient(
                    connection_config.api_url,
                    token_provider=token_provider,
                    timeout_seconds=connection_config.request_timeout_seconds,
                )
            )
            factory = await stack.enter_async_context(
                AIOHTTPTransportFactory(
                    open_timeout_seconds=connection_config.open_timeout_seconds,
                    heartbeat_seconds=connection_config.heartbeat_seconds,
                )
            )
            connection = ConnectionManager(
                connection_config.resolved_ws_url(),
                token_provider=token_provider,
                transport_factory=factory,
                reconnect_policy=build_reconnect_policy(connection_config.reconnect),
                auto_reconnect=connection_config.auto_reconnect,
            )
            # Registered last so it runs before the factory session closes
            stack.push_async_callback(connection.disconnect)

            notifications = NotificationStore(
                notifications_slot(storage),
                max_notifications=self.config.notifications.max_notifications,
            )
            notifications.load()

            yield Services(
                storage=storage,
                token_provider=token_provider,
                api=api,
                connection=connection,
                hub=RealtimeHub(connection),
                notifications=notifications,
                activity=ActivityFeed(max_events=self.config.activity.max_events),
            )

    async def watch(self, channels: Sequence[str] = (), *, stop_event: asyncio.Event | None = None) -> None:
        """Print notifications and activity as they arrive until stopped.

        Args:
            channels: Extra channels to subscribe to
            stop_event: Event ending the watch (default: SIGINT/SIGTERM)

        Raises:
            AuthenticationRequiredError: If no token is available
        """
        stop = stop_event or asyncio.Event()
        async with self.open_services() as services:
            self._require_token(services)

            if self.config.notifications.hydrate_on_start:
                _ = await services.notifications.refresh(services.api)
            _ = await services.activity.refresh(services.api)
            for notification in services.notifications.notifications:
                self._print(format_notification(notification))
            for event in reversed(services.activity.events):
                self._print(format_activity(event))

            def on_frame(message: InboundMessage) -> None:
                notification = services.notifications.handle_message(message)
                if notification is not None:
                    self._print(format_notification(notification))
                event = services.activity.handle_message(message)
                if event is not None:
                    self._print(format_activity(event))

            def on_state(state: ConnectionState) -> None:
                self._print(f"# connection {state.value}")

            remove_frame_listener = services.connection.add_listener(on_frame)
            remove_state_listener = services.connection.add_state_listener(on_state)
            try:
                for channel in channels:
                    await services.hub.subscribe(channel)
                async with services.hub.lease(), self._signal_handlers(stop):
                    while not stop.is_set():
                        with contextlib.suppress(TimeoutError):
                            async with asyncio.timeout(STORAGE_SYNC_SECONDS):
                                _ = await stop.wait()
                        _ = services.notifications.sync_from_storage()
            finally:
                remove_frame_listener()
                remove_state_listener()

        logger.info("Watch stopped")

    async def follow_job(self, job_id: str, *, timeout: float | None = None) -> JobProgress:
        """Print progress of one job until it completes or fails.

        Raises:
            AuthenticationRequiredError: If no token is available
            TimeoutError: If the job does not finish in time
        """
        async with self.open_services() as services:
            self._require_token(services)
            async with (
                services.hub.lease(),
                JobProgressTracker(
                    services.hub,
                    job_id,
                    on_update=lambda progress: self._print(format_job_progress(progress)),
                ) as tracker,
            ):
                return await tracker.wait(timeout)

    async def ask(self, repository_id: str, question: str, *, timeout: float | None = None) -> ChatMessage | None:
        """Ask one chat question and return the answer.

        The answer is streamed when the realtime connection is up and
        fetched over REST otherwise.

        Raises:
            AuthenticationRequiredError: If no token is available
            ApiError: If the backend rejects the question
            TimeoutError: If no answer arrives in time
        """
        async with self.open_services() as services:
            self._require_token(services)
            async with services.hub.lease() as connection:
                chat = ChatSession(
                    connection,
                    services.api,
                    repository_id,
                    recent_sessions=recent_chat_sessions(services.storage),
                )
                async with chat:
                    if await chat.send_message(question) is None:
                        msg = "Question must not be empty"
                        raise ValueError(msg)
                    answer = await chat.wait_for_answer(timeout)
                    if chat.error is not None:
                        raise ApiError(chat.error)
                    return answer

    def _require_token(self, services: Services) -> None:
        if not services.token_provider():
            msg = "No API token available. Set connection.token in the configuration or sign in to the dashboard."
            raise AuthenticationRequiredError(msg)

    @asynccontextmanager
    async def _signal_handlers(self, stop: asyncio.Event) -> AsyncIterator[None]:
        loop = asyncio.get_running_loop()

        def request_shutdown() -> None:
            if not stop.is_set():
                logger.info("Shutdown signal received, stopping")
                stop.set()

        installed: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, request_shutdown)
            except (NotImplementedError, RuntimeError):
                # Not available off the main thread or on some platforms
                continue
            installed.append(sig)
        try:
            yield
        finally:
            for sig in installed:
                _ = loop.remove_signal_handler(sig)
