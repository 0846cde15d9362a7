"""Activity feed fed by REST history and ``activity:new`` frames."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping

from pydantic import ValidationError

from docsynth_realtime.sessions.models import ActivityEvent
from docsynth_realtime.types import ApiClient, InboundMessage
from docsynth_realtime.utils.http_client import ApiError
from docsynth_realtime.utils.logging import get_logger
from docsynth_realtime.utils.sanitization import sanitize_exception

logger = get_logger(__name__)

ACTIVITY_PATH = "/api/activity"
ACTIVITY_NEW = "activity:new"
DEFAULT_MAX_EVENTS = 8

type ActivityListener = Callable[[tuple[ActivityEvent, ...]], None]


class ActivityFeed:
    """Most recent activity events, newest first."""

    def __init__(self, *, max_events: int = DEFAULT_MAX_EVENTS) -> None:
        if max_events < 1:
            msg = f"max_events must be at least 1, got {max_events}"
            raise ValueError(msg)
        self._max: int = max_events
        self._events: list[ActivityEvent] = []
        self._loading: bool = False
        self._listeners: list[ActivityListener] = []

    @property
    def events(self) -> tuple[ActivityEvent, ...]:
        return tuple(self._events)

    @property
    def loading(self) -> bool:
        """Whether a history request is in flight."""
        return self._loading

    @property
    def max_events(self) -> int:
        return self._max

    def add_listener(self, listener: ActivityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def refresh(self, api: ApiClient) -> bool:
        """Replace the feed with the latest history.

        Failures are logged and leave the feed unchanged.

        Returns:
            True if the feed was replaced
        """
        self._loading = True
        try:
            body = await api.fetch(f"{ACTIVITY_PATH}?limit={self._max}")
        except ApiError as exc:
            logger.warning("Activity history unavailable: %s", sanitize_exception(exc))
            return False
        finally:
            self._loading = False

        data = body.get("data")
        events = data.get("events") if isinstance(data, Mapping) else None
        if body.get("success") is not True or not isinstance(events, list):
            logger.debug("Activity response carried no events")
            return False

        self._events = self._dedupe(self._parse(events))[: self._max]  # pyright: ignore[reportUnknownArgumentType]
        self._notify()
        return True

    def handle_message(self, message: InboundMessage) -> ActivityEvent | None:
        """Prepend an ``activity:new`` event.

        Returns:
            The added event, or None if the frame is not a new, valid event
        """
        if message.type != ACTIVITY_NEW:
            return None
        try:
            event = ActivityEvent.model_validate(message.data)
        except ValidationError as exc:
            logger.warning("Ignoring invalid activity event: %d validation errors", exc.error_count())
            return None
        if any(existing.id == event.id for existing in self._events):
            return None
        self._events = [event, *self._events][: self._max]
        self._notify()
        return event

    def _parse(self, items: Iterable[object]) -> list[ActivityEvent]:
        parsed: list[ActivityEvent] = []
        for item in items:
            try:
                parsed.append(ActivityEvent.model_validate(item))
            except ValidationError:
                logger.debug("Skipping invalid activity event from history")
        return parsed

    @staticmethod
    def _dedupe(events: Iterable[ActivityEvent]) -> list[ActivityEvent]:
        seen: set[str] = set()
        result: list[ActivityEvent] = []
        for event in events:
            if event.id not in seen:
                seen.add(event.id)
                result.append(event)
        return result

    def _notify(self) -> None:
        snapshot = self.events
        for listener in tuple(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Activity listener failed")
