"""Bounded, persisted notification store.

The store keeps notifications newest first, derives the unread count on
every access, persists every change through a StorageSlot and merges three
sources: live pushes, REST history and copies written by other processes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime

from pydantic import TypeAdapter, ValidationError

from docsynth_realtime.notifications.mapping import notification_from_message
from docsynth_realtime.notifications.models import Notification
from docsynth_realtime.storage.keys import NOTIFICATIONS_KEY
from docsynth_realtime.storage.slots import StorageSlot
from docsynth_realtime.types import ApiClient, InboundMessage, KeyValueStore
from docsynth_realtime.utils.http_client import ApiError
from docsynth_realtime.utils.logging import get_logger, log_with_context
from docsynth_realtime.utils.sanitization import sanitize_exception

logger = get_logger(__name__)

DEFAULT_MAX_NOTIFICATIONS = 50
NOTIFICATIONS_PATH = "/api/notifications"

type NotificationsListener = Callable[[tuple[Notification, ...]], None]

_NOTIFICATION_LIST: TypeAdapter[list[Notification]] = TypeAdapter(list[Notification])
_EPOCH = datetime.min.replace(tzinfo=UTC)


def _identity(data: object) -> object:
    return data


def notifications_slot(storage: KeyValueStore) -> StorageSlot[list[Notification]]:
    """Create the slot holding the persisted notification list.

    The dashboard stores a bare JSON array; it is read as version 0.
    """
    return StorageSlot(storage, NOTIFICATIONS_KEY, _NOTIFICATION_LIST, default=list, migrations={0: _identity})


def _timestamp_key(notification: Notification) -> datetime:
    try:
        parsed = datetime.fromisoformat(notification.timestamp)
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class NotificationStore:
    """Newest-first list of notifications with a fixed capacity.

    Example:
        >>> store = NotificationStore(notifications_slot(storage))
        >>> store.load()
        >>> _ = connection.add_listener(store.handle_message)
        >>> await store.refresh(api)
    """

    def __init__(
        self,
        slot: StorageSlot[list[Notification]] | None = None,
        *,
        max_notifications: int = DEFAULT_MAX_NOTIFICATIONS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            slot: Persistence slot, or None for an in-memory store
            max_notifications: Capacity; the oldest entries are evicted beyond it (default: 50)
            clock: Source of the current time for synthesized notifications
        """
        if max_notifications < 1:
            msg = f"max_notifications must be at least 1, got {max_notifications}"
            raise ValueError(msg)
        self._slot: StorageSlot[list[Notification]] | None = slot
        self._max: int = max_notifications
        self._clock: Callable[[], datetime] = clock or (lambda: datetime.now(UTC))
        self._items: list[Notification] = []
        self._listeners: list[NotificationsListener] = []

    @property
    def max_notifications(self) -> int:
        return self._max

    @property
    def notifications(self) -> tuple[Notification, ...]:
        """Current notifications, newest first."""
        return tuple(self._items)

    @property
    def unread_count(self) -> int:
        """Number of unread notifications."""
        return sum(1 for notification in self._items if not notification.read)

    def get(self, notification_id: str) -> Notification | None:
        for notification in self._items:
            if notification.id == notification_id:
                return notification
        return None

    def add_listener(self, listener: NotificationsListener) -> Callable[[], None]:
        """Register a callback receiving the new snapshot after every change.

        Returns:
            Callable removing the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def load(self) -> None:
        """Replace the in-memory list with the persisted one."""
        if self._slot is None:
            return
        self._items = self._normalize(self._slot.read())
        logger.debug("Loaded %d notifications from storage", len(self._items))
        self._notify()

    def add(self, notification: Notification) -> bool:
        """Prepend a notification.

        A notification whose id is already stored is ignored; the stored
        copy, including its read flag, is kept.

        Returns:
            True if the notification was added
        """
        if self.get(notification.id) is not None:
            logger.debug("Ignoring duplicate notification %s", notification.id)
            return False
        self._items = [notification, *self._items][: self._max]
        self._commit()
        return True

    def handle_message(self, message: InboundMessage) -> Notification | None:
        """Turn a recognized live event frame into a notification.

        Returns:
            The added notification, or None if the frame maps to nothing or is a duplicate
        """
        notification = notification_from_message(message, now=self._clock())
        if notification is None:
            return None
        if not self.add(notification):
            return None
        log_with_context(
            logger,
            logging.INFO,
            "Notification received",
            extra={"notification_id": notification.id, "notification_type": notification.type.value},
        )
        return notification

    def hydrate(self, items: Iterable[object]) -> int:
        """Merge notifications fetched from the server.

        Entries whose id is already stored are skipped (the local copy
        wins); invalid entries are skipped with a warning. Server entries
        are placed before the existing ones.

        Returns:
            Number of notifications added
        """
        known = {notification.id for notification in self._items}
        fresh: list[Notification] = []
        for item in items:
            try:
                notification = Notification.model_validate(item)
            except ValidationError as exc:
                logger.warning("Skipping invalid notification from server: %d validation errors", exc.error_count())
                continue
            if notification.id in known:
                continue
            known.add(notification.id)
            fresh.append(notification)

        if not fresh:
            return 0

        previous_ids = {notification.id for notification in self._items}
        self._items = [*fresh, *self._items][: self._max]
        self._commit()
        return sum(1 for notification in self._items if notification.id not in previous_ids)

    async def refresh(self, api: ApiClient) -> int:
        """Fetch the notification history and hydrate from it.

        Every failure is logged and swallowed.

        Returns:
            Number of notifications added
        """
        try:
            body = await api.fetch(NOTIFICATIONS_PATH)
        except ApiError as exc:
            logger.warning("Notification history unavailable: %s", sanitize_exception(exc))
            return 0

        data = body.get("data")
        if body.get("success") is not True or not isinstance(data, Sequence) or isinstance(data, str):
            logger.debug("Notification history response carried no list")
            return 0

        added = self.hydrate(data)  # pyright: ignore[reportUnknownArgumentType]
        logger.info("Hydrated %d notifications from history", added)
        return added

    def mark_as_read(self, notification_id: str) -> bool:
        """Mark one notification read.

        Returns:
            True if a stored notification changed
        """
        changed = False
        updated: list[Notification] = []
        for notification in self._items:
            if notification.id == notification_id and not notification.read:
                notification = notification.as_read()
                changed = True
            updated.append(notification)
        if changed:
            self._items = updated
            self._commit()
        return changed

    def mark_all_as_read(self) -> int:
        """Mark every notification read.

        Returns:
            Number of notifications that changed
        """
        unread = self.unread_count
        if unread == 0:
            return 0
        self._items = [notification.as_read() for notification in self._items]
        self._commit()
        return unread

    def clear_notification(self, notification_id: str) -> bool:
        """Remove one notification.

        Returns:
            True if it was present
        """
        remaining = [notification for notification in self._items if notification.id != notification_id]
        if len(remaining) == len(self._items):
            return False
        self._items = remaining
        self._commit()
        return True

    def clear_all(self) -> None:
        self._items = []
        self._commit()

    def merge_external(self, items: Iterable[Notification]) -> bool:
        """Merge a list written by another process.

        The result is the union of both lists by id, with a notification
        read if either copy is read, ordered newest first and capped.

        Returns:
            True if the in-memory list changed
        """
        merged: dict[str, Notification] = {notification.id: notification for notification in self._items}
        for other in items:
            mine = merged.get(other.id)
            if mine is None:
                merged[other.id] = other
            elif other.read and not mine.read:
                merged[other.id] = mine.as_read()

        ordered = sorted(merged.values(), key=_timestamp_key, reverse=True)[: self._max]
        if ordered == self._items:
            return False
        self._items = ordered
        self._commit()
        return True

    def sync_from_storage(self) -> bool:
        """Merge the persisted list, picking up writes from other processes.

        Returns:
            True if the in-memory list changed
        """
        if self._slot is None:
            return False
        return self.merge_external(self._slot.read())

    def _normalize(self, items: Iterable[Notification]) -> list[Notification]:
        seen: set[str] = set()
        result: list[Notification] = []
        for notification in items:
            if notification.id in seen:
                continue
            seen.add(notification.id)
            result.append(notification)
        return result[: self._max]

    def _commit(self) -> None:
        if self._slot is not None:
            _ = self._slot.write(self._items)
        self._notify()

    def _notify(self) -> None:
        snapshot = self.notifications
        for listener in tuple(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Notification listener failed")
