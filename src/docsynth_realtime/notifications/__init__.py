"""Notifications: models, live-event mapping and the persisted store."""

from docsynth_realtime.notifications.mapping import NOTIFICATION_RULES, notification_from_message
from docsynth_realtime.notifications.models import Notification, NotificationType
from docsynth_realtime.notifications.store import (
    DEFAULT_MAX_NOTIFICATIONS,
    NotificationStore,
    notifications_slot,
)

__all__ = [
    "DEFAULT_MAX_NOTIFICATIONS",
    "NOTIFICATION_RULES",
    "Notification",
    "NotificationStore",
    "NotificationType",
    "notification_from_message",
    "notifications_slot",
]
