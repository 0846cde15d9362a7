"""Chat and activity consumers of the realtime connection."""

from docsynth_realtime.sessions.activity import ActivityFeed
from docsynth_realtime.sessions.chat import ChatSession, ChatState
from docsynth_realtime.sessions.models import ActivityEvent, ActivityType, ChatMessage, ChatSource

__all__ = [
    "ActivityEvent",
    "ActivityFeed",
    "ActivityType",
    "ChatMessage",
    "ChatSession",
    "ChatSource",
    "ChatState",
]
