"""DocSynth realtime client.

This package keeps one authenticated WebSocket link to the DocSynth backend,
routes pushed frames to consumers (job progress, notifications, chat and
activity) and persists a small client state shared with the dashboard.
"""

from docsynth_realtime.__main__ import main
from docsynth_realtime.core.config import MainConfig, load_main_config
from docsynth_realtime.core.state_machine import ConnectionState
from docsynth_realtime.notifications.store import NotificationStore
from docsynth_realtime.realtime.connection import ConnectionManager
from docsynth_realtime.realtime.hub import RealtimeHub

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "MainConfig",
    "NotificationStore",
    "RealtimeHub",
    "load_main_config",
    "main",
]
