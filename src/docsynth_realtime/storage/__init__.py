"""Client-side persistence: key-value stores, versioned slots and preferences."""

from docsynth_realtime.storage.local_store import BaseStorage, JsonFileStorage, MemoryStorage
from docsynth_realtime.storage.preferences import (
    LanguagePreference,
    OnboardingPreference,
    OnboardingState,
    storage_token_provider,
)
from docsynth_realtime.storage.recent import (
    RecentItems,
    recent_chat_sessions,
    recent_commands,
    recent_queries,
    recent_searches,
)
from docsynth_realtime.storage.slots import StorageSlot

__all__ = [
    "BaseStorage",
    "JsonFileStorage",
    "LanguagePreference",
    "MemoryStorage",
    "OnboardingPreference",
    "OnboardingState",
    "RecentItems",
    "StorageSlot",
    "recent_chat_sessions",
    "recent_commands",
    "recent_queries",
    "recent_searches",
    "storage_token_provider",
]
