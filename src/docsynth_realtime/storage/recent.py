"""Bounded most-recent-first lists (commands, searches, queries, chat sessions)."""

from __future__ import annotations

from pydantic import TypeAdapter

from docsynth_realtime.storage.keys import (
    RECENT_CHAT_SESSIONS_KEY,
    RECENT_COMMANDS_KEY,
    RECENT_SEARCHES_KEY,
    recent_queries_key,
)
from docsynth_realtime.storage.slots import StorageSlot
from docsynth_realtime.types import KeyValueStore

DEFAULT_RECENT_LIMIT = 5

_STRING_LIST: TypeAdapter[list[str]] = TypeAdapter(list[str])


def _identity(data: object) -> object:
    return data


class RecentItems:
    """Most-recent-first, de-duplicated, bounded list of strings."""

    def __init__(self, slot: StorageSlot[list[str]], limit: int = DEFAULT_RECENT_LIMIT) -> None:
        if limit < 1:
            msg = f"limit must be at least 1, got {limit}"
            raise ValueError(msg)
        self._slot: StorageSlot[list[str]] = slot
        self._limit: int = limit

    @property
    def limit(self) -> int:
        return self._limit

    def items(self) -> list[str]:
        """Return the stored entries, newest first."""
        return self._slot.read()[: self._limit]

    def push(self, item: str) -> list[str]:
        """Record an item as most recent.

        Blank items are ignored. An existing entry moves to the front.

        Returns:
            Updated list, newest first
        """
        value = item.strip()
        current = self.items()
        if not value:
            return current
        updated = [value, *(entry for entry in current if entry != value)][: self._limit]
        _ = self._slot.write(updated)
        return updated

    def remove(self, item: str) -> list[str]:
        """Drop an entry if present."""
        current = self.items()
        if item not in current:
            return current
        updated = [entry for entry in current if entry != item]
        _ = self._slot.write(updated)
        return updated

    def clear(self) -> None:
        _ = self._slot.clear()


def recent_slot(storage: KeyValueStore, key: str) -> StorageSlot[list[str]]:
    """Create the slot for a recent-items key.

    The dashboard stores these lists as bare JSON arrays, read as version 0.
    """
    return StorageSlot(storage, key, _STRING_LIST, default=list, migrations={0: _identity})


def recent_commands(storage: KeyValueStore) -> RecentItems:
    return RecentItems(recent_slot(storage, RECENT_COMMANDS_KEY))


def recent_searches(storage: KeyValueStore) -> RecentItems:
    return RecentItems(recent_slot(storage, RECENT_SEARCHES_KEY))


def recent_queries(storage: KeyValueStore, repository_id: str) -> RecentItems:
    return RecentItems(recent_slot(storage, recent_queries_key(repository_id)))


def recent_chat_sessions(storage: KeyValueStore) -> RecentItems:
    return RecentItems(recent_slot(storage, RECENT_CHAT_SESSIONS_KEY))
