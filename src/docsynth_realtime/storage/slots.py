"""Versioned, schema-validated values in a key-value store.

A StorageSlot owns one key. Values are written as a JSON envelope
``{"version": N, "data": ...}`` and validated with a pydantic TypeAdapter on
read. Values written before envelopes existed (bare JSON, or plain strings)
are read as version 0 and upgraded through the registered migrations.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping

from pydantic import TypeAdapter, ValidationError

from docsynth_realtime.types import KeyValueStore
from docsynth_realtime.utils.logging import get_logger, log_with_context

logger = get_logger(__name__)

type Migration = Callable[[object], object]

LEGACY_VERSION = 0


def _unwrap(raw: str) -> tuple[int, object]:
    try:
        decoded: object = json.loads(raw)  # pyright: ignore[reportAny]  # JSON boundary
    except (ValueError, RecursionError):
        # Plain strings such as a bare "skipped" flag
        return LEGACY_VERSION, raw

    if isinstance(decoded, dict) and decoded.keys() == {"version", "data"}:
        version = decoded["version"]  # pyright: ignore[reportUnknownVariableType]
        if isinstance(version, int) and not isinstance(version, bool):
            return version, decoded["data"]  # pyright: ignore[reportUnknownVariableType]
    return LEGACY_VERSION, decoded


class StorageSlot[T]:
    """Typed access to one storage key.

    Reads never raise: missing, corrupt, unmigratable or invalid values fall
    back to the default with a warning. Writes return False instead of
    raising when the backend fails.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        key: str,
        adapter: TypeAdapter[T],
        *,
        default: Callable[[], T],
        version: int = 1,
        migrations: Mapping[int, Migration] | None = None,
    ) -> None:
        """Initialize the slot.

        Args:
            storage: Backing key-value store
            key: Storage key owned by this slot
            adapter: Validator for the stored data
            default: Factory for the value returned when nothing valid is stored
            version: Current schema version written by this slot (default: 1)
            migrations: Functions upgrading data from version N to N + 1, keyed by N
        """
        self._storage: KeyValueStore = storage
        self._key: str = key
        self._adapter: TypeAdapter[T] = adapter
        self._default: Callable[[], T] = default
        self._version: int = version
        self._migrations: dict[int, Migration] = dict(migrations or {})

    @property
    def key(self) -> str:
        return self._key

    @property
    def version(self) -> int:
        return self._version

    def read(self) -> T:
        """Return the stored value, or the default."""
        try:
            raw = self._storage.get_item(self._key)
        except OSError as exc:
            self._warn("Storage read failed", error=str(exc))
            return self._default()
        if raw is None:
            return self._default()

        version, data = _unwrap(raw)
        if version > self._version:
            self._warn("Stored value has a newer schema version", stored_version=version)
            return self._default()

        while version < self._version:
            migrate = self._migrations.get(version)
            if migrate is None:
                self._warn("No migration for stored schema version", stored_version=version)
                return self._default()
            try:
                data = migrate(data)
            except (TypeError, ValueError, KeyError) as exc:
                self._warn("Migration failed", stored_version=version, error=str(exc))
                return self._default()
            version += 1

        try:
            return self._adapter.validate_python(data)
        except ValidationError as exc:
            self._warn("Stored value failed validation", error_count=exc.error_count())
            return self._default()

    def write(self, value: T) -> bool:
        """Store a value under the current schema version.

        Returns:
            True if the value was persisted
        """
        envelope = {
            "version": self._version,
            "data": self._adapter.dump_python(value, mode="json", by_alias=True),  # pyright: ignore[reportAny]
        }
        try:
            self._storage.set_item(self._key, json.dumps(envelope, separators=(",", ":")))
        except OSError as exc:
            self._warn("Storage write failed", error=str(exc))
            return False
        return True

    def clear(self) -> bool:
        """Remove the key.

        Returns:
            True if the backend accepted the removal
        """
        try:
            self._storage.remove_item(self._key)
        except OSError as exc:
            self._warn("Storage remove failed", error=str(exc))
            return False
        return True

    def _warn(self, message: str, **context: object) -> None:
        log_with_context(logger, logging.WARNING, message, extra={"storage_key": self._key, **context})
