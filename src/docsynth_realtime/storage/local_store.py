"""String key-value stores with browser local-storage semantics.

Values are opaque strings. Several processes may share one JsonFileStorage
file; every write re-reads the file first so concurrent writers only ever
overwrite each other per key (last write wins), never whole documents.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import override

from docsynth_realtime.utils.logging import get_logger

logger = get_logger(__name__)


class BaseStorage(ABC):
    """Common key-value operations over a whole-document backend.

    Subclasses load and save the full key -> value mapping; this class
    implements the KeyValueStore protocol and change detection on top.
    """

    def __init__(self) -> None:
        # Values as last seen or written by this instance
        self._snapshot: dict[str, str] = {}

    @abstractmethod
    def _load(self) -> dict[str, str]:
        """Return the current contents of the backend."""

    @abstractmethod
    def _save(self, data: dict[str, str]) -> None:
        """Replace the contents of the backend."""

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        current = self._load()
        current[key] = value
        self._save(current)
        self._snapshot[key] = value

    def remove_item(self, key: str) -> None:
        current = self._load()
        if key in current:
            del current[key]
            self._save(current)
        _ = self._snapshot.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._load())

    def changed_keys(self) -> list[str]:
        """Return keys modified by other writers since the last call.

        Writes made through this instance are not reported.

        Returns:
            Sorted list of added, changed or removed keys
        """
        current = self._load()
        changed = sorted(
            key
            for key in current.keys() | self._snapshot.keys()
            if current.get(key) != self._snapshot.get(key)
        )
        self._snapshot = current
        return changed


class MemoryStorage(BaseStorage):
    """Dict-backed store.

    Pass the same ``backing`` dict to several instances to simulate several
    processes sharing one store.
    """

    def __init__(self, backing: dict[str, str] | None = None) -> None:
        super().__init__()
        self._data: dict[str, str] = backing if backing is not None else {}
        self._snapshot = dict(self._data)

    @override
    def _load(self) -> dict[str, str]:
        return dict(self._data)

    @override
    def _save(self, data: dict[str, str]) -> None:
        self._data.clear()
        self._data.update(data)


class JsonFileStorage(BaseStorage):
    """Store persisted as one JSON object file.

    Example:
        >>> storage = JsonFileStorage(Path("~/.docsynth/storage.json"))
        >>> storage.set_item("docsynth_language", '{"version":1,"data":"en"}')
    """

    def __init__(self, path: Path) -> None:
        """Initialize the store.

        Args:
            path: JSON file location; parent directories are created on first write
        """
        super().__init__()
        self._path: Path = path.expanduser()
        self._snapshot = self._load()

    @property
    def path(self) -> Path:
        return self._path

    @override
    def _load(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Ignoring unreadable storage file %s: %s", self._path, exc)
            return {}

        try:
            data: object = json.loads(text)  # pyright: ignore[reportAny]  # JSON boundary
        except (ValueError, RecursionError) as exc:
            logger.warning("Ignoring unreadable storage file %s: %s", self._path, exc)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring storage file %s: root is not a JSON object", self._path)
            return {}

        return {
            str(key): value  # pyright: ignore[reportUnknownArgumentType]
            for key, value in data.items()  # pyright: ignore[reportUnknownVariableType]
            if isinstance(value, str)
        }

    @override
    def _save(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=f".{self._path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise
