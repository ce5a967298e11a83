"""
Persistent key-value store for favorites and reading lists.

Each logical record lives under one namespaced key as a JSON document:

  historianFavorites     JSON array of BookRecommendation
  historianReadingLists  JSON array of ReadingList

Backends only move strings; ``PersistentStore`` owns (de)serialisation and
guarantees that neither ``load`` nor ``save`` ever raises. The in-memory state
of the managers stays authoritative when a write fails.

SQLite schema
─────────────
table: kv
  key        TEXT PRIMARY KEY
  value      TEXT NOT NULL  (JSON document)
  updated_at TEXT NOT NULL  (ISO-8601 UTC)
"""

from __future__ import annotations

import logging
import os
import sqlite3
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import TypeAdapter

from core.errors import PersistenceError
from core.models import BookRecommendation, ReadingList

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreKey(str, Enum):
    """The fixed set of namespaced storage keys."""

    FAVORITES = "historianFavorites"
    READING_LISTS = "historianReadingLists"


FAVORITES_ADAPTER: TypeAdapter[list[BookRecommendation]] = TypeAdapter(list[BookRecommendation])
READING_LISTS_ADAPTER: TypeAdapter[list[ReadingList]] = TypeAdapter(list[ReadingList])


# ── Backends ───────────────────────────────────────────────────────────────


class KeyValueBackend(ABC):
    """Synchronous string store with single-key atomicity.

    Implementations raise ``PersistenceError`` when the underlying medium
    fails; they never interpret the stored value.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the raw value for *key*, or ``None`` if absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Replace the raw value for *key*."""


class MemoryBackend(KeyValueBackend):
    """Process-local dict backend (tests and throwaway sessions)."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileBackend(KeyValueBackend):
    """One ``<key>.json`` file per key inside *directory*.

    Writes go to a temporary file that is then renamed over the target, so a
    reader sees either the old or the new document, never a partial one.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"Could not read {path}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Could not write {path}: {exc}") from exc


class SqliteBackend(KeyValueBackend):
    """Embedded-database backend: a single ``kv`` table in a SQLite file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._initialised = False

    @contextmanager
    def _connect(self):
        """Yield a connected sqlite3.Connection, creating the file/dir if needed."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path))
        try:
            if not self._initialised:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv (
                        key        TEXT PRIMARY KEY,
                        value      TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
                self._initialised = True
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get(self, key: str) -> str | None:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"Could not read key {key!r} from {self.path}: {exc}") from exc
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                    "updated_at = excluded.updated_at",
                    (key, value, now),
                )
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"Could not write key {key!r} to {self.path}: {exc}") from exc


# ── Adapter ────────────────────────────────────────────────────────────────


class PersistentStore:
    """Typed load/save of domain collections over a ``KeyValueBackend``.

    ``load`` degrades to the caller's default on absence, backend failure or
    corrupt data; ``save`` reports failure through its return value only.
    """

    def __init__(self, backend: KeyValueBackend) -> None:
        self.backend = backend

    def load(self, key: StoreKey, adapter: TypeAdapter[T], default: T) -> T:
        """Return the value stored under *key*, or *default*.

        Args:
            key: One of the ``StoreKey`` identifiers.
            adapter: Pydantic adapter describing the stored type.
            default: Returned when the value is missing or unusable.
        """
        try:
            raw = self.backend.get(key.value)
        except PersistenceError as exc:
            logger.warning("Failed to read %s from storage: %s", key.value, exc)
            return default

        if raw is None:
            return default

        try:
            return adapter.validate_json(raw)
        except ValueError as exc:
            logger.warning("Discarding corrupt value stored under %s: %s", key.value, exc)
            return default

    def save(self, key: StoreKey, value: Any, adapter: TypeAdapter[Any]) -> bool:
        """Serialise *value* and write it under *key*.

        Returns:
            True if the write succeeded, False if it was logged and dropped.
        """
        try:
            raw = adapter.dump_json(value, by_alias=True).decode("utf-8")
            self.backend.set(key.value, raw)
        except (PersistenceError, ValueError) as exc:
            logger.warning("Failed to save %s to storage: %s", key.value, exc)
            return False
        logger.debug("Saved %s (%d bytes)", key.value, len(raw))
        return True


def open_store(settings: Settings) -> PersistentStore:
    """Build the ``PersistentStore`` selected by ``settings.store_backend``."""
    backend_name = settings.store_backend
    if backend_name == "memory":
        backend: KeyValueBackend = MemoryBackend()
    elif backend_name == "sqlite":
        backend = SqliteBackend(Path(settings.data_dir) / "bookshelf.db")
    else:
        backend = JsonFileBackend(settings.data_dir)
    logger.info("Store backend=%s data_dir=%s", backend_name, settings.data_dir)
    return PersistentStore(backend)
