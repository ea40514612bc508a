"""
Persistence Gateway - Named flowchart slots on a key-value store.

Layout on the key-value store:
- <prefix>list   JSON array of saved names, in save order
- <prefix><name> JSON snapshot (camelCase field names)

Sizes are measured in UTF-16 bytes, the way browser local storage counts
them, against a fixed quota. Writes are "last write wins" per name.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from ..core.errors import (
    FlowchartNotFoundError,
    MalformedSnapshotError,
    PersistenceError,
    StorageQuotaExceededError,
    StorageWriteError,
)
from ..core.models import FlowchartSnapshot
from . import config

logger = logging.getLogger(__name__)

INDEX_SUFFIX = "list"


def utf16_size(text: str) -> int:
    """Bytes needed to hold text as UTF-16."""
    return len(text.encode("utf-16-le"))


class KeyValueStore(Protocol):
    """String-to-string storage with a size quota."""

    quota_bytes: int

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...

    def writable(self) -> bool: ...


class MemoryKeyValueStore:
    """In-process key-value store, mostly for tests and ephemeral sessions."""

    def __init__(self, quota_bytes: int = config.STORAGE_QUOTA_BYTES):
        self.quota_bytes = quota_bytes
        self._items: dict[str, str] = {}

    def _check_quota(self, key: str, value: str):
        used = sum(utf16_size(v) for k, v in self._items.items() if k != key)
        if used + utf16_size(value) > self.quota_bytes:
            raise StorageQuotaExceededError(StorageQuotaExceededError.user_message)

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str):
        self._check_quota(key, value)
        self._items[key] = value

    def remove_item(self, key: str):
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)

    def writable(self) -> bool:
        return self.quota_bytes > 0


class JsonFileKeyValueStore(MemoryKeyValueStore):
    """
    Key-value store persisted as one JSON object on disk.

    Every write rewrites the whole file through a temporary file and an
    atomic rename, so a crash never leaves a half-written store behind.
    """

    def __init__(self, path: str | Path = config.STORAGE_FILE,
                 quota_bytes: int = config.STORAGE_QUOTA_BYTES):
        super().__init__(quota_bytes)
        self.path = Path(path)
        self._load()

    def _load(self):
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise PersistenceError(f"Cannot read storage file {self.path}: {e}") from e
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Storage file {self.path} is not valid JSON") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Storage file {self.path} must contain a JSON object")
        self._items = {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self, items: dict[str, str]):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(items, f, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            logger.error("Writing %s failed: %s", self.path, e)
            raise StorageWriteError(StorageWriteError.user_message) from e

    def set_item(self, key: str, value: str):
        self._check_quota(key, value)
        items = dict(self._items)
        items[key] = value
        self._flush(items)
        self._items = items

    def writable(self) -> bool:
        if not super().writable():
            return False
        if self.path.exists():
            return os.access(self.path, os.W_OK) and os.access(self.path.parent, os.W_OK)
        # The directory is created on first write; check the nearest existing ancestor
        parent = self.path.parent
        while not parent.exists() and parent != parent.parent:
            parent = parent.parent
        return os.access(parent, os.W_OK)

    def remove_item(self, key: str):
        if key not in self._items:
            return
        items = dict(self._items)
        del items[key]
        self._flush(items)
        self._items = items


class PersistenceGateway:
    """
    Save, load, list and delete named flowchart snapshots.

    Errors surface as PersistenceError subclasses (plus
    MalformedSnapshotError for unreadable data), each carrying a distinct
    user-facing message.
    """

    def __init__(self, store: KeyValueStore, prefix: str = config.STORAGE_PREFIX):
        self.store = store
        self.prefix = prefix
        self.index_key = f"{prefix}{INDEX_SUFFIX}"

    def _data_key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def _check_name(self, name: str):
        if not name or not name.strip():
            raise ValueError("Flowchart name must not be empty")
        if self._data_key(name) == self.index_key:
            raise ValueError(f'"{name}" is a reserved name')

    # --- Index ---

    def list(self) -> list[str]:
        """Names of saved flowcharts, in the order they were first saved."""
        raw = self.store.get_item(self.index_key)
        if raw is None:
            return []
        try:
            names = json.loads(raw)
        except json.JSONDecodeError:
            names = None
        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            logger.warning("Flowchart index is corrupt, rebuilding it from stored keys")
            return self._names_from_keys()
        return names

    def _names_from_keys(self) -> list[str]:
        return [
            key[len(self.prefix):]
            for key in self.store.keys()
            if key.startswith(self.prefix) and key != self.index_key
        ]

    def _write_index(self, names: list[str]):
        self.store.set_item(self.index_key, json.dumps(names))

    # --- Operations ---

    def save(self, name: str, snapshot: FlowchartSnapshot):
        """
        Save a snapshot under name, replacing any previous version.

        Raises:
            ValueError: empty or reserved name
            StorageQuotaExceededError: the write would exceed the quota
            StorageWriteError: the underlying storage failed
        """
        self._check_name(name)
        key = self._data_key(name)
        payload = json.dumps(snapshot.to_json_dict())
        previous = self.store.get_item(key)

        self.store.set_item(key, payload)

        names = self.list()
        if name not in names:
            try:
                self._write_index(names + [name])
            except PersistenceError:
                # Keep data and index consistent: undo the data write
                if previous is None:
                    self.store.remove_item(key)
                else:
                    self.store.set_item(key, previous)
                raise

        logger.info("Saved flowchart %r (%d nodes, %d edges)", name, len(snapshot.nodes), len(snapshot.edges))

    def load(self, name: str) -> FlowchartSnapshot:
        """
        Load the snapshot saved under name.

        Raises:
            FlowchartNotFoundError: nothing is saved under name
            MalformedSnapshotError: the stored data is not a valid snapshot
        """
        key = self._data_key(name)
        # The index shares the key space; it is never a saved flowchart
        raw = self.store.get_item(key) if name and key != self.index_key else None
        if raw is None:
            raise FlowchartNotFoundError(name)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Saved flowchart %r is not valid JSON", name)
            raise MalformedSnapshotError(f'Flowchart "{name}" is corrupted') from e

        snapshot = FlowchartSnapshot.from_json_dict(data)
        logger.info("Loaded flowchart %r", name)
        return snapshot

    def delete(self, name: str):
        """Remove a saved flowchart. Raises FlowchartNotFoundError if absent."""
        names = self.list()
        if name not in names:
            raise FlowchartNotFoundError(name)
        names.remove(name)
        self._write_index(names)
        self.store.remove_item(self._data_key(name))
        logger.info("Deleted flowchart %r", name)

    def exists(self, name: str) -> bool:
        return name in self.list()

    # --- Quota ---

    @property
    def quota_bytes(self) -> int:
        return self.store.quota_bytes

    def usage_bytes(self) -> int:
        """UTF-16 size of every stored value under this gateway's prefix."""
        total = 0
        for key in self.store.keys():
            if key.startswith(self.prefix):
                value = self.store.get_item(key)
                if value is not None:
                    total += utf16_size(value)
        return total

    def usage(self) -> dict:
        used = self.usage_bytes()
        return {
            "used_bytes": used,
            "quota_bytes": self.quota_bytes,
            "percent": round(100 * used / self.quota_bytes, 2) if self.quota_bytes else 100.0,
        }

    def is_available(self) -> bool:
        """Whether the underlying storage accepts writes. Never writes itself."""
        if not self.store.writable():
            logger.warning("Storage unavailable")
            return False
        return True
