"""
Platform key-value sync storage.

The real storage area belongs to the host platform; proxysync only
needs ``get``/``set``/``remove`` plus a change notification. The file
backed store here behaves like one: per-item and total quotas, and
listeners called with ``(changes, "sync")`` after every write. Point it
at a folder that a file-sync tool replicates and it doubles as a
transport between machines.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from ..config import QUOTA_BYTES, QUOTA_BYTES_PER_ITEM
from ..errors import TransportError

logger = logging.getLogger("proxysync.sync.storage")

STORAGE_AREA = "sync"

ChangeListener = Callable[[dict[str, dict[str, Any]], str], None]


class KeyValueStore(ABC):
    """Host sync storage contract."""

    @abstractmethod
    def get(self, keys: Union[None, str, Iterable[str]] = None) -> dict[str, Any]:
        """Read items. ``None`` reads everything.

        Raises:
            TransportError: If the storage cannot be read.
        """

    @abstractmethod
    def set(self, items: dict[str, Any]) -> None:
        """Write items.

        Raises:
            TransportError: On quota or storage failure.
        """

    @abstractmethod
    def remove(self, keys: Iterable[str]) -> None:
        """Delete items; missing keys are ignored."""


def _item_size(key: str, value: Any) -> int:
    return len(key) + len(json.dumps(value, separators=(",", ":")).encode("utf-8"))


class FileKeyValueStore(KeyValueStore):
    """Key-value store kept in one JSON file."""

    def __init__(
        self,
        path: Path,
        quota_bytes: int = QUOTA_BYTES,
        quota_bytes_per_item: int = QUOTA_BYTES_PER_ITEM,
    ):
        self.path = Path(path).expanduser()
        self.quota_bytes = quota_bytes
        self.quota_bytes_per_item = quota_bytes_per_item
        self._listeners: list[ChangeListener] = []

    def on_changed(self, listener: ChangeListener) -> None:
        """Register a listener for writes to this storage area."""
        self._listeners.append(listener)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise TransportError(f"Sync storage is unreadable: {exc}") from exc
        except OSError as exc:
            raise TransportError(f"Sync storage read failed: {exc}") from exc
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(".json.tmp")
            tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            raise TransportError(f"Sync storage write failed: {exc}") from exc

    def get(self, keys: Union[None, str, Iterable[str]] = None) -> dict[str, Any]:
        data = self._read()
        if keys is None:
            return data
        if isinstance(keys, str):
            keys = [keys]
        return {key: data[key] for key in keys if key in data}

    def set(self, items: dict[str, Any]) -> None:
        for key, value in items.items():
            if _item_size(key, value) > self.quota_bytes_per_item:
                raise TransportError(
                    f"QUOTA_BYTES_PER_ITEM quota exceeded by '{key}'",
                    user_message="Settings are too large for sync storage.",
                )

        data = self._read()
        changes = {
            key: {"oldValue": data.get(key), "newValue": value}
            for key, value in items.items()
            if data.get(key) != value
        }
        data.update(items)

        total = sum(_item_size(k, v) for k, v in data.items())
        if total > self.quota_bytes:
            raise TransportError(
                f"QUOTA_BYTES quota exceeded ({total} > {self.quota_bytes})",
                user_message="Settings are too large for sync storage.",
            )

        self._write(data)
        self._notify(changes)

    def remove(self, keys: Iterable[str]) -> None:
        data = self._read()
        changes = {}
        for key in keys:
            if key in data:
                changes[key] = {"oldValue": data.pop(key)}
        if changes:
            self._write(data)
            self._notify(changes)

    def _notify(self, changes: dict[str, dict[str, Any]]) -> None:
        if not changes:
            return
        for listener in self._listeners:
            try:
                listener(changes, STORAGE_AREA)
            except Exception as exc:
                logger.error("Sync storage listener failed: %s", exc)


def describe_store(store: KeyValueStore) -> Optional[str]:
    """Short description for status output."""
    if isinstance(store, FileKeyValueStore):
        return str(store.path)
    return None
