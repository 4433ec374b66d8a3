"""
Local persistence: the settings document on disk.

The configuration is one JSON document split into named top-level
subtrees (``options``, ``proxyServers``, ``proxyProfiles``...). Writers
save only the subtree that changed; the gateway merges it into the
document and replaces the file atomically.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .store import ConfigStore

logger = logging.getLogger("proxysync.persistence")

SETTINGS_FILE = "settings.json"


class PersistenceGateway(ABC):
    """Narrow save/load contract for the local settings document."""

    @abstractmethod
    def save_local(self, data: dict[str, Any]) -> None:
        """Merge top-level keys of ``data`` into the stored document.

        Raises:
            OSError: If the document cannot be written.
        """

    @abstractmethod
    def load(self) -> Optional[dict[str, Any]]:
        """Return the stored document, or None if there is none."""


class JsonFilePersistence(PersistenceGateway):
    """Settings document stored as ``<home>/settings.json``."""

    def __init__(self, home: Path):
        self.path = Path(home).expanduser() / SETTINGS_FILE

    def load(self) -> Optional[dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to read %s: %s", self.path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: top level is not an object", self.path)
            return None
        return data

    def save_local(self, data: dict[str, Any]) -> None:
        document = self.load() or {}
        document.update(data)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)


class LocalSettingsWriter:
    """Field-scoped local saves for the live configuration.

    While sync is enabled the remote copy is authoritative, so the
    scoped saves are skipped; ``save_all_local(force=True)`` still
    writes, which keeps a local copy for offline use.
    """

    def __init__(self, store: "ConfigStore", gateway: PersistenceGateway):
        self.store = store
        self.gateway = gateway

    def _sync_enabled(self) -> bool:
        return self.store.current.options.sync_settings

    def _save(self, data: dict[str, Any], what: str) -> bool:
        try:
            self.gateway.save_local(data)
        except OSError as exc:
            logger.error("Saving %s failed: %s", what, exc)
            return False
        logger.debug("Saved %s", what)
        return True

    def save_all_local(self, force: bool = False) -> bool:
        """Write the whole document.

        Args:
            force: Write even while sync is enabled.

        Returns:
            bool: True if written, False if skipped or failed.
        """
        if not force and self._sync_enabled():
            return False
        return self._save(self.store.current.to_json_dict(), "settings")

    def _save_subtree(self, key: str) -> bool:
        if self._sync_enabled():
            return False
        document = self.store.current.to_json_dict()
        return self._save({key: document[key]}, key)

    def save_options(self) -> bool:
        return self._save_subtree("options")

    def save_smart_profiles(self) -> bool:
        return self._save_subtree("proxyProfiles")

    def save_proxy_servers(self) -> bool:
        return self._save_subtree("proxyServers")

    def save_proxy_server_subscriptions(self) -> bool:
        return self._save_subtree("proxyServerSubscriptions")

    def save_default_proxy_server(self) -> bool:
        return self._save_subtree("defaultProxyServerId")

    def save_active_profile(self) -> bool:
        return self._save_subtree("activeProfileId")
