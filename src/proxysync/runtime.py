"""
Runtime: one place that wires proxysync together for a home directory.

Loads the engine config, the saved settings, the sync storage and the
sync engine from ``~/.proxysync/`` and hands them out as one object.

Layout:
    ~/.proxysync/
    ├── config/config.yaml   # engine config
    ├── settings.json        # the proxy settings document
    ├── sync/store.json      # key-value sync storage
    ├── sync/state.json      # sync bookkeeping
    └── backups/             # backup files
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config import EngineConfig, load_engine_config, resolve_home
from .persistence import JsonFilePersistence, LocalSettingsWriter
from .propagation import PropagationHub
from .store import ConfigStore
from .sync.engine import SyncEngine
from .sync.storage import FileKeyValueStore

logger = logging.getLogger("proxysync.runtime")


class ProxySyncRuntime:
    """Everything a caller needs to read, sync and back up settings."""

    def __init__(self, home: Optional[Path] = None, config: Optional[EngineConfig] = None):
        """Initialize the runtime.

        Args:
            home: Override home directory. Defaults to ``$PROXYSYNC_HOME``.
            config: Override engine config. Defaults to config.yaml.
        """
        self.home = resolve_home(home)
        self.config = config or load_engine_config(self.home)

        self.gateway = JsonFilePersistence(self.home)
        self.store = ConfigStore.load(self.gateway)
        self.writer = LocalSettingsWriter(self.store, self.gateway)
        self.hub = PropagationHub()

        self.kv_store = FileKeyValueStore(
            self.sync_store_path,
            quota_bytes=self.config.quota_bytes,
            quota_bytes_per_item=self.config.quota_bytes_per_item,
        )
        self.engine = SyncEngine(
            self.store,
            self.writer,
            self.kv_store,
            hub=self.hub,
            state_dir=self.home / "sync",
            webdav_timeout=self.config.webdav_timeout,
        )
        self.kv_store.on_changed(self.engine.sync_on_changed)

    @property
    def sync_store_path(self) -> Path:
        if self.config.sync_store_path:
            return Path(self.config.sync_store_path).expanduser()
        return self.home / "sync" / "store.json"

    @property
    def backups_dir(self) -> Path:
        if self.config.backups_dir:
            return Path(self.config.backups_dir).expanduser()
        return self.home / "backups"


def get_runtime(home: Optional[Path] = None) -> ProxySyncRuntime:
    """Create a runtime for ``home``.

    Args:
        home: Override home directory.

    Returns:
        A wired ProxySyncRuntime.
    """
    runtime = ProxySyncRuntime(home=home)
    logger.debug("Runtime ready at %s", runtime.home)
    return runtime
