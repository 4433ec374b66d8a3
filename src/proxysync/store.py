"""
The configuration store: the one place the live configuration lives.

Every component gets the store passed in rather than reaching for a
global. The store owns the authoritative SettingsConfig and a derived
view of what is currently active; swapping in a new configuration
always refreshes that view.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from pydantic import BaseModel, ValidationError

from .integrity import (
    ensure_integrity_of_settings,
    get_default_settings,
    migrate_from_old_versions,
)
from .models import ProxyServer, SettingsConfig, SmartProfile
from .operations import find_proxy_server_by_id
from .persistence import PersistenceGateway

logger = logging.getLogger("proxysync.store")


class ActiveSettings(BaseModel):
    """Derived view of the live configuration."""

    active_profile: Optional[SmartProfile] = None
    current_proxy_server: Optional[ProxyServer] = None
    sync_enabled: bool = False
    sync_backend: str = "platform-store"


class ConfigStore:
    """Holds the authoritative configuration.

    Replacement is a single reference swap under a lock; readers that
    need a stable snapshot should take ``current.clone()``.
    """

    def __init__(self, config: Optional[SettingsConfig] = None):
        self._lock = threading.RLock()
        self._current = config or get_default_settings()
        self._active = ActiveSettings()
        self.update_active_settings()

    @classmethod
    def load(cls, gateway: PersistenceGateway) -> "ConfigStore":
        """Initialize from persisted settings, or defaults on first run.

        Args:
            gateway: Where settings are persisted.

        Returns:
            ConfigStore: Ready-to-use store.
        """
        data = gateway.load()
        if not data:
            logger.info("No saved settings, starting with defaults")
            return cls(get_default_settings())

        try:
            migrate_from_old_versions(data, data.get("version"))
            config = SettingsConfig.model_validate(data)
        except ValidationError as exc:
            logger.warning("Saved settings are invalid, starting with defaults: %s", exc)
            return cls(get_default_settings())

        ensure_integrity_of_settings(config)
        return cls(config)

    @property
    def current(self) -> SettingsConfig:
        return self._current

    @property
    def active(self) -> ActiveSettings:
        return self._active

    def replace(self, config: SettingsConfig) -> None:
        """Swap in a new authoritative configuration."""
        with self._lock:
            self._current = config
            self.update_active_settings()

    def update_active_settings(self) -> ActiveSettings:
        """Recompute the derived view from the current configuration."""
        with self._lock:
            config = self._current
            profile = next(
                (p for p in config.proxy_profiles if p.profile_id == config.active_profile_id),
                None,
            )
            server_id = config.default_proxy_server_id
            if profile is not None and profile.profile_proxy_server_id:
                server_id = profile.profile_proxy_server_id

            self._active = ActiveSettings(
                active_profile=profile,
                current_proxy_server=find_proxy_server_by_id(config, server_id),
                sync_enabled=config.options.sync_settings,
                sync_backend=(
                    "webdav"
                    if config.options.sync_web_dav_server_enabled
                    and config.options.sync_web_dav_server_url.strip()
                    else "platform-store"
                ),
            )
            return self._active
