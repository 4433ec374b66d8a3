"""
Syncable projection of a configuration.

What leaves the device is a deep copy with the WebDAV endpoint and
credentials blanked and every subscription's fetched content emptied.
"""

from __future__ import annotations

from ..models import SettingsConfig


def strip_syncable(config: SettingsConfig) -> SettingsConfig:
    """Return a copy holding only syncable data. ``config`` is untouched."""
    stripped = config.clone()

    options = stripped.options
    options.sync_web_dav_server_url = ""
    options.sync_web_dav_backup_filename = ""
    options.sync_web_dav_server_user = ""
    options.sync_web_dav_server_password = ""

    for profile in stripped.proxy_profiles:
        for subscription in profile.rules_subscriptions:
            subscription.proxy_rules = []
            subscription.whitelist_rules = []

    for subscription in stripped.proxy_server_subscriptions:
        subscription.proxies = []

    return stripped


def backup_projection(config: SettingsConfig) -> SettingsConfig:
    """Syncable projection without the fields re-derived on restore."""
    backup = strip_syncable(config)
    backup.config_version = None
    backup.sync_hash = None
    return backup
