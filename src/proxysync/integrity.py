"""
Settings defaults, schema migration and integrity repair.

``migrate_from_old_versions`` works on the raw camelCase mapping, before
validation, so legacy keys can still be read and renamed. Each step is
keyed by the first version that no longer needs it; steps run in order
and a config that is already current passes through untouched.

``ensure_integrity_of_settings`` runs on a validated SettingsConfig and
repairs every cross-entity reference in place.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from . import __version__
from .models import SettingsConfig
from .operations import find_proxy_server_by_id, update_smart_profiles_rules_proxy_server
from .profiles import BUILTIN_PROFILES, PROFILE_ID_SMART_RULES, create_builtin_profile

logger = logging.getLogger("proxysync.integrity")

CONFIG_VERSION = "1.2"


def parse_version(version: Optional[str]) -> tuple[int, ...]:
    """Turn ``"1.10.2"`` into ``(1, 10, 2)``. Non-numeric parts count as 0."""
    parts: list[int] = []
    for piece in str(version or "0").strip().lstrip("vV").split("."):
        digits = ""
        for char in piece:
            if not char.isdigit():
                break
            digits += char
        parts.append(int(digits) if digits else 0)
    while len(parts) > 1 and parts[-1] == 0:
        parts.pop()
    return tuple(parts)


def get_default_settings() -> SettingsConfig:
    """A first-run configuration with all built-in profiles."""
    config = SettingsConfig(first_run=True)
    set_default_settings(config)
    return config


def set_default_settings(config: SettingsConfig) -> None:
    """Fill in whatever a usable configuration must have.

    Resets ``version`` and ``config_version`` to the running values.
    """
    config.version = __version__
    config.config_version = CONFIG_VERSION
    _ensure_builtin_profiles(config)
    if not config.active_profile_id:
        config.active_profile_id = PROFILE_ID_SMART_RULES


def _ensure_builtin_profiles(config: SettingsConfig) -> int:
    present = {profile.profile_id for profile in config.proxy_profiles}
    added = 0
    for index, (profile_id, profile_type, name) in enumerate(BUILTIN_PROFILES):
        if profile_id in present:
            continue
        config.proxy_profiles.insert(
            min(index, len(config.proxy_profiles)),
            create_builtin_profile(profile_id, profile_type, name),
        )
        added += 1
    return added


# ---------------------------------------------------------------------------
# Migration
# ---------------------------------------------------------------------------

def _rename_legacy_sync_options(raw: dict[str, Any]) -> None:
    options = raw.get("options")
    if not isinstance(options, dict):
        return
    renames = {
        "syncProxyMode": "syncActiveProfile",
        "syncProxyServer": "syncActiveProxy",
        "webDavServerUrl": "syncWebDavServerUrl",
        "webDavBackupFilename": "syncWebDavBackupFilename",
    }
    for old, new in renames.items():
        if old in options:
            value = options.pop(old)
            options.setdefault(new, value)


def _move_active_proxy_server(raw: dict[str, Any]) -> None:
    legacy = raw.pop("activeProxyServer", None)
    if isinstance(legacy, dict) and legacy.get("id") and not raw.get("defaultProxyServerId"):
        raw["defaultProxyServerId"] = legacy["id"]


def _number_server_order(raw: dict[str, Any]) -> None:
    servers = raw.get("proxyServers")
    if not isinstance(servers, list):
        return
    for index, server in enumerate(servers):
        if isinstance(server, dict) and server.get("order") is None:
            server["order"] = index


MIGRATIONS: list[tuple[str, Callable[[dict[str, Any]], None]]] = [
    ("0.9", _rename_legacy_sync_options),
    ("1.0", _move_active_proxy_server),
    ("1.1", _number_server_order),
]


def migrate_from_old_versions(raw: dict[str, Any], from_version: Optional[str]) -> dict[str, Any]:
    """Move a raw configuration mapping forward to the current shape.

    Args:
        raw: camelCase mapping, modified in place.
        from_version: Version the mapping was written by.

    Returns:
        dict: ``raw``, with ``configVersion`` set to the current schema.
    """
    source = parse_version(from_version)
    for introduced_in, step in MIGRATIONS:
        if source < parse_version(introduced_in):
            logger.info("Migrating settings from %s: %s", from_version, step.__name__)
            step(raw)
    raw["configVersion"] = CONFIG_VERSION
    return raw


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------

def ensure_integrity_of_settings(config: SettingsConfig) -> None:
    """Repair cross-entity invariants in place.

    - built-in profiles are present
    - direct proxy server ids are unique (first one wins)
    - profile rules only reference servers that exist
    - profile proxy and default server references resolve, else dropped
    - the active profile resolves, else the smart-rules profile is used
    """
    if _ensure_builtin_profiles(config):
        logger.debug("Re-added missing built-in profiles")

    seen: set[str] = set()
    unique = []
    for server in config.proxy_servers:
        if server.id in seen:
            logger.warning("Dropping duplicate proxy server id %s", server.id)
            continue
        seen.add(server.id)
        unique.append(server)
    config.proxy_servers = unique

    update_smart_profiles_rules_proxy_server(config)

    for profile in config.proxy_profiles:
        if profile.profile_proxy_server_id and \
                find_proxy_server_by_id(config, profile.profile_proxy_server_id) is None:
            profile.profile_proxy_server_id = None

    if config.default_proxy_server_id and \
            find_proxy_server_by_id(config, config.default_proxy_server_id) is None:
        logger.info("Default proxy server %s no longer exists", config.default_proxy_server_id)
        config.default_proxy_server_id = None

    profile_ids = {profile.profile_id for profile in config.proxy_profiles}
    if config.active_profile_id not in profile_ids:
        logger.info("Active profile %s no longer exists", config.active_profile_id)
        config.active_profile_id = PROFILE_ID_SMART_RULES
