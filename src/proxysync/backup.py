"""Settings backup and restore.

A backup is the syncable projection of the configuration written as one
UTF-8 JSON file, same shape as the settings document:

    {
      "version": "1.2.0",
      "options": {...},
      "defaultProxyServerId": "...",
      "activeProfileId": "...",
      "proxyServers": [...],
      "proxyServerSubscriptions": [...],
      "proxyProfiles": [...],
      "updateInfo": {...}
    }

Restoring treats the file as untrusted. It must parse and carry a
``version``; after that, broken proxy servers are dropped one by one
and everything else, malformed subscriptions included, is rebuilt,
migrated and repaired. Nothing touches the live configuration until
the caller swaps the result in.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from . import __version__
from .errors import RestoreErrorKind, SyncErrorKind, ValidationError
from .integrity import ensure_integrity_of_settings, get_default_settings, migrate_from_old_versions
from .messages import get_message
from .models import (
    ProxyServer,
    ProxyServerSubscription,
    SettingsConfig,
    SmartProfile,
    UpdateInfo,
)
from .operations import find_proxy_server_by_id_from_list
from .profiles import copy_smart_profile, reset_profile_type_config
from .propagation import PropagationEvent
from .sync.engine import SyncEngine
from .sync.merger import merge_non_syncable
from .sync.models import SyncResult
from .sync.stripper import backup_projection

logger = logging.getLogger("proxysync.backup")

BACKUP_PREFIX = "smartproxy_settings"

# Top-level scalars taken from the backup as they are
_SCALAR_KEYS = ("version", "configVersion", "syncHash")

# Options that belong to this device and are never in a backup
_DEVICE_OPTIONS = (
    "sync_web_dav_server_url",
    "sync_web_dav_backup_filename",
    "sync_web_dav_server_user",
    "sync_web_dav_server_password",
)


class RestoreResult(BaseModel):
    """Outcome of a restore. On success ``config`` holds the new settings."""

    success: bool
    message: str = ""
    error: Optional[RestoreErrorKind] = None
    config: Optional[SettingsConfig] = None


def get_backup_of_settings(config: SettingsConfig) -> SettingsConfig:
    """What goes into a backup file."""
    return backup_projection(config)


def _invalid(reason: str) -> RestoreResult:
    logger.error("Backup data is invalid: %s", reason)
    return RestoreResult(
        success=False,
        message=get_message("settingsRestoreSettingsFailedInvalid"),
        error=RestoreErrorKind.INVALID_FORMAT,
    )


def restore_backup_from_file(
    data: Union[str, bytes],
    current: SettingsConfig,
) -> RestoreResult:
    """Build a new configuration from backup file content.

    Args:
        data: Raw file content.
        current: The live configuration. Read, never modified.

    Returns:
        RestoreResult: ``INVALID_FORMAT`` if the content is not a backup,
        ``RESTORE_FAILED`` if rebuilding it failed, else the new config.
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            return _invalid(f"not UTF-8: {exc}")

    try:
        raw = json.loads(data.lstrip("\ufeff"))
    except ValueError as exc:
        return _invalid(f"malformed JSON: {exc}")
    if not isinstance(raw, dict):
        return _invalid("top level is not an object")
    if not raw.get("version"):
        return _invalid("missing `version` field")

    try:
        config = _rebuild(raw, current)
    except Exception as exc:
        logger.exception("Backup restore failed: %s", exc)
        return RestoreResult(
            success=False,
            message=get_message("settingsRestoreSettingsFailed"),
            error=RestoreErrorKind.RESTORE_FAILED,
        )

    logger.info(
        "Backup from version %s restored: %d proxy server(s), %d profile(s)",
        raw["version"], len(config.proxy_servers), len(config.proxy_profiles),
    )
    return RestoreResult(success=True, config=config)


def _rebuild(backup: dict[str, Any], current: SettingsConfig) -> SettingsConfig:
    backup_version = str(backup["version"])

    # defaults first, then whatever the backup has, then migrate
    raw = get_default_settings().to_json_dict()
    raw.update({key: value for key, value in backup.items() if value is not None})
    migrate_from_old_versions(raw, backup_version)

    config = SettingsConfig.model_validate({key: raw.get(key) for key in _SCALAR_KEYS})

    if isinstance(raw.get("updateInfo"), dict):
        try:
            config.update_info = UpdateInfo.model_validate(raw["updateInfo"])
        except PydanticValidationError:
            logger.warning("Ignoring invalid updateInfo in backup")

    options = raw.get("options")
    if isinstance(options, dict):
        rejected = config.options.copy_from(options)
        if rejected:
            logger.warning("Ignoring invalid options in backup: %s", ", ".join(rejected))
    for name in _DEVICE_OPTIONS:
        if not getattr(config.options, name):
            setattr(config.options, name, getattr(current.options, name))

    config.proxy_servers = _rebuild_proxy_servers(raw.get("proxyServers"))
    config.proxy_server_subscriptions = _rebuild_subscriptions(raw.get("proxyServerSubscriptions"))

    profiles = raw.get("proxyProfiles")
    if isinstance(profiles, list) and profiles:
        config.proxy_profiles = [_rebuild_profile(entry) for entry in profiles]
    else:
        config.proxy_profiles = get_default_settings().proxy_profiles

    merge_non_syncable(config, current)

    # keep backup references only if they resolve, else the pre-restore ones
    active_id = backup.get("activeProfileId")
    if active_id and any(p.profile_id == active_id for p in config.proxy_profiles):
        config.active_profile_id = active_id
    else:
        config.active_profile_id = current.active_profile_id

    default_id = raw.get("defaultProxyServerId")
    server = find_proxy_server_by_id_from_list(
        default_id, config.proxy_servers, config.proxy_server_subscriptions,
    )
    config.default_proxy_server_id = server.id if server else current.default_proxy_server_id

    config.version = __version__
    ensure_integrity_of_settings(config)
    return config


def _decode_proxy_server(entry: Any, check_valid: bool = True) -> ProxyServer:
    """Decode one proxy server entry of a backup.

    Raises:
        ValidationError: If the entry is not an object, does not decode,
            or (with ``check_valid``) fails ``is_valid()``.
    """
    if not isinstance(entry, dict):
        raise ValidationError("entry is not an object")
    try:
        server = ProxyServer.model_validate(entry)
    except PydanticValidationError as exc:
        raise ValidationError(f"{entry.get('id')} does not decode ({exc.error_count()} error(s))") from exc
    if check_valid and not server.is_valid():
        raise ValidationError(f"{server.id} is not valid")
    return server


def _rebuild_proxy_servers(entries: Any) -> list[ProxyServer]:
    if not isinstance(entries, list):
        return []

    servers: list[ProxyServer] = []
    for entry in entries:
        try:
            servers.append(_decode_proxy_server(entry))
        except ValidationError as exc:
            logger.warning("Dropping proxy server: %s", exc)
    return servers


def _rebuild_subscriptions(entries: Any) -> list[ProxyServerSubscription]:
    # no validity filter; a subscription repairs itself on its next refresh
    if not isinstance(entries, list):
        return []

    subscriptions: list[ProxyServerSubscription] = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.warning("Skipping server subscription entry that is not an object")
            continue

        subscription = ProxyServerSubscription()
        rejected = subscription.copy_from({key: value for key, value in entry.items() if key != "proxies"})
        if rejected:
            logger.warning("Subscription %r: ignoring invalid %s", subscription.name, ", ".join(rejected))

        proxies = entry.get("proxies")
        for proxy in proxies if isinstance(proxies, list) else []:
            try:
                subscription.proxies.append(_decode_proxy_server(proxy, check_valid=False))
            except ValidationError as exc:
                logger.debug("Subscription %r: skipping server: %s", subscription.name, exc)
        subscriptions.append(subscription)
    return subscriptions


def _rebuild_profile(entry: Any) -> SmartProfile:
    if not isinstance(entry, dict):
        raise TypeError("proxy profile entry is not an object")

    profile = SmartProfile()
    copy_smart_profile(entry, profile, deep=False)
    reset_profile_type_config(profile)

    # user-created profiles carry their own builtin flag
    type_config = entry.get("profileTypeConfig")
    if profile.profile_type_config.editable and isinstance(type_config, dict) \
            and isinstance(type_config.get("builtin"), bool):
        profile.profile_type_config.builtin = type_config["builtin"]
    return profile


# ---------------------------------------------------------------------------
# Entry points that touch the live configuration
# ---------------------------------------------------------------------------

# save results that leave the new settings off disk
_NOT_SAVED = (SyncErrorKind.PERSISTENCE, SyncErrorKind.BUSY)


def _commit(engine: SyncEngine, config: SettingsConfig) -> SyncResult:
    previous = engine.store.current
    engine.store.replace(config)

    saved = engine.save_all_sync()
    if saved.error in _NOT_SAVED:
        logger.error("New settings were not saved, keeping the previous ones: %s", saved.message)
        if engine.store.current is config:
            engine.store.replace(previous)
        return saved
    if not saved.success:
        logger.warning("New settings were saved on this device only: %s", saved.message)

    engine.hub.emit(PropagationEvent.PROXY_CONFIG_UPDATED, engine.store.current)
    engine.store.update_active_settings()
    return saved


def restore_backup(engine: SyncEngine, data: Union[str, bytes, None]) -> RestoreResult:
    """Restore a backup and make it the live configuration.

    Args:
        engine: Sync engine wired to the live store.
        data: Raw backup file content.

    Returns:
        RestoreResult with a message for the user. ``PERSISTENCE`` means
        the new settings could not be saved and the old ones stay live.
    """
    if data is None:
        return RestoreResult(
            success=False,
            message=get_message("settingsRestoreInvalidData"),
            error=RestoreErrorKind.INVALID_FORMAT,
        )

    result = restore_backup_from_file(data, engine.store.current)
    if not result.success:
        return result

    saved = _commit(engine, result.config)
    if saved.error in _NOT_SAVED:
        return RestoreResult(
            success=False,
            message=get_message("settingsRestoreNotSaved"),
            error=RestoreErrorKind.PERSISTENCE,
        )
    return RestoreResult(
        success=True,
        message=get_message("settingsRestoreSettingsSuccess"),
        config=result.config,
    )


def factory_reset(engine: SyncEngine) -> SyncResult:
    """Replace the live configuration with fresh defaults.

    If the defaults cannot be saved the current settings stay in place
    and the failed save result is returned.
    """
    config = get_default_settings()
    config.first_run = False
    logger.info("Resetting all settings to defaults")
    return _commit(engine, config)


# ---------------------------------------------------------------------------
# Backup files
# ---------------------------------------------------------------------------

def create_backup(config: SettingsConfig, output_dir: Path) -> dict[str, Any]:
    """Write a backup file of ``config``.

    Args:
        config: Configuration to back up.
        output_dir: Where to write the file. Created if missing.

    Returns:
        dict: Result with 'filepath', 'filename', 'size', 'version',
        'proxy_servers', 'proxy_profiles'.
    """
    out_dir = Path(output_dir).expanduser()
    out_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S-%f")
    filepath = out_dir / f"{BACKUP_PREFIX}-{timestamp}.json"

    backup = get_backup_of_settings(config)
    filepath.write_text(
        json.dumps(backup.to_json_dict(), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    size = filepath.stat().st_size
    logger.info("Backup created: %s (%d bytes)", filepath, size)

    return {
        "filepath": str(filepath),
        "filename": filepath.name,
        "size": size,
        "version": backup.version,
        "proxy_servers": len(backup.proxy_servers),
        "proxy_profiles": len(backup.proxy_profiles),
    }


def list_backups(backup_dir: Path) -> list[dict[str, Any]]:
    """List the backup files in ``backup_dir``.

    Each entry carries the ``version`` the backup was written by, or
    None when the file is not readable JSON; restore refuses those.

    Args:
        backup_dir: Usually ``ProxySyncRuntime.backups_dir``. A missing
            directory has no backups.

    Returns:
        list[dict]: 'filepath', 'filename', 'size', 'created' and
        'version', newest first.
    """
    search_dir = Path(backup_dir).expanduser()
    if not search_dir.is_dir():
        return []

    backups = []
    for path in search_dir.glob(f"{BACKUP_PREFIX}-*.json"):
        stat = path.stat()
        backups.append({
            "filepath": str(path),
            "filename": path.name,
            "size": stat.st_size,
            "created": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
            "version": _backup_version(path),
        })
    # file names embed the creation time, so they break mtime ties
    backups.sort(key=lambda b: (b["created"], b["filename"]), reverse=True)
    return backups


def _backup_version(path: Path) -> Optional[str]:
    try:
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, ValueError):
        return None
    version = data.get("version") if isinstance(data, dict) else None
    return str(version) if version else None
