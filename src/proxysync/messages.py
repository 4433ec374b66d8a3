"""
User-facing messages.

Looked up by key so a host application can swap in its own catalog
(``set_catalog``) for localization.
"""

from __future__ import annotations

from typing import Mapping

_DEFAULT_CATALOG: dict[str, str] = {
    "settingsRestoreSettingsSuccess": "Settings restored successfully.",
    "settingsRestoreSettingsFailed": "Failed to restore the settings.",
    "settingsRestoreSettingsFailedInvalid": "The backup file is invalid or corrupted.",
    "settingsRestoreInvalidData": "Invalid data",
    "settingsRestoreNotSaved": "The restored settings could not be saved. Nothing was changed.",
    "settingsSyncApplied": "Synced settings were applied.",
    "settingsSyncSaved": "Settings were saved to the sync server.",
    "settingsSyncSavedLocalOnly": "Settings were saved locally.",
    "settingsSyncNoChange": "Synced settings are already up to date.",
    "settingsSyncBusy": "A sync is already in progress.",
    "settingsSyncDisabled": "Settings sync is disabled.",
    "settingsSyncEmpty": "No synced settings were found.",
    "settingsSyncFailedInvalid": "Synced settings are invalid or corrupted.",
    "settingsSyncFailed": "Failed to sync the settings.",
    "settingsSyncLocalSaveFailed": "Settings were applied but could not be saved locally.",
    "settingsSaveLocalFailed": "Settings could not be saved on this device.",
    "settingsWebDavFailed": "WebDAV request failed.",
    "settingsFactoryResetSuccess": "All settings were reset to defaults.",
}

_catalog: dict[str, str] = dict(_DEFAULT_CATALOG)


def get_message(key: str) -> str:
    """Return the message for ``key``, or the key itself if unknown."""
    return _catalog.get(key, key)


def set_catalog(catalog: Mapping[str, str]) -> None:
    """Override messages; keys not in ``catalog`` keep the English text."""
    _catalog.clear()
    _catalog.update(_DEFAULT_CATALOG)
    _catalog.update(catalog)
