"""
Engine configuration: how proxysync itself runs on this device.

Not to be confused with the proxy SettingsConfig that gets synced.
Lives in ``<home>/config/config.yaml``; a missing or broken file means
defaults.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel

from . import PROXYSYNC_HOME

logger = logging.getLogger("proxysync.config")

CONFIG_FILE = Path("config") / "config.yaml"

# Limits of the platform sync storage area
QUOTA_BYTES = 102_400
QUOTA_BYTES_PER_ITEM = 8_192


class EngineConfig(BaseModel):
    """Runtime knobs for the sync and backup engine."""

    log_level: str = "INFO"
    webdav_timeout: float = 30.0
    sync_store_path: Optional[Path] = None
    backups_dir: Optional[Path] = None
    quota_bytes: int = QUOTA_BYTES
    quota_bytes_per_item: int = QUOTA_BYTES_PER_ITEM


def resolve_home(home: Optional[Path] = None) -> Path:
    """Expand the home directory, defaulting to ``$PROXYSYNC_HOME``."""
    return (home or Path(PROXYSYNC_HOME)).expanduser()


def load_engine_config(home: Path) -> EngineConfig:
    """Load engine configuration from disk.

    Args:
        home: proxysync home directory.

    Returns:
        EngineConfig loaded from config.yaml, or defaults.
    """
    config_file = home / CONFIG_FILE
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            return EngineConfig(**data)
        except (yaml.YAMLError, ValueError, TypeError) as exc:
            logger.warning("Failed to load config: %s, using defaults", exc)
    return EngineConfig()


def save_engine_config(home: Path, config: EngineConfig) -> Path:
    """Persist engine configuration to ``config.yaml``."""
    config_file = home / CONFIG_FILE
    config_file.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    config_file.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    return config_file
