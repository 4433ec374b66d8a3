"""
Sync data models -- backend kinds, cycle phases, state and results.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from ..errors import SyncErrorKind
from ..models import SettingsConfig


class SyncBackendType(str, Enum):
    """Supported remote backends."""

    PLATFORM_STORE = "platform-store"
    WEBDAV = "webdav"


class SyncPhase(str, Enum):
    """Steps of one reconciliation cycle."""

    IDLE = "idle"
    FETCHING = "fetching"
    COMPARING = "comparing"
    MERGING = "merging"
    APPLYING = "applying"
    PERSISTING = "persisting"
    ERROR = "error"


class SyncResult(BaseModel):
    """Outcome of a sync call. Never carries a traceback."""

    success: bool
    applied: bool = False
    phase: SyncPhase = SyncPhase.IDLE
    message: str = ""
    error: Optional[SyncErrorKind] = None
    backend: Optional[str] = None
    config: Optional[SettingsConfig] = None


class SyncState(BaseModel):
    """Sync bookkeeping persisted to disk."""

    last_push: Optional[datetime] = None
    last_pull: Optional[datetime] = None
    last_push_backend: Optional[str] = None
    last_pull_backend: Optional[str] = None
    push_count: int = 0
    pull_count: int = 0
    last_sync_hash: Optional[str] = None
    last_error: Optional[str] = None
