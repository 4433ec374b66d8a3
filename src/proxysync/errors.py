"""
Error taxonomy for sync and restore.

Components raise these; the sync engine and the restore entry point
catch them at the boundary and turn them into result objects, so the
caller only ever sees a success flag and a short message.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ProxySyncError(Exception):
    """Base error. Carries a short message safe to show a user."""

    def __init__(self, message: str, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class DecodeError(ProxySyncError):
    """Raised when a remote or backup payload cannot be decoded."""


class TransportError(ProxySyncError):
    """Raised on network, auth or quota failure from a remote backend."""


class ValidationError(ProxySyncError):
    """Raised when an entity fails structural checks."""


class ReferentialError(ProxySyncError):
    """Raised when an id reference does not resolve."""


class NoOpSkip(ProxySyncError):
    """Raised to short-circuit a sync cycle that has nothing to apply."""


class SyncErrorKind(str, Enum):
    """Why a sync cycle did not apply anything."""

    NO_OP = "no_op"
    BUSY = "busy"
    DISABLED = "disabled"
    EMPTY = "empty"
    DECODE = "decode"
    TRANSPORT = "transport"
    PERSISTENCE = "persistence"


class RestoreErrorKind(str, Enum):
    """Why a backup restore failed."""

    INVALID_FORMAT = "invalid_format"
    RESTORE_FAILED = "restore_failed"
    PERSISTENCE = "persistence"
