"""
Settings sync -- keeping proxy settings in step across devices.

Secrets and fetched subscription content never leave the device. Every
push sends the stripped projection; every pull merges the local-only
content back in before the remote copy replaces the local one.

Backends: the host's key-value sync storage, or one file on WebDAV.
"""

from .engine import SyncEngine
from .stripper import backup_projection, strip_syncable

__all__ = ["SyncEngine", "backup_projection", "strip_syncable"]
