"""
Sync backends -- where the syncable settings travel.

Both backends take the stripped configuration on ``put`` and hand back
the remote configuration as a camelCase dict on ``get``. Failures are
raised as TransportError or DecodeError; the engine turns them into
results.

Platform store: the host's key-value sync area. Payload goes through
the chunking codec.
WebDAV: one JSON file, overwritten whole, fetched as text.

WebDAV is used when it is enabled and has a server URL; otherwise the
platform store.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import quote

import requests

from ..errors import DecodeError, TransportError
from ..models import DEFAULT_WEBDAV_FILENAME, GeneralOptions, SettingsConfig
from .codec import decode_sync_payload, encode_sync_payload, is_payload_key
from .models import SyncBackendType
from .storage import KeyValueStore

logger = logging.getLogger("proxysync.sync.backends")


class RemoteBackend(ABC):
    """Abstract remote copy of the syncable settings."""

    @abstractmethod
    def put(self, config: SettingsConfig) -> None:
        """Overwrite the remote copy.

        Args:
            config: Stripped configuration to send.

        Raises:
            TransportError: If the remote rejects or cannot be reached.
        """

    @abstractmethod
    def get(self) -> Optional[dict[str, Any]]:
        """Fetch the remote copy.

        Returns:
            camelCase configuration dict, or None if the remote is empty.

        Raises:
            TransportError: If the remote cannot be read.
            DecodeError: If the remote content is garbled.
        """

    @abstractmethod
    def available(self) -> bool:
        """Check if this backend is usable with its current settings."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""


class PlatformStoreBackend(RemoteBackend):
    """Host key-value sync storage, via the chunking codec."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    @property
    def name(self) -> str:
        return SyncBackendType.PLATFORM_STORE.value

    def put(self, config: SettingsConfig) -> None:
        payload = encode_sync_payload(config)
        existing = self.store.get(None)
        self.store.set(payload)

        stale = [key for key in existing if is_payload_key(key) and key not in payload]
        if stale:
            self.store.remove(stale)
        logger.info("Settings saved to sync storage (%d chunk(s))", len(payload) - 1)

    def get(self) -> Optional[dict[str, Any]]:
        return decode_sync_payload(self.store.get(None))

    def available(self) -> bool:
        return True


class WebDavBackend(RemoteBackend):
    """A single settings file on a WebDAV server."""

    def __init__(
        self,
        server_url: str,
        filename: str = "",
        username: str = "",
        password: str = "",
        timeout: float = 30.0,
    ):
        self.server_url = server_url or ""
        self.filename = filename or DEFAULT_WEBDAV_FILENAME
        self.username = username or ""
        self.password = password or ""
        self.timeout = timeout

    @property
    def name(self) -> str:
        return SyncBackendType.WEBDAV.value

    @property
    def file_url(self) -> str:
        return f"{self.server_url.rstrip('/')}/{quote(self.filename)}"

    def _auth(self) -> Optional[tuple[str, str]]:
        if not self.username:
            return None
        return (self.username, self.password)

    def _require_url(self) -> None:
        if not self.available():
            raise TransportError(
                "WebDAV sync is enabled but no server URL is configured",
                user_message="Set a WebDAV server URL first.",
            )

    def put(self, config: SettingsConfig) -> None:
        self._require_url()
        body = json.dumps(config.to_json_dict()).encode("utf-8")
        try:
            resp = requests.put(
                self.file_url,
                data=body,
                auth=self._auth(),
                headers={"Content-Type": "application/json; charset=utf-8"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"WebDAV upload failed: {exc}") from exc

        if resp.status_code >= 400:
            raise TransportError(
                f"WebDAV PUT {self.filename}: {resp.status_code} {resp.reason}",
            )
        logger.info("Backup uploaded to WebDAV as %s", self.filename)

    def get(self) -> Optional[dict[str, Any]]:
        self._require_url()
        try:
            resp = requests.get(self.file_url, auth=self._auth(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"WebDAV download failed: {exc}") from exc

        if resp.status_code >= 400:
            raise TransportError(
                f"WebDAV GET {self.filename}: {resp.status_code} {resp.reason}",
            )

        try:
            data = json.loads(resp.text)
        except ValueError as exc:
            raise DecodeError(f"Invalid data received from WebDAV server: {exc}") from exc
        if not isinstance(data, dict):
            raise DecodeError("Invalid data received from WebDAV server.")
        return data

    def available(self) -> bool:
        return bool(self.server_url.strip())


def webdav_selected(options: GeneralOptions) -> bool:
    """True if WebDAV is enabled and has somewhere to go."""
    return options.sync_web_dav_server_enabled and bool(options.sync_web_dav_server_url.strip())


def create_backend(
    options: GeneralOptions,
    store: KeyValueStore,
    timeout: float = 30.0,
) -> RemoteBackend:
    """Pick the backend the options select.

    Args:
        options: Current general options.
        store: Platform key-value store.
        timeout: Network timeout for WebDAV requests, in seconds.

    Returns:
        WebDavBackend when WebDAV sync is enabled and has a URL, else
        PlatformStoreBackend.
    """
    if webdav_selected(options):
        return WebDavBackend(
            options.sync_web_dav_server_url,
            options.sync_web_dav_backup_filename,
            options.sync_web_dav_server_user,
            options.sync_web_dav_server_password,
            timeout=timeout,
        )
    return PlatformStoreBackend(store)
