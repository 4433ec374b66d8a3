"""
Sync Engine -- reconciles local settings with the remote copy.

Pull (one reconciliation cycle):

    FETCHING   -> read the remote payload and decode it
    COMPARING  -> same syncHash as ours? nothing to do
    MERGING    -> local sync toggles and WebDAV settings win, local
                  fetched subscription content is carried over
    APPLYING   -> swap the merged config into the store
    PERSISTING -> force a local save, tell collaborators

Push (``save_all_sync``): stamp a new syncHash, save locally, then send
the stripped projection to the selected backend if sync is on. A remote
failure is reported and never undoes the local save.

Only one cycle runs at a time; a call that finds another in flight
returns a BUSY result instead of waiting.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ..errors import DecodeError, NoOpSkip, SyncErrorKind, TransportError
from ..integrity import ensure_integrity_of_settings
from ..messages import get_message
from ..models import SettingsConfig, UpdateInfo, new_unique_id
from ..persistence import LocalSettingsWriter
from ..propagation import PropagationEvent, PropagationHub
from ..store import ConfigStore
from .backends import RemoteBackend, WebDavBackend, create_backend, webdav_selected
from .merger import merge_non_syncable
from .models import SyncPhase, SyncResult, SyncState
from .storage import STORAGE_AREA, KeyValueStore, describe_store
from .stripper import strip_syncable

logger = logging.getLogger("proxysync.sync.engine")

STATE_FILE = "state.json"


class SyncEngine:
    """Orchestrates settings sync against the selected backend."""

    def __init__(
        self,
        store: ConfigStore,
        writer: LocalSettingsWriter,
        kv_store: KeyValueStore,
        hub: Optional[PropagationHub] = None,
        state_dir: Optional[Path] = None,
        webdav_timeout: float = 30.0,
    ):
        """Initialize the sync engine.

        Args:
            store: Holder of the live configuration.
            writer: Local persistence for the live configuration.
            kv_store: Platform key-value sync storage.
            hub: Where change events go. Defaults to a private hub.
            state_dir: Directory for sync bookkeeping. None keeps it in memory.
            webdav_timeout: Network timeout for WebDAV, in seconds.
        """
        self.store = store
        self.writer = writer
        self.kv_store = kv_store
        self.hub = hub or PropagationHub()
        self.state_dir = state_dir
        self.webdav_timeout = webdav_timeout
        self.phase = SyncPhase.IDLE
        self._in_flight = threading.Lock()
        self.state = self._load_state()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _load_state(self) -> SyncState:
        """Load sync state from disk."""
        if self.state_dir is None:
            return SyncState()
        state_file = self.state_dir / STATE_FILE
        if state_file.exists():
            try:
                data = json.loads(state_file.read_text(encoding="utf-8"))
                return SyncState(**data)
            except (json.JSONDecodeError, ValueError) as exc:
                logger.warning("Failed to load sync state: %s", exc)
        return SyncState()

    def _save_state(self) -> None:
        """Persist sync state to disk."""
        if self.state_dir is None:
            return
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            (self.state_dir / STATE_FILE).write_text(
                self.state.model_dump_json(indent=2), encoding="utf-8",
            )
        except OSError as exc:
            logger.warning("Failed to save sync state: %s", exc)

    def _fail(
        self,
        kind: SyncErrorKind,
        message: str,
        backend: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> SyncResult:
        if kind not in (SyncErrorKind.BUSY, SyncErrorKind.DISABLED):
            self.state.last_error = detail or message
            self._save_state()
            self.phase = SyncPhase.ERROR
        return SyncResult(
            success=False, phase=SyncPhase.ERROR, message=message, error=kind, backend=backend,
        )

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def backend(self) -> RemoteBackend:
        """The backend selected by the current options."""
        return create_backend(self.store.current.options, self.kv_store, self.webdav_timeout)

    def pull(self) -> SyncResult:
        """Run one reconciliation cycle against the selected backend.

        Returns:
            SyncResult: ``applied`` is True only if a remote config was swapped in.
        """
        if not self.store.current.options.sync_settings:
            return self._fail(SyncErrorKind.DISABLED, get_message("settingsSyncDisabled"))

        if not self._in_flight.acquire(blocking=False):
            logger.info("Sync already in progress, skipping pull")
            return self._fail(SyncErrorKind.BUSY, get_message("settingsSyncBusy"))
        try:
            return self._run_pull(self.backend())
        finally:
            self.phase = SyncPhase.IDLE
            self._in_flight.release()

    def _run_pull(self, backend: RemoteBackend) -> SyncResult:
        try:
            self.phase = SyncPhase.FETCHING
            raw = backend.get()
            if not raw:
                logger.info("No synced settings in %s", backend.name)
                return self._fail(SyncErrorKind.EMPTY, get_message("settingsSyncEmpty"), backend.name)
            remote = decode_settings(raw)

            self.phase = SyncPhase.COMPARING
            if remote.sync_hash == self.store.current.sync_hash:
                raise NoOpSkip(f"syncHash {remote.sync_hash} is unchanged")

            self.apply_sync_settings(remote)

            self.phase = SyncPhase.PERSISTING
            saved = self.writer.save_all_local(force=True)
            self._propagate_pulled()

        except NoOpSkip as exc:
            logger.debug("Ignoring synced settings: %s", exc)
            return SyncResult(
                success=True,
                phase=SyncPhase.COMPARING,
                message=get_message("settingsSyncNoChange"),
                error=SyncErrorKind.NO_OP,
                backend=backend.name,
            )
        except DecodeError as exc:
            logger.error("Synced settings from %s are invalid: %s", backend.name, exc)
            return self._fail(
                SyncErrorKind.DECODE, get_message("settingsSyncFailedInvalid"), backend.name, str(exc),
            )
        except TransportError as exc:
            logger.error("Reading synced settings from %s failed: %s", backend.name, exc)
            return self._fail(SyncErrorKind.TRANSPORT, exc.user_message, backend.name, str(exc))

        self.state.last_pull = datetime.now(timezone.utc)
        self.state.last_pull_backend = backend.name
        self.state.pull_count += 1
        self.state.last_sync_hash = self.store.current.sync_hash
        self.state.last_error = None if saved else get_message("settingsSyncLocalSaveFailed")
        self._save_state()

        if not saved:
            return SyncResult(
                success=False,
                applied=True,
                phase=SyncPhase.PERSISTING,
                message=get_message("settingsSyncLocalSaveFailed"),
                error=SyncErrorKind.PERSISTENCE,
                backend=backend.name,
            )

        logger.info("Applied synced settings from %s", backend.name)
        return SyncResult(
            success=True,
            applied=True,
            phase=SyncPhase.IDLE,
            message=get_message("settingsSyncApplied"),
            backend=backend.name,
        )

    def _propagate_pulled(self) -> None:
        config = self.store.current
        self.hub.emit(PropagationEvent.PROXY_RULES_CHANGED, config)
        self.hub.emit(PropagationEvent.SUBSCRIPTIONS_RELOAD, config)

    def apply_sync_settings(self, remote: SettingsConfig) -> SettingsConfig:
        """Merge a decoded remote config with local state and swap it in.

        Args:
            remote: Freshly decoded remote configuration. Modified in place.

        Returns:
            SettingsConfig: The configuration now in the store.
        """
        local = self.store.current

        self.phase = SyncPhase.MERGING
        revert_sync_options(remote, local)
        merge_non_syncable(remote, local)
        ensure_integrity_of_settings(remote)

        self.phase = SyncPhase.APPLYING
        self.store.replace(remote)
        return remote

    def sync_on_changed(self, changes: dict[str, Any], area: str) -> Optional[SyncResult]:
        """Handle a change notification from the platform sync storage.

        Args:
            changes: Changed keys, as reported by the storage.
            area: Storage area name; only ``"sync"`` is relevant.

        Returns:
            The pull result, or None when the notification was ignored.
        """
        if area != STORAGE_AREA:
            return None

        options = self.store.current.options
        if not options.sync_settings:
            logger.debug("Sync is disabled, ignoring storage change (%d key(s))", len(changes))
            return None
        if webdav_selected(options):
            logger.debug("WebDAV sync is enabled, ignoring platform storage change")
            return None

        logger.debug("Sync storage changed: %s", ", ".join(sorted(changes)))
        return self.pull()

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def save_all_sync(self, save_to_sync_server: bool = True) -> SyncResult:
        """Save locally, then to the remote backend if sync is on.

        Args:
            save_to_sync_server: False to only stamp and save locally.

        Returns:
            SyncResult for the remote leg, or for the local save if there
            is no remote. A failed local save is a ``PERSISTENCE`` failure
            and nothing is pushed.
        """
        if not self._in_flight.acquire(blocking=False):
            logger.info("Sync already in progress, skipping save")
            return self._fail(SyncErrorKind.BUSY, get_message("settingsSyncBusy"))
        try:
            return self._run_push(save_to_sync_server)
        finally:
            self.phase = SyncPhase.IDLE
            self._in_flight.release()

    def _run_push(self, save_to_sync_server: bool) -> SyncResult:
        config = self.store.current
        config.sync_hash = new_unique_id()

        self.phase = SyncPhase.PERSISTING
        if not self.writer.save_all_local(force=True):
            # nothing goes out that this device could not keep
            logger.error("Local save failed, settings were not pushed")
            return self._fail(SyncErrorKind.PERSISTENCE, get_message("settingsSaveLocalFailed"))

        if not save_to_sync_server or not config.options.sync_settings:
            return SyncResult(success=True, message=get_message("settingsSyncSavedLocalOnly"))

        backend = self.backend()
        try:
            backend.put(strip_syncable(config))
        except TransportError as exc:
            logger.error("Saving settings to %s failed: %s", backend.name, exc)
            return self._fail(SyncErrorKind.TRANSPORT, exc.user_message, backend.name, str(exc))

        self.state.last_push = datetime.now(timezone.utc)
        self.state.last_push_backend = backend.name
        self.state.push_count += 1
        self.state.last_sync_hash = config.sync_hash
        self.state.last_error = None
        self._save_state()

        return SyncResult(
            success=True, message=get_message("settingsSyncSaved"), backend=backend.name,
        )

    def save_update_info(self, update_info: UpdateInfo) -> SyncResult:
        """Record release info and save it everywhere."""
        self.store.current.update_info = update_info
        return self.save_all_sync()

    # ------------------------------------------------------------------
    # Explicit WebDAV actions
    # ------------------------------------------------------------------

    def save_to_webdav(
        self,
        server_url: str,
        backup_filename: str = "",
        server_user: str = "",
        server_password: str = "",
        settings: Optional[SettingsConfig] = None,
    ) -> SyncResult:
        """Upload settings to a given WebDAV endpoint.

        Args:
            server_url: WebDAV folder URL.
            backup_filename: File name, defaults to the standard one.
            server_user: Basic auth user.
            server_password: Basic auth password.
            settings: What to upload. Defaults to the stripped live config.

        Returns:
            SyncResult of the upload.
        """
        backend = WebDavBackend(
            server_url, backup_filename, server_user, server_password, timeout=self.webdav_timeout,
        )
        payload = settings or strip_syncable(self.store.current)
        try:
            backend.put(payload)
        except TransportError as exc:
            logger.error("WebDAV backup failed: %s", exc)
            return SyncResult(
                success=False, phase=SyncPhase.ERROR, message=exc.user_message,
                error=SyncErrorKind.TRANSPORT, backend=backend.name,
            )
        return SyncResult(success=True, message=get_message("settingsSyncSaved"), backend=backend.name)

    def read_from_webdav(
        self,
        server_url: str,
        backup_filename: str = "",
        server_user: str = "",
        server_password: str = "",
    ) -> SyncResult:
        """Download and decode settings from a WebDAV endpoint without applying them."""
        backend = WebDavBackend(
            server_url, backup_filename, server_user, server_password, timeout=self.webdav_timeout,
        )
        try:
            raw = backend.get()
            if not raw:
                raise DecodeError("Invalid data received from WebDAV server.")
            config = decode_settings(raw)
        except (TransportError, DecodeError) as exc:
            logger.error("Reading from WebDAV failed: %s", exc)
            kind = SyncErrorKind.DECODE if isinstance(exc, DecodeError) else SyncErrorKind.TRANSPORT
            return SyncResult(
                success=False, phase=SyncPhase.ERROR, message=get_message("settingsWebDavFailed"),
                error=kind, backend=backend.name,
            )
        return SyncResult(success=True, backend=backend.name, config=config)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        """Get current sync status.

        Returns:
            Dict with state, selected backend and toggles.
        """
        options = self.store.current.options
        backend = self.backend()
        return {
            "state": self.state.model_dump(mode="json"),
            "enabled": options.sync_settings,
            "backend": backend.name,
            "available": backend.available(),
            "sync_active_profile": options.sync_active_profile,
            "sync_active_proxy": options.sync_active_proxy,
            "sync_hash": self.store.current.sync_hash,
            "store": describe_store(self.kv_store),
            "phase": self.phase.value,
        }


def decode_settings(raw: dict[str, Any]) -> SettingsConfig:
    """Validate a remote camelCase dict into a SettingsConfig.

    Raises:
        DecodeError: If it has no options object or does not validate.
    """
    if not isinstance(raw.get("options"), dict):
        raise DecodeError("Remote settings have no options")
    try:
        return SettingsConfig.model_validate(raw)
    except ValidationError as exc:
        raise DecodeError(f"Remote settings do not validate: {exc.error_count()} error(s)") from exc


def revert_sync_options(synced: SettingsConfig, local: SettingsConfig) -> None:
    """Keep this device's sync choices over whatever the remote says.

    The sync toggles and the WebDAV settings always come from ``local``.
    The default proxy server and the active profile come from ``local``
    too, unless the matching ``sync_active_*`` toggle is on locally.
    """
    mine = local.options
    theirs = synced.options

    theirs.sync_settings = mine.sync_settings
    theirs.sync_active_proxy = mine.sync_active_proxy
    theirs.sync_active_profile = mine.sync_active_profile

    if not mine.sync_active_proxy:
        synced.default_proxy_server_id = local.default_proxy_server_id
    if not mine.sync_active_profile:
        synced.active_profile_id = local.active_profile_id

    theirs.sync_web_dav_server_enabled = mine.sync_web_dav_server_enabled
    theirs.sync_web_dav_server_url = mine.sync_web_dav_server_url
    theirs.sync_web_dav_backup_filename = mine.sync_web_dav_backup_filename
    theirs.sync_web_dav_server_user = mine.sync_web_dav_server_user
    theirs.sync_web_dav_server_password = mine.sync_web_dav_server_password
