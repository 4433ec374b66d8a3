"""
Tests for the sync engine -- pull, push, toggles and change notifications.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
import requests

from proxysync.errors import SyncErrorKind
from proxysync.models import ProxyServer, UpdateInfo
from proxysync.profiles import PROFILE_ID_DIRECT, PROFILE_ID_SMART_RULES
from proxysync.propagation import PropagationEvent
from proxysync.sync.codec import SYNC_META_KEY, decode_sync_payload, encode_sync_payload
from proxysync.sync.engine import revert_sync_options
from proxysync.sync.models import SyncPhase, SyncResult
from proxysync.sync.stripper import strip_syncable


def _publish(kv_store, config, **changes):
    """Put a remote copy of ``config`` with ``changes`` into sync storage."""
    remote = strip_syncable(config)
    for key, value in changes.items():
        setattr(remote, key, value)
    kv_store.set(encode_sync_payload(remote))
    return remote


class TestPull:
    """Tests for SyncEngine.pull()."""

    def test_disabled(self, engine, kv_store, sample_config):
        engine.store.current.options.sync_settings = False
        _publish(kv_store, sample_config, sync_hash="h2")

        result = engine.pull()

        assert not result.success
        assert result.error == SyncErrorKind.DISABLED
        assert engine.store.current.sync_hash == "h1"

    def test_empty_remote(self, engine):
        result = engine.pull()
        assert not result.success
        assert result.error == SyncErrorKind.EMPTY
        assert engine.phase == SyncPhase.IDLE

    def test_same_hash_is_a_no_op(self, engine, kv_store, sample_config, tmp_home):
        """An unchanged syncHash leaves the local document byte-for-byte alone."""
        engine.writer.save_all_local(force=True)
        settings_file = tmp_home / "settings.json"
        before = settings_file.read_bytes()
        current = engine.store.current
        _publish(kv_store, sample_config, proxy_servers=[])

        result = engine.pull()

        assert result.success
        assert not result.applied
        assert result.error == SyncErrorKind.NO_OP
        assert settings_file.read_bytes() == before
        assert engine.store.current is current

    def test_applies_changed_remote(self, engine, kv_store, sample_config, tmp_home):
        extra = ProxyServer(id="p3", name="New", host="10.0.0.3", port=3128, protocol="HTTPS")
        _publish(
            kv_store, sample_config,
            sync_hash="h2",
            proxy_servers=sample_config.proxy_servers + [extra],
        )

        result = engine.pull()

        assert result.success and result.applied
        current = engine.store.current
        assert current.sync_hash == "h2"
        assert [s.id for s in current.proxy_servers] == ["p1", "p2", "p3"]

        saved = json.loads((tmp_home / "settings.json").read_text(encoding="utf-8"))
        assert saved["syncHash"] == "h2"

    def test_fetched_content_survives(self, engine, kv_store, sample_config):
        _publish(kv_store, sample_config, sync_hash="h2")
        engine.pull()

        current = engine.store.current
        assert [s.id for s in current.proxy_server_subscriptions[0].proxies] == ["s1", "s2"]
        smart = next(p for p in current.proxy_profiles if p.profile_id == PROFILE_ID_SMART_RULES)
        assert smart.rules_subscriptions[0].proxy_rules[0].name == "a.com"

    def test_local_sync_and_webdav_options_win(self, engine, kv_store, sample_config):
        remote = strip_syncable(sample_config)
        remote.sync_hash = "h2"
        remote.options.sync_settings = False
        remote.options.sync_web_dav_server_enabled = True
        remote.options.sync_web_dav_server_url = "https://elsewhere.example.com/"
        remote.options.theme_name = "dark"
        kv_store.set(encode_sync_payload(remote))

        engine.pull()

        options = engine.store.current.options
        assert options.sync_settings is True
        assert options.sync_web_dav_server_enabled is False
        assert options.sync_web_dav_server_url == "https://dav.example.com/proxy/"
        assert options.sync_web_dav_server_password == "s3cret"
        assert options.theme_name == "dark"

    @pytest.mark.parametrize("sync_active_proxy, expected", [(False, "p1"), (True, "p2")])
    def test_default_proxy_follows_local_toggle(
        self, engine, kv_store, sample_config, sync_active_proxy, expected,
    ):
        engine.store.current.options.sync_active_proxy = sync_active_proxy
        _publish(kv_store, sample_config, sync_hash="h2", default_proxy_server_id="p2")

        engine.pull()

        assert engine.store.current.default_proxy_server_id == expected

    @pytest.mark.parametrize(
        "sync_active_profile, expected",
        [(False, PROFILE_ID_SMART_RULES), (True, PROFILE_ID_DIRECT)],
    )
    def test_active_profile_follows_local_toggle(
        self, engine, kv_store, sample_config, sync_active_profile, expected,
    ):
        engine.store.current.options.sync_active_profile = sync_active_profile
        _publish(kv_store, sample_config, sync_hash="h2", active_profile_id=PROFILE_ID_DIRECT)

        engine.pull()

        assert engine.store.current.active_profile_id == expected
        assert engine.store.active.active_profile.profile_id == expected

    def test_remote_dangling_default_is_repaired(self, engine, kv_store, sample_config):
        _publish(kv_store, sample_config, sync_hash="h2", default_proxy_server_id="gone")
        result = engine.pull()
        assert result.success
        assert engine.store.current.default_proxy_server_id is None

    def test_corrupted_payload(self, engine, kv_store, sample_config):
        current = engine.store.current
        payload = encode_sync_payload(sample_config)
        payload["syncData0"] = "garbage!"
        kv_store.set(payload)

        result = engine.pull()

        assert not result.success
        assert result.error == SyncErrorKind.DECODE
        assert engine.store.current is current
        assert engine.state.last_error

    def test_payload_without_options(self, engine, kv_store):
        kv_store.set(encode_sync_payload({"version": "1.2.0", "syncHash": "h2"}))
        result = engine.pull()
        assert result.error == SyncErrorKind.DECODE

    def test_payload_that_does_not_validate(self, engine, kv_store):
        kv_store.set(encode_sync_payload({"options": {}, "syncHash": "h2", "proxyServers": 5}))
        result = engine.pull()
        assert result.error == SyncErrorKind.DECODE

    def test_unreadable_store_is_transport_error(self, engine, kv_store):
        kv_store.path.parent.mkdir(parents=True, exist_ok=True)
        kv_store.path.write_text("{broken", encoding="utf-8")
        result = engine.pull()
        assert result.error == SyncErrorKind.TRANSPORT

    def test_busy(self, engine, kv_store, sample_config):
        _publish(kv_store, sample_config, sync_hash="h2")
        engine._in_flight.acquire()
        try:
            result = engine.pull()
        finally:
            engine._in_flight.release()

        assert not result.success
        assert result.error == SyncErrorKind.BUSY
        assert engine.store.current.sync_hash == "h1"

    def test_propagates_after_apply(self, engine, kv_store, sample_config):
        events = []
        engine.hub.on(PropagationEvent.PROXY_RULES_CHANGED, lambda c: events.append("rules"))
        engine.hub.on(PropagationEvent.SUBSCRIPTIONS_RELOAD, lambda c: events.append("subs"))
        _publish(kv_store, sample_config, sync_hash="h2")

        engine.pull()

        assert events == ["rules", "subs"]

    def test_local_save_failure_is_reported(self, engine, kv_store, sample_config):
        _publish(kv_store, sample_config, sync_hash="h2")
        with patch.object(engine.writer.gateway, "save_local", side_effect=OSError("disk full")):
            result = engine.pull()

        assert not result.success
        assert result.applied
        assert result.error == SyncErrorKind.PERSISTENCE
        assert engine.store.current.sync_hash == "h2"

    def test_state_is_persisted(self, engine, kv_store, sample_config, tmp_home):
        _publish(kv_store, sample_config, sync_hash="h2")
        engine.pull()

        state = json.loads((tmp_home / "sync" / "state.json").read_text(encoding="utf-8"))
        assert state["pull_count"] == 1
        assert state["last_pull_backend"] == "platform-store"
        assert state["last_sync_hash"] == "h2"

    def test_two_devices(self, tmp_path, kv_store, config_factory, engine_factory):
        """Device A writes h2; device B still on h1 picks it up."""
        device_a = engine_factory(tmp_path / "a", config_factory(), kv_store)
        device_b = engine_factory(tmp_path / "b", config_factory(), kv_store)

        device_a.store.current.proxy_servers.append(
            ProxyServer(id="p3", name="Added on A", host="10.0.0.3", port=8888, protocol="HTTP"),
        )
        pushed = device_a.save_all_sync()
        assert pushed.success
        new_hash = device_a.store.current.sync_hash
        assert new_hash != "h1"

        result = device_b.pull()

        assert result.applied
        assert device_b.store.current.sync_hash == new_hash
        assert "p3" in [s.id for s in device_b.store.current.proxy_servers]


class TestSyncOnChanged:
    """Tests for the storage change notification handler."""

    def test_other_area_is_ignored(self, engine):
        with patch.object(engine, "pull") as mock_pull:
            assert engine.sync_on_changed({"syncMeta": {}}, "local") is None
        mock_pull.assert_not_called()

    def test_ignored_while_sync_disabled(self, engine):
        engine.store.current.options.sync_settings = False
        with patch.object(engine, "pull") as mock_pull:
            assert engine.sync_on_changed({"syncMeta": {}}, "sync") is None
        mock_pull.assert_not_called()

    def test_ignored_when_webdav_selected(self, engine):
        engine.store.current.options.sync_web_dav_server_enabled = True
        with patch.object(engine, "pull") as mock_pull:
            assert engine.sync_on_changed({"syncMeta": {}}, "sync") is None
        mock_pull.assert_not_called()

    def test_pulls_otherwise(self, engine):
        ok = SyncResult(success=True)
        with patch.object(engine, "pull", return_value=ok) as mock_pull:
            assert engine.sync_on_changed({"syncMeta": {}}, "sync") is ok
        mock_pull.assert_called_once()

    def test_storage_write_triggers_pull(self, engine, kv_store, sample_config):
        kv_store.on_changed(engine.sync_on_changed)
        _publish(kv_store, sample_config, sync_hash="h2")
        assert engine.store.current.sync_hash == "h2"

    def test_own_push_does_not_reapply(self, engine, kv_store):
        kv_store.on_changed(engine.sync_on_changed)
        current = engine.store.current

        result = engine.save_all_sync()

        assert result.success
        assert engine.store.current is current


class TestSaveAllSync:
    """Tests for SyncEngine.save_all_sync()."""

    def test_stamps_hash_and_saves_locally_first(self, engine, tmp_home):
        result = engine.save_all_sync()

        new_hash = engine.store.current.sync_hash
        assert result.success
        assert new_hash and new_hash != "h1"
        saved = json.loads((tmp_home / "settings.json").read_text(encoding="utf-8"))
        assert saved["syncHash"] == new_hash

    def test_pushes_stripped_projection(self, engine, kv_store):
        engine.save_all_sync()

        remote = decode_sync_payload(kv_store.get())
        assert remote["syncHash"] == engine.store.current.sync_hash
        assert remote["options"]["syncWebDavServerPassword"] == ""
        assert remote["proxyServerSubscriptions"][0]["proxies"] == []
        assert engine.store.current.options.sync_web_dav_server_password == "s3cret"

    def test_sync_off_saves_locally_only(self, engine, kv_store, tmp_home):
        engine.store.current.options.sync_settings = False
        result = engine.save_all_sync()

        assert result.success
        assert SYNC_META_KEY not in kv_store.get()
        assert (tmp_home / "settings.json").exists()

    def test_local_only_flag(self, engine, kv_store):
        engine.save_all_sync(save_to_sync_server=False)
        assert kv_store.get() == {}

    def test_remote_failure_keeps_local_save(self, engine, tmp_home):
        options = engine.store.current.options
        options.sync_web_dav_server_enabled = True

        with patch(
            "proxysync.sync.backends.requests.put",
            side_effect=requests.ConnectionError("offline"),
        ) as mock_put:
            result = engine.save_all_sync()

        mock_put.assert_called_once()
        assert not result.success
        assert result.error == SyncErrorKind.TRANSPORT
        saved = json.loads((tmp_home / "settings.json").read_text(encoding="utf-8"))
        assert saved["syncHash"] == engine.store.current.sync_hash
        assert engine.state.last_error

    def test_local_save_failure_stops_push(self, engine, kv_store):
        with patch.object(engine.writer.gateway, "save_local", side_effect=OSError("disk full")):
            result = engine.save_all_sync()

        assert not result.success
        assert result.error == SyncErrorKind.PERSISTENCE
        assert result.message == "Settings could not be saved on this device."
        assert kv_store.get() == {}
        assert engine.state.push_count == 0
        assert engine.state.last_error == result.message

    def test_local_save_failure_with_sync_off(self, engine):
        engine.store.current.options.sync_settings = False
        with patch.object(engine.writer.gateway, "save_local", side_effect=OSError("disk full")):
            result = engine.save_all_sync()

        assert not result.success
        assert result.error == SyncErrorKind.PERSISTENCE

    def test_push_updates_state(self, engine):
        engine.save_all_sync()
        engine.save_all_sync()
        assert engine.state.push_count == 2
        assert engine.state.last_push_backend == "platform-store"

    def test_busy(self, engine):
        engine._in_flight.acquire()
        try:
            result = engine.save_all_sync()
        finally:
            engine._in_flight.release()
        assert result.error == SyncErrorKind.BUSY
        assert engine.store.current.sync_hash == "h1"

    def test_save_update_info(self, engine, kv_store):
        info = UpdateInfo(version_name="2.0.0", download_link="https://example.com/2.0.0", update_is_available=True)
        result = engine.save_update_info(info)

        assert result.success
        assert engine.store.current.update_info.version_name == "2.0.0"
        assert decode_sync_payload(kv_store.get())["updateInfo"]["updateIsAvailable"] is True


class TestWebDavActions:
    """Tests for the explicit WebDAV upload/download actions."""

    def test_save_to_webdav(self, engine):
        with patch("proxysync.sync.backends.requests.put") as mock_put:
            mock_put.return_value.status_code = 201
            result = engine.save_to_webdav("https://dav.example.com/", "backup.json", "bob", "pw")

        assert result.success
        assert result.backend == "webdav"
        body = json.loads(mock_put.call_args.kwargs["data"])
        assert body["options"]["syncWebDavServerPassword"] == ""
        assert mock_put.call_args.args[0] == "https://dav.example.com/backup.json"

    def test_save_to_webdav_failure(self, engine):
        with patch(
            "proxysync.sync.backends.requests.put",
            side_effect=requests.Timeout("slow"),
        ):
            result = engine.save_to_webdav("https://dav.example.com/")
        assert not result.success
        assert result.error == SyncErrorKind.TRANSPORT

    def test_read_from_webdav_does_not_apply(self, engine, sample_config):
        remote = strip_syncable(sample_config)
        remote.sync_hash = "remote"
        current = engine.store.current

        with patch("proxysync.sync.backends.requests.get") as mock_get:
            mock_get.return_value.status_code = 200
            mock_get.return_value.text = json.dumps(remote.to_json_dict())
            result = engine.read_from_webdav("https://dav.example.com/")

        assert result.success
        assert result.config.sync_hash == "remote"
        assert engine.store.current is current

    def test_read_from_webdav_garbled(self, engine):
        with patch("proxysync.sync.backends.requests.get") as mock_get:
            mock_get.return_value.status_code = 200
            mock_get.return_value.text = "not json"
            result = engine.read_from_webdav("https://dav.example.com/")

        assert not result.success
        assert result.error == SyncErrorKind.DECODE
        assert result.message == "WebDAV request failed."


class TestRevertSyncOptions:
    """Tests for the local-toggle precedence policy on its own."""

    def test_keeps_local_choices(self, sample_config):
        local = sample_config
        local.options.sync_active_proxy = False
        local.options.sync_active_profile = False
        synced = sample_config.clone()
        synced.options.sync_active_proxy = True
        synced.options.sync_web_dav_server_user = "mallory"
        synced.default_proxy_server_id = "p2"
        synced.active_profile_id = PROFILE_ID_DIRECT

        revert_sync_options(synced, local)

        assert synced.options.sync_active_proxy is False
        assert synced.options.sync_web_dav_server_user == "alice"
        assert synced.default_proxy_server_id == "p1"
        assert synced.active_profile_id == PROFILE_ID_SMART_RULES


class TestStatus:
    """Tests for SyncEngine.status()."""

    def test_status(self, engine):
        engine.save_all_sync()
        status = engine.status()

        assert status["enabled"] is True
        assert status["backend"] == "platform-store"
        assert status["available"] is True
        assert status["state"]["push_count"] == 1
        assert status["phase"] == "idle"

    def test_state_reloaded_from_disk(self, engine, tmp_home, sample_config, kv_store, engine_factory):
        engine.save_all_sync()
        again = engine_factory(tmp_home, sample_config, kv_store)
        assert again.state.push_count == 1
