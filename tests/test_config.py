"""Tests for engine configuration, messages and propagation."""

from __future__ import annotations

from pathlib import Path

import pytest

from proxysync.config import (
    CONFIG_FILE,
    QUOTA_BYTES,
    EngineConfig,
    load_engine_config,
    resolve_home,
    save_engine_config,
)
from proxysync.messages import get_message, set_catalog
from proxysync.propagation import PropagationEvent, PropagationHub


class TestEngineConfig:
    """Tests for config.yaml loading."""

    def test_defaults_when_missing(self, tmp_home: Path):
        config = load_engine_config(tmp_home)
        assert config.log_level == "INFO"
        assert config.webdav_timeout == 30.0
        assert config.quota_bytes == QUOTA_BYTES

    def test_load_yaml(self, tmp_home: Path):
        path = tmp_home / CONFIG_FILE
        path.parent.mkdir(parents=True)
        path.write_text("log_level: DEBUG\nwebdav_timeout: 5\nbackups_dir: /tmp/bk\n", encoding="utf-8")

        config = load_engine_config(tmp_home)

        assert config.log_level == "DEBUG"
        assert config.webdav_timeout == 5.0
        assert config.backups_dir == Path("/tmp/bk")

    @pytest.mark.parametrize("content", ["log_level: [unclosed\n", "- just\n- a list\n", "webdav_timeout: soon\n"])
    def test_broken_file_falls_back(self, tmp_home: Path, content: str):
        path = tmp_home / CONFIG_FILE
        path.parent.mkdir(parents=True)
        path.write_text(content, encoding="utf-8")
        assert load_engine_config(tmp_home) == EngineConfig()

    def test_save_then_load(self, tmp_home: Path):
        save_engine_config(tmp_home, EngineConfig(log_level="WARNING", quota_bytes=1000))
        config = load_engine_config(tmp_home)
        assert config.log_level == "WARNING"
        assert config.quota_bytes == 1000

    def test_resolve_home(self, tmp_path: Path):
        assert resolve_home(tmp_path) == tmp_path
        assert resolve_home(Path("~/x")) == Path.home() / "x"


class TestMessages:
    """Tests for the message catalog."""

    def test_known_and_unknown_keys(self):
        assert get_message("settingsRestoreInvalidData") == "Invalid data"
        assert get_message("noSuchKey") == "noSuchKey"

    def test_custom_catalog(self):
        try:
            set_catalog({"settingsRestoreInvalidData": "Ungültige Daten"})
            assert get_message("settingsRestoreInvalidData") == "Ungültige Daten"
            assert get_message("settingsSyncBusy") == "A sync is already in progress."
        finally:
            set_catalog({})


class TestPropagationHub:
    """Tests for configuration event fan-out."""

    def test_emit_calls_callbacks(self, sample_config):
        hub = PropagationHub()
        seen = []
        hub.on(PropagationEvent.PROXY_RULES_CHANGED, seen.append)

        assert hub.emit(PropagationEvent.PROXY_RULES_CHANGED, sample_config) == 1
        assert hub.emit(PropagationEvent.SUBSCRIPTIONS_RELOAD, sample_config) == 0
        assert seen == [sample_config]
        assert hub.registered() == {"proxy_rules_changed": 1}

    def test_failing_callback_is_contained(self, sample_config):
        hub = PropagationHub()
        seen = []

        def boom(config):
            raise RuntimeError("engine down")

        hub.on(PropagationEvent.PROXY_CONFIG_UPDATED, boom)
        hub.on(PropagationEvent.PROXY_CONFIG_UPDATED, seen.append)

        assert hub.emit(PropagationEvent.PROXY_CONFIG_UPDATED, sample_config) == 1
        assert seen == [sample_config]
