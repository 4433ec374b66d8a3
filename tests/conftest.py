"""Shared test fixtures for proxysync."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from proxysync.integrity import ensure_integrity_of_settings, get_default_settings
from proxysync.models import (
    ProxyRule,
    ProxyRulesSubscription,
    ProxyServer,
    ProxyServerSubscription,
    SettingsConfig,
    SubscriptionProxyRule,
)
from proxysync.persistence import JsonFilePersistence, LocalSettingsWriter
from proxysync.profiles import PROFILE_ID_SMART_RULES
from proxysync.propagation import PropagationHub
from proxysync.store import ConfigStore
from proxysync.sync.engine import SyncEngine
from proxysync.sync.storage import FileKeyValueStore


def build_config() -> SettingsConfig:
    """A configuration with something in every collection.

    Sync is on (platform store), WebDAV details are filled in but
    WebDAV itself is off, and both kinds of subscription carry fetched
    content.
    """
    config = get_default_settings()
    config.first_run = False
    config.sync_hash = "h1"

    options = config.options
    options.sync_settings = True
    options.sync_web_dav_server_url = "https://dav.example.com/proxy/"
    options.sync_web_dav_server_user = "alice"
    options.sync_web_dav_server_password = "s3cret"

    config.proxy_servers = [
        ProxyServer(id="p1", name="Office", host="10.0.0.1", port=8080, protocol="HTTP", order=0),
        ProxyServer(id="p2", name="Home", host="10.0.0.2", port=1080, protocol="SOCKS5", order=1),
    ]
    config.proxy_server_subscriptions = [
        ProxyServerSubscription(
            name="Free",
            url="https://subs.example.com/list.txt",
            enabled=True,
            proxies=[
                ProxyServer(id="s1", name="Sub 1", host="192.0.2.1", port=3128, protocol="HTTP"),
                ProxyServer(id="s2", name="Sub 2", host="192.0.2.2", port=3128, protocol="HTTP"),
            ],
        ),
    ]

    smart = next(p for p in config.proxy_profiles if p.profile_id == PROFILE_ID_SMART_RULES)
    smart.proxy_rules = [
        ProxyRule(rule_id="r1", host_name="example.com", rule_pattern="*.example.com", proxy_server_id="p1"),
        ProxyRule(rule_id="r2", host_name="example.org", rule_pattern="*.example.org"),
    ]
    smart.rules_subscriptions = [
        ProxyRulesSubscription(
            id="rs1",
            name="Blocked",
            url="https://rules.example.com/list.txt",
            enabled=True,
            proxy_rules=[SubscriptionProxyRule(name="a.com", regex=r"^a\.com$")],
            whitelist_rules=[SubscriptionProxyRule(name="b.com", regex=r"^b\.com$")],
        ),
    ]

    config.default_proxy_server_id = "p1"
    config.active_profile_id = PROFILE_ID_SMART_RULES
    ensure_integrity_of_settings(config)
    return config


@pytest.fixture
def tmp_home(tmp_path: Path) -> Path:
    """Provide a temporary proxysync home directory."""
    home = tmp_path / ".proxysync"
    home.mkdir()
    return home


@pytest.fixture
def config_factory() -> Callable[[], SettingsConfig]:
    """Build fresh sample configurations on demand."""
    return build_config


@pytest.fixture
def sample_config() -> SettingsConfig:
    return build_config()


@pytest.fixture
def kv_store(tmp_home: Path) -> FileKeyValueStore:
    return FileKeyValueStore(tmp_home / "sync" / "store.json")


def make_engine(home: Path, config: SettingsConfig, kv_store: FileKeyValueStore) -> SyncEngine:
    """Wire a sync engine for ``home`` around ``config``."""
    gateway = JsonFilePersistence(home)
    store = ConfigStore(config)
    writer = LocalSettingsWriter(store, gateway)
    return SyncEngine(store, writer, kv_store, hub=PropagationHub(), state_dir=home / "sync")


@pytest.fixture
def engine(tmp_home: Path, sample_config: SettingsConfig, kv_store: FileKeyValueStore) -> SyncEngine:
    """A sync engine around the sample configuration, platform store backend."""
    return make_engine(tmp_home, sample_config, kv_store)


@pytest.fixture
def engine_factory() -> Callable[[Path, SettingsConfig, FileKeyValueStore], SyncEngine]:
    """Wire extra engines, e.g. a second device sharing the sync storage."""
    return make_engine
