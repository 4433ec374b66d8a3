"""
Carry local-only content into a configuration that just arrived.

A remote payload or a restored backup never contains fetched
subscription content. Before it replaces the local configuration the
content is copied over from the local copy, so a sync or restore does
not wipe what the device already downloaded.

Matching keys differ on purpose: rules subscriptions by owning profile
id + subscription id, server subscriptions by (name, url), because the
latter have no id that travels between devices.
"""

from __future__ import annotations

import logging

from ..models import SettingsConfig

logger = logging.getLogger("proxysync.sync.merger")


def merge_non_syncable(dest: SettingsConfig, source: SettingsConfig) -> None:
    """Copy fetched subscription content from ``source`` into ``dest``.

    Args:
        dest: Freshly received or restored configuration, modified in place.
        source: The local configuration it is about to replace.
    """
    source_profiles = {profile.profile_id: profile for profile in source.proxy_profiles}

    for dest_profile in dest.proxy_profiles:
        src_profile = source_profiles.get(dest_profile.profile_id)
        for dest_sub in dest_profile.rules_subscriptions:
            if not dest_sub.enabled:
                continue
            if src_profile is None:
                continue
            src_sub = next(
                (s for s in src_profile.rules_subscriptions if s.id == dest_sub.id),
                None,
            )
            if src_sub is None:
                continue

            if src_sub.proxy_rules:
                dest_sub.proxy_rules = [rule.model_copy() for rule in src_sub.proxy_rules]
            if src_sub.whitelist_rules:
                dest_sub.whitelist_rules = [rule.model_copy() for rule in src_sub.whitelist_rules]

    for dest_sub in dest.proxy_server_subscriptions:
        src_sub = next(
            (
                s for s in source.proxy_server_subscriptions
                if s.name == dest_sub.name and s.url == dest_sub.url
            ),
            None,
        )
        if src_sub is None:
            dest_sub.proxies = []
            continue
        if src_sub.proxies:
            dest_sub.proxies = [server.model_copy(deep=True) for server in src_sub.proxies]

    logger.debug("Merged non-syncable content into incoming settings")
