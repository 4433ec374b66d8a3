"""
Lookups over a configuration: finding, ordering and walking servers.

Servers live in two places: the user's own ``proxy_servers`` list and
the fetched ``proxies`` of each server subscription. Every lookup here
checks the direct list first, then the subscriptions in order.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .errors import ReferentialError
from .models import (
    ProxyServer,
    ProxyServerFromSubscription,
    ProxyServerSubscription,
    SettingsConfig,
)

logger = logging.getLogger("proxysync.operations")


def find_proxy_server_by_id_from_list(
    server_id: Optional[str],
    proxy_servers: Optional[Iterable[ProxyServer]],
    subscriptions: Optional[Iterable[ProxyServerSubscription]],
) -> Optional[ProxyServer]:
    """Resolve a server id against explicit lists.

    Args:
        server_id: Id to look for.
        proxy_servers: Directly configured servers.
        subscriptions: Server subscriptions whose proxies are searched.

    Returns:
        The matching ProxyServer, or None.
    """
    if not server_id:
        return None
    for server in proxy_servers or []:
        if server.id == server_id:
            return server
    for subscription in subscriptions or []:
        for server in subscription.proxies:
            if server.id == server_id:
                return server
    return None


def find_proxy_server_by_id(config: SettingsConfig, server_id: Optional[str]) -> Optional[ProxyServer]:
    return find_proxy_server_by_id_from_list(
        server_id, config.proxy_servers, config.proxy_server_subscriptions,
    )


def resolve_proxy_server(config: SettingsConfig, server_id: str) -> ProxyServer:
    """Like find_proxy_server_by_id, but a miss is an error.

    Raises:
        ReferentialError: If no direct or subscribed server has ``server_id``.
    """
    server = find_proxy_server_by_id(config, server_id)
    if server is None:
        raise ReferentialError(f"Proxy server {server_id} does not exist")
    return server


def find_proxy_server_by_name(config: SettingsConfig, name: str) -> Optional[ProxyServer]:
    for server in config.proxy_servers:
        if server.name == name:
            return server
    for subscription in config.proxy_server_subscriptions:
        for server in subscription.proxies:
            if server.name == name:
                return server
    return None


def sort_proxy_servers(proxy_servers: Optional[list[ProxyServer]]) -> None:
    """Sort in place by ``order``; a missing order counts as 0. Stable."""
    if not proxy_servers:
        return
    proxy_servers.sort(key=lambda server: server.order or 0)


def get_all_subscribed_proxy_servers(config: SettingsConfig) -> list[ProxyServerFromSubscription]:
    """Servers of all enabled subscriptions, tagged with the subscription name."""
    result: list[ProxyServerFromSubscription] = []
    for subscription in config.proxy_server_subscriptions:
        if not subscription.enabled:
            continue
        for server in subscription.proxies:
            result.append(ProxyServerFromSubscription(
                **server.model_dump(),
                subscription_name=subscription.name,
            ))
    return result


def get_first_proxy_server(config: SettingsConfig) -> Optional[ProxyServer]:
    if config.proxy_servers:
        return config.proxy_servers[0]
    for subscription in config.proxy_server_subscriptions:
        if subscription.proxies:
            return subscription.proxies[0]
    return None


def get_last_proxy_server(config: SettingsConfig) -> Optional[ProxyServer]:
    if config.proxy_servers:
        return config.proxy_servers[-1]
    for subscription in reversed(config.proxy_server_subscriptions):
        if subscription.proxies:
            return subscription.proxies[-1]
    return None


def _index_of(servers: list[ProxyServer], server_id: str) -> int:
    for index, server in enumerate(servers):
        if server.id == server_id:
            return index
    return -1


def find_next_proxy_server_by_current_proxy_id(
    config: SettingsConfig, current_proxy_id: str,
) -> Optional[ProxyServer]:
    """The server after ``current_proxy_id`` within the same list.

    Navigation never crosses from one list to another; the last server
    of a list has no next.
    """
    index = _index_of(config.proxy_servers, current_proxy_id)
    if -1 < index < len(config.proxy_servers) - 1:
        return config.proxy_servers[index + 1]

    for subscription in config.proxy_server_subscriptions:
        index = _index_of(subscription.proxies, current_proxy_id)
        if -1 < index < len(subscription.proxies) - 1:
            return subscription.proxies[index + 1]
    return None


def find_previous_proxy_server_by_current_proxy_id(
    config: SettingsConfig, current_proxy_id: str,
) -> Optional[ProxyServer]:
    index = _index_of(config.proxy_servers, current_proxy_id)
    if index > 0:
        return config.proxy_servers[index - 1]

    for subscription in config.proxy_server_subscriptions:
        index = _index_of(subscription.proxies, current_proxy_id)
        if index > 0:
            return subscription.proxies[index - 1]
    return None


def update_smart_profiles_rules_proxy_server(config: SettingsConfig) -> int:
    """Re-resolve the denormalized ``proxy`` on every profile rule.

    A rule whose ``proxy_server_id`` no longer resolves loses both the
    id and the proxy.

    Args:
        config: Configuration to repair in place.

    Returns:
        int: Number of dangling references that were dropped.
    """
    dropped = 0
    for profile in config.proxy_profiles:
        for rule in profile.proxy_rules:
            if not rule.proxy_server_id:
                rule.proxy = None
                continue
            try:
                rule.proxy = resolve_proxy_server(config, rule.proxy_server_id)
            except ReferentialError as exc:
                logger.debug("Dropping server from rule %s: %s", rule.rule_id, exc)
                rule.proxy = None
                rule.proxy_server_id = None
                dropped += 1
    return dropped
