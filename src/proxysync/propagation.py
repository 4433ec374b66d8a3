"""
Propagation: telling collaborators the configuration changed.

The rule-matching engine and the subscription scheduler live outside
this package. They register callbacks here; the sync engine and the
restore path emit events after a new configuration is committed.
A failing callback is logged and never aborts the emitter.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

from .models import SettingsConfig

logger = logging.getLogger("proxysync.propagation")

PropagationCallback = Callable[[SettingsConfig], None]


class PropagationEvent(str, Enum):
    """Events emitted after a configuration is committed."""

    PROXY_RULES_CHANGED = "proxy_rules_changed"
    PROXY_CONFIG_UPDATED = "proxy_config_updated"
    SUBSCRIPTIONS_RELOAD = "subscriptions_reload"


class PropagationHub:
    """In-process fan-out of configuration events."""

    def __init__(self) -> None:
        self._callbacks: dict[PropagationEvent, list[PropagationCallback]] = {}

    def on(self, event: PropagationEvent, callback: PropagationCallback) -> None:
        """Register a callback for an event."""
        self._callbacks.setdefault(event, []).append(callback)

    def emit(self, event: PropagationEvent, config: SettingsConfig) -> int:
        """Call every callback registered for ``event``.

        Args:
            event: What happened.
            config: The committed configuration.

        Returns:
            int: Number of callbacks that completed.
        """
        delivered = 0
        for callback in self._callbacks.get(event, []):
            try:
                callback(config)
                delivered += 1
            except Exception as exc:
                logger.error("Propagation callback for %s failed: %s", event.value, exc)
        logger.debug("Emitted %s to %d callback(s)", event.value, delivered)
        return delivered

    def registered(self) -> dict[str, int]:
        return {event.value: len(cbs) for event, cbs in self._callbacks.items()}
