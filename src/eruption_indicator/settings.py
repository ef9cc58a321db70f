"""User preference keys and an in-memory settings store."""

from __future__ import annotations

import logging
import os
from typing import Callable, Dict, List, Mapping, Optional, Protocol

SCHEMA_ID = "org.eruption.indicator"

NOTIFICATIONS_GENERAL = "notifications-general"
NOTIFICATIONS_ON_PROFILE_SWITCH = "notifications-on-profile-switch"
NOTIFICATIONS_ON_HOTPLUG = "notifications-on-hotplug"
NOTIFICATIONS_ON_SETTINGS_CHANGE = "notifications-on-settings-change"
COMPACT_MODE = "compact-mode"
SHOW_BATTERY_LEVEL = "show-battery-level"
SHOW_SIGNAL_STRENGTH = "show-signal-strength"
SHOW_DEVICE_INDICATORS = "show-device-indicators"
SHOW_DEVICE_INDICATORS_PERCENTAGES = "show-device-indicators-percentages"
POLL_DEVICE_STATUS = "poll-device-status"

DEFAULTS: Dict[str, bool] = {
    NOTIFICATIONS_GENERAL: True,
    NOTIFICATIONS_ON_PROFILE_SWITCH: True,
    NOTIFICATIONS_ON_HOTPLUG: True,
    NOTIFICATIONS_ON_SETTINGS_CHANGE: True,
    COMPACT_MODE: False,
    SHOW_BATTERY_LEVEL: True,
    SHOW_SIGNAL_STRENGTH: True,
    SHOW_DEVICE_INDICATORS: True,
    SHOW_DEVICE_INDICATORS_PERCENTAGES: False,
    POLL_DEVICE_STATUS: False,
}

DEBUG_ENV = "ERUPTION_INDICATOR_DEBUG"
BUS_ENV = "ERUPTION_INDICATOR_BUS"

ChangedCallback = Callable[[str], None]

_LOGGER = logging.getLogger(__name__)


class Settings(Protocol):
    def get_boolean(self, key: str) -> bool:
        ...

    def connect_changed(self, callback: ChangedCallback) -> Callable[[], None]:
        """Register ``callback``; the returned function disconnects it."""
        ...


class MemorySettings:
    """Dictionary backed settings used when no GSettings schema is installed."""

    def __init__(self, values: Optional[Mapping[str, bool]] = None) -> None:
        self._values: Dict[str, bool] = dict(DEFAULTS)
        if values:
            self._values.update(values)
        self._callbacks: List[ChangedCallback] = []

    def get_boolean(self, key: str) -> bool:
        try:
            return bool(self._values[key])
        except KeyError:
            _LOGGER.warning("Unknown settings key %r, assuming false", key)
            return False

    def set_boolean(self, key: str, value: bool) -> None:
        if self._values.get(key) == bool(value):
            return
        self._values[key] = bool(value)
        for callback in list(self._callbacks):
            callback(key)

    def connect_changed(self, callback: ChangedCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _disconnect() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _disconnect


def debug_requested(environ: Mapping[str, str] = os.environ) -> bool:
    return environ.get(DEBUG_ENV, "").strip().lower() in {"1", "true", "yes", "on"}


def bus_override(environ: Mapping[str, str] = os.environ) -> Optional[str]:
    value = environ.get(BUS_ENV, "").strip().lower()
    if value in {"system", "session"}:
        return value
    if value:
        _LOGGER.warning("Ignoring %s=%r; expected 'system' or 'session'", BUS_ENV, value)
    return None


__all__ = [
    "DEFAULTS",
    "MemorySettings",
    "SCHEMA_ID",
    "Settings",
    "bus_override",
    "debug_requested",
]
