"""Transient on-screen notification with a single overlay slot."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, Optional, Protocol

from . import settings as prefs
from .timers import TimerRegistry

NOTIFICATION_TIMEOUT_MILLIS = 1200
NOTIFICATION_ANIMATION_MILLIS = 500

DISPLAY_TIMER = "notification-display"
FADE_TIMER = "notification-fade"

_LOGGER = logging.getLogger(__name__)


class NotificationKind(Enum):
    GENERAL = "general"
    ERROR = "error"
    PROFILE_SWITCH = "profile-switch"
    HOTPLUG = "hotplug"
    SETTINGS = "settings"


_PREFERENCE_FOR_KIND: Dict[NotificationKind, str] = {
    NotificationKind.GENERAL: prefs.NOTIFICATIONS_GENERAL,
    NotificationKind.ERROR: prefs.NOTIFICATIONS_GENERAL,
    NotificationKind.PROFILE_SWITCH: prefs.NOTIFICATIONS_ON_PROFILE_SWITCH,
    NotificationKind.HOTPLUG: prefs.NOTIFICATIONS_ON_HOTPLUG,
    NotificationKind.SETTINGS: prefs.NOTIFICATIONS_ON_SETTINGS_CHANGE,
}


class Overlay(Protocol):
    def set_text(self, text: str) -> None:
        ...

    def present(self) -> None:
        """Show fully opaque, centred on the active display."""
        ...

    def fade_out(self, duration_ms: int) -> None:
        ...

    def destroy(self) -> None:
        ...


OverlayFactory = Callable[[str], Overlay]
NotifyFn = Callable[[NotificationKind, str], None]


class NotificationPresenter:
    """Shows at most one overlay; a new message replaces the visible one in place."""

    def __init__(
        self,
        overlay_factory: OverlayFactory,
        timers: TimerRegistry,
        settings: prefs.Settings,
        *,
        display_ms: int = NOTIFICATION_TIMEOUT_MILLIS,
        fade_ms: int = NOTIFICATION_ANIMATION_MILLIS,
    ) -> None:
        self._overlay_factory = overlay_factory
        self._timers = timers
        self._settings = settings
        self.display_ms = display_ms
        self.fade_ms = fade_ms
        self._overlay: Optional[Overlay] = None
        self._text: Optional[str] = None

    @property
    def visible(self) -> bool:
        return self._overlay is not None

    @property
    def text(self) -> Optional[str]:
        return self._text

    def enabled(self, kind: NotificationKind) -> bool:
        key = _PREFERENCE_FOR_KIND.get(kind, prefs.NOTIFICATIONS_GENERAL)
        try:
            return self._settings.get_boolean(key)
        except Exception as err:  # noqa: BLE001 - settings backend errors must not break callers
            _LOGGER.error("Could not read notification preference %s: %s", key, err)
            return False

    def show(self, kind: NotificationKind, text: str) -> None:
        if not self.enabled(kind):
            _LOGGER.debug("Dropping %s notification: %s", kind.value, text)
            return

        self._timers.cancel(FADE_TIMER)
        if self._overlay is None:
            self._overlay = self._overlay_factory(text)
        else:
            self._overlay.set_text(text)
        self._text = text
        self._overlay.present()
        self._timers.schedule(DISPLAY_TIMER, self.display_ms, self._begin_fade)

    def dismiss(self) -> None:
        self._timers.cancel(DISPLAY_TIMER)
        self._timers.cancel(FADE_TIMER)
        overlay, self._overlay = self._overlay, None
        self._text = None
        if overlay is not None:
            overlay.destroy()

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------
    def _begin_fade(self) -> None:
        if self._overlay is None:
            return
        self._overlay.fade_out(self.fade_ms)
        self._timers.schedule(FADE_TIMER, self.fade_ms, self.dismiss)


__all__ = [
    "NOTIFICATION_ANIMATION_MILLIS",
    "NOTIFICATION_TIMEOUT_MILLIS",
    "NotificationKind",
    "NotificationPresenter",
    "NotifyFn",
    "Overlay",
    "OverlayFactory",
]
