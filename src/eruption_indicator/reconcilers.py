"""Reconcilers translating remote change notifications into view model updates.

There is one reconciler per endpoint and each is the only writer of its slice
of the :class:`~eruption_indicator.view_model.ViewModel`.  Reconcilers never
touch widgets directly; they ask for a menu refresh of a given scope and
report user-visible events through the notification callback.  Every remote
read and write is asynchronous; results are applied from the completion
callback.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from . import devices
from .endpoints import (
    ActiveProfileChanged,
    ActiveSlotChanged,
    BrightnessChanged,
    DeviceHotplug,
    DeviceStatusChanged,
    DeviceStatusEntry,
    EffectsStatusChanged,
    PayloadError,
    ProfilesChanged,
    parse_device_status,
)
from .indicators import DeviceIndicatorSet
from .notifications import NotificationKind, NotifyFn
from .proxy import UNKNOWN, EndpointProxy, RemoteCallError, SignalHandler
from .timers import Debouncer, TimerRegistry
from .view_model import (
    SLOT_COUNT,
    ConnectionState,
    Profile,
    ViewModel,
    clamp_brightness,
    is_valid_slot,
    profile_name_for,
)

BRIGHTNESS_DEBOUNCE_MILLIS = 15
BRIGHTNESS_TIMER = "brightness-write"
DEVICE_POLL_TIMER = "device-status-poll"
DEVICE_POLL_INTERVAL_MILLIS = 3000

_LOGGER = logging.getLogger(__name__)

ProfilesCallback = Callable[[List[Profile]], None]
ErrorCallback = Callable[[Any, Optional[RemoteCallError]], None]


class RefreshScope(Enum):
    FULL = "full"
    CONTROLS = "controls"
    DEVICES = "devices"
    SLOT_PROFILES = "slot-profiles"


@dataclass
class ReconcilerContext:
    model: ViewModel
    timers: TimerRegistry
    notify: NotifyFn
    request_refresh: Callable[[RefreshScope], None]
    report_failure: Callable[[RemoteCallError], None]


class Reconciler:
    """Base class wiring one endpoint proxy into the view model."""

    def __init__(self, proxy: EndpointProxy, context: ReconcilerContext) -> None:
        self.proxy = proxy
        self.context = context

    @property
    def model(self) -> ViewModel:
        return self.context.model

    def attach(self) -> None:
        self.proxy.on_properties_changed(self._on_properties_changed)
        for name, handler in self.signal_handlers().items():
            self.proxy.on_signal(name, handler)

    def signal_handlers(self) -> Dict[str, SignalHandler]:
        return {}

    def sync(self, *, suppress_notification: bool = True, fetch: bool = False) -> None:
        """Apply every known property; ``fetch`` re-reads them from the daemon first.

        Fetched values are applied as one batch once every read has completed.
        """

        names = list(self.proxy.spec.properties)
        if not fetch:
            self._apply_known({name: self.proxy.get_property(name) for name in names}, suppress_notification)
            return

        fetched: Dict[str, Any] = {}
        pending = set(names)

        def _on_value(name: str, value: Any, error: Optional[RemoteCallError]) -> None:
            pending.discard(name)
            if error is not None:
                _LOGGER.warning("Re-sync of %s.%s failed: %s", self.proxy.name, name, error.message)
            else:
                fetched[name] = value
            if not pending:
                self._apply_known(fetched, suppress_notification)

        for name in names:
            self.proxy.fetch_property(name, functools.partial(_on_value, name))

    def _apply_known(self, values: Mapping[str, Any], suppress_notification: bool) -> None:
        known = {name: value for name, value in values.items() if value is not UNKNOWN and value is not None}
        if known:
            self.apply(known, suppress_notification=suppress_notification)

    def apply(self, changed: Mapping[str, Any], *, suppress_notification: bool) -> None:
        raise NotImplementedError

    def _on_properties_changed(self, changed: Mapping[str, Any]) -> None:
        self._apply_known(changed, suppress_notification=False)

    def _call_failed(self, action: str, error: RemoteCallError) -> None:
        _LOGGER.warning("%s failed: %s", action, error)
        self.context.notify(NotificationKind.ERROR, f"Could not {action}! Is Eruption running?")
        self.context.report_failure(error)

    def _on_failure(self, action: str, revert: Optional[Callable[[], None]] = None) -> ErrorCallback:
        """Completion callback reporting a failed ``action``; ``revert`` undoes the optimistic update."""

        def _done(_result: Any, error: Optional[RemoteCallError]) -> None:
            if error is None:
                return
            if revert is not None:
                revert()
            self._call_failed(action, error)

        return _done


# ----------------------------------------------------------------------
# Slots
# ----------------------------------------------------------------------
class SlotReconciler(Reconciler):
    """Owns the active slot, slot names and the per-slot profile map.

    The per-slot profile map is only ever filled from ``GetSlotProfiles`` so
    the order in which slot and profile signals arrive cannot attribute a
    profile to the wrong slot.
    """

    def signal_handlers(self) -> Dict[str, SignalHandler]:
        return {"ActiveSlotChanged": self._on_active_slot_changed}

    def sync(self, *, suppress_notification: bool = True, fetch: bool = False) -> None:
        super().sync(suppress_notification=suppress_notification, fetch=fetch)
        self.refresh_slot_profiles()

    def apply(self, changed: Mapping[str, Any], *, suppress_notification: bool) -> None:
        if "ActiveSlot" in changed:
            self._set_active_slot(changed["ActiveSlot"])
        if "SlotNames" in changed:
            names = changed["SlotNames"]
            if isinstance(names, (list, tuple)):
                self.model.set_slot_names(names)
            else:
                _LOGGER.error("Ignoring malformed SlotNames value: %r", names)
        self.context.request_refresh(RefreshScope.FULL)

    def _set_active_slot(self, slot: Any) -> bool:
        if not is_valid_slot(slot):
            _LOGGER.error("Ignoring out of range slot index: %r", slot)
            return False
        self.model.active_slot = slot
        return True

    def _on_active_slot_changed(self, payload: ActiveSlotChanged) -> None:
        if self._set_active_slot(payload.slot):
            _LOGGER.info("Active slot changed to %d", payload.slot + 1)
            self.context.request_refresh(RefreshScope.FULL)
            self.refresh_slot_profiles()

    def refresh_slot_profiles(self) -> bool:
        """Re-read which profile each slot holds; returns False when the endpoint is not bound."""

        if not self.proxy.bound:
            return False

        def _done(result: Any, error: Optional[RemoteCallError]) -> None:
            if error is not None:
                _LOGGER.warning("Could not read slot profiles: %s", error.message)
                return
            try:
                (filenames,) = result
                profiles = {
                    slot: str(filename)
                    for slot, filename in enumerate(list(filenames)[:SLOT_COUNT])
                    if filename
                }
            except (TypeError, ValueError) as err:
                _LOGGER.error("Ignoring malformed GetSlotProfiles reply %r: %s", result, err)
                return
            self.model.active_profiles = profiles
            self.context.request_refresh(RefreshScope.FULL)

        self.proxy.call_async("GetSlotProfiles", callback=_done)
        return True

    # -- User intents ----------------------------------------------------
    def switch_slot(self, slot: int) -> None:
        if not is_valid_slot(slot) or slot == self.model.active_slot:
            return
        self.proxy.call_async("SwitchSlot", slot, callback=self._on_failure("switch slots"))

    def rename_slot(self, slot: int, name: str) -> None:
        if not is_valid_slot(slot):
            return
        names = [self.model.slot_name(index) for index in range(len(self.model.slot_names))]
        names[slot] = name
        self.proxy.set_property("SlotNames", names, callback=self._on_failure("rename the slot"))


# ----------------------------------------------------------------------
# Profiles
# ----------------------------------------------------------------------
class ProfileReconciler(Reconciler):
    def signal_handlers(self) -> Dict[str, SignalHandler]:
        return {
            "ActiveProfileChanged": self._on_active_profile_changed,
            "ProfilesChanged": self._on_profiles_changed,
        }

    def apply(self, changed: Mapping[str, Any], *, suppress_notification: bool) -> None:
        filename = changed.get("ActiveProfile")
        if filename:
            self.model.current_profile = str(filename)
            self.context.request_refresh(RefreshScope.SLOT_PROFILES)

    def _on_active_profile_changed(self, payload: ActiveProfileChanged) -> None:
        self.model.current_profile = payload.filename
        self.context.request_refresh(RefreshScope.SLOT_PROFILES)

        def _announce(profiles: List[Profile]) -> None:
            name = profile_name_for(payload.filename, profiles)
            _LOGGER.info("Active profile changed to %s (%s)", name, payload.filename)
            self.context.notify(NotificationKind.PROFILE_SWITCH, name)

        self.enumerate_profiles(_announce)

    def _on_profiles_changed(self, _payload: ProfilesChanged) -> None:
        self.context.request_refresh(RefreshScope.FULL)

    def enumerate_profiles(self, callback: ProfilesCallback) -> None:
        """Fetch a fresh profile list; ``callback`` receives an empty list if that fails."""

        def _done(result: Any, error: Optional[RemoteCallError]) -> None:
            if error is not None:
                _LOGGER.warning("Could not enumerate profiles: %s", error.message)
                callback([])
                return
            try:
                (entries,) = result
                profiles = [Profile(name=str(name), filename=str(filename)) for name, filename in entries]
            except (TypeError, ValueError) as err:
                _LOGGER.warning("Could not enumerate profiles: %s", err)
                profiles = []
            callback(profiles)

        self.proxy.call_async("EnumProfiles", callback=_done)

    # -- User intents ----------------------------------------------------
    def switch_profile(self, filename: str) -> None:
        self.proxy.call_async("SwitchProfile", filename, callback=self._on_failure("switch profiles"))


# ----------------------------------------------------------------------
# Global configuration
# ----------------------------------------------------------------------
class ConfigReconciler(Reconciler):
    def __init__(self, proxy: EndpointProxy, context: ReconcilerContext, *, debounce_ms: int = BRIGHTNESS_DEBOUNCE_MILLIS) -> None:
        super().__init__(proxy, context)
        self._brightness = Debouncer(context.timers, BRIGHTNESS_TIMER, debounce_ms, self._write_brightness)

    def signal_handlers(self) -> Dict[str, SignalHandler]:
        return {"BrightnessChanged": self._on_brightness_changed}

    def apply(self, changed: Mapping[str, Any], *, suppress_notification: bool) -> None:
        if "EnableSfx" in changed:
            self.model.sfx_enabled = bool(changed["EnableSfx"])
            if not suppress_notification:
                state = "enabled" if self.model.sfx_enabled else "disabled"
                self.context.notify(NotificationKind.SETTINGS, f"Audio Effects {state}")
        if "Brightness" in changed:
            self.model.brightness = clamp_brightness(changed["Brightness"])
            if not suppress_notification:
                self.context.notify(NotificationKind.SETTINGS, f"Brightness: {self.model.brightness}%")
        self.context.request_refresh(RefreshScope.CONTROLS)

    def _on_brightness_changed(self, payload: BrightnessChanged) -> None:
        self.model.brightness = clamp_brightness(payload.brightness)
        self.context.request_refresh(RefreshScope.CONTROLS)

    # -- User intents ----------------------------------------------------
    def set_brightness(self, value: float) -> None:
        """Slider input; only the last value of a burst reaches the daemon."""

        brightness = max(0, min(100, int(round(value))))
        self.model.brightness = brightness
        self._brightness.update(brightness)

    def _write_brightness(self, value: int) -> None:
        self.proxy.set_property("Brightness", value, callback=self._on_failure("set the brightness"))

    def toggle_sfx(self) -> None:
        enabled = not self.model.sfx_enabled
        self.model.sfx_enabled = enabled

        def _revert() -> None:
            self.model.sfx_enabled = not enabled
            self.context.request_refresh(RefreshScope.CONTROLS)

        self.proxy.set_property("EnableSfx", enabled, callback=self._on_failure("toggle audio effects", _revert))


# ----------------------------------------------------------------------
# Ambient effect (fx-proxy, session bus)
# ----------------------------------------------------------------------
class EffectsReconciler(Reconciler):
    def signal_handlers(self) -> Dict[str, SignalHandler]:
        return {"StatusChanged": self._on_status_changed}

    def apply(self, changed: Mapping[str, Any], *, suppress_notification: bool) -> None:
        if "AmbientEffect" not in changed:
            return
        self.model.ambient_effect_enabled = bool(changed["AmbientEffect"])
        if not suppress_notification:
            state = "enabled" if self.model.ambient_effect_enabled else "disabled"
            self.context.notify(NotificationKind.SETTINGS, f"Ambient Effect {state}")
        self.context.request_refresh(RefreshScope.CONTROLS)

    def _on_status_changed(self, payload: EffectsStatusChanged) -> None:
        _LOGGER.info("fx-proxy status: %s", payload.event)
        self.context.request_refresh(RefreshScope.FULL)

    def toggle_ambient_effect(self) -> None:
        enabled = not self.model.ambient_effect_enabled
        self.model.ambient_effect_enabled = enabled

        def _done(_result: Any, error: Optional[RemoteCallError]) -> None:
            if error is None:
                return
            # The fx-proxy lives on the session bus; its absence says nothing about the daemon.
            self.model.ambient_effect_enabled = not enabled
            _LOGGER.warning("Toggling the ambient effect failed: %s", error)
            self.context.notify(NotificationKind.ERROR, "Could not toggle the ambient effect! Is the fx-proxy running?")
            self.context.request_refresh(RefreshScope.CONTROLS)

        self.proxy.set_property("AmbientEffect", enabled, callback=_done)


# ----------------------------------------------------------------------
# Connectivity
# ----------------------------------------------------------------------
class StatusReconciler(Reconciler):
    """Owns the Unknown/Connected/Disconnected state machine."""

    def __init__(
        self,
        proxy: EndpointProxy,
        context: ReconcilerContext,
        *,
        on_connected: Callable[[], None],
        on_disconnected: Callable[[], None],
    ) -> None:
        super().__init__(proxy, context)
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected

    def apply(self, changed: Mapping[str, Any], *, suppress_notification: bool) -> None:
        if "Running" not in changed:
            return
        running = bool(changed["Running"])
        self.transition(ConnectionState.CONNECTED if running else ConnectionState.DISCONNECTED)

    def _on_properties_changed(self, changed: Mapping[str, Any]) -> None:
        if changed.get("Running") is UNKNOWN:
            # Invalidated: the daemon left the bus.
            _LOGGER.info("Eruption status invalidated")
            self.transition(ConnectionState.DISCONNECTED)
            return
        super()._on_properties_changed(changed)

    def transition(self, state: ConnectionState) -> bool:
        previous = self.model.connection
        if state is previous:
            return False
        self.model.connection = state
        _LOGGER.info("Eruption connection: %s -> %s", previous.value, state.value)
        if state is ConnectionState.CONNECTED:
            self._on_connected()
        elif state is ConnectionState.DISCONNECTED:
            self._on_disconnected()
        return True

    def report_failure(self, error: RemoteCallError) -> None:
        if error.unreachable and self.model.connection is ConnectionState.CONNECTED:
            _LOGGER.warning("Assuming Eruption is not running: %s", error)
            self.transition(ConnectionState.DISCONNECTED)


# ----------------------------------------------------------------------
# Devices
# ----------------------------------------------------------------------
class DeviceReconciler(Reconciler):
    def __init__(self, proxy: EndpointProxy, context: ReconcilerContext, indicators: DeviceIndicatorSet) -> None:
        super().__init__(proxy, context)
        self.indicators = indicators

    def signal_handlers(self) -> Dict[str, SignalHandler]:
        return {
            "DeviceStatusChanged": self._on_device_status_changed,
            "DeviceHotplug": self._on_device_hotplug,
        }

    def apply(self, changed: Mapping[str, Any], *, suppress_notification: bool) -> None:
        if "DeviceStatus" not in changed:
            return
        try:
            device_status = parse_device_status(changed["DeviceStatus"])
        except PayloadError as err:
            _LOGGER.error("Skipping device status update: %s", err)
            return
        self.update_devices(device_status)

    def _on_device_status_changed(self, payload: DeviceStatusChanged) -> None:
        self.update_devices(list(payload.devices))

    def update_devices(self, device_status: Sequence[DeviceStatusEntry]) -> None:
        self.model.device_status = list(device_status)
        if self.model.connected:
            self.indicators.reconcile(self.model.device_status)
            self.context.request_refresh(RefreshScope.DEVICES)
        else:
            self.indicators.clear()

    def _on_device_hotplug(self, payload: DeviceHotplug) -> None:
        _LOGGER.info(
            "Device hot-plugged: %04x:%04x; failed: %s", payload.usb_vid, payload.usb_pid, payload.failed
        )
        known = payload.usb_vid != 0 and payload.usb_pid != 0
        name = devices.device_name(payload.usb_vid, payload.usb_pid)
        if not payload.failed:
            message = f"Plugged {name}" if known else "New device plugged and activated"
        else:
            message = f"Removed {name}" if known else "Device removed"
        self.context.notify(NotificationKind.HOTPLUG, message)
        if self.model.connected:
            self.indicators.reconcile(self.model.device_status)

    # -- Polling fallback ------------------------------------------------
    def start_polling(self, interval_ms: int = DEVICE_POLL_INTERVAL_MILLIS) -> None:
        _LOGGER.info("Polling device status every %d ms", interval_ms)
        self.context.timers.schedule_repeating(DEVICE_POLL_TIMER, interval_ms, self.poll)

    def stop_polling(self) -> None:
        if self.context.timers.cancel(DEVICE_POLL_TIMER):
            _LOGGER.info("Stopped device status polling")

    @property
    def polling(self) -> bool:
        return self.context.timers.is_pending(DEVICE_POLL_TIMER)

    def poll(self) -> None:
        def _on_value(payload: Any, error: Optional[RemoteCallError]) -> None:
            if error is not None:
                _LOGGER.debug("Device status poll failed: %s", error)
                self.context.report_failure(error)
                return
            self._apply_known({"DeviceStatus": payload}, suppress_notification=True)

        self.proxy.fetch_property("DeviceStatus", _on_value)


__all__ = [
    "BRIGHTNESS_DEBOUNCE_MILLIS",
    "ConfigReconciler",
    "DEVICE_POLL_INTERVAL_MILLIS",
    "DEVICE_POLL_TIMER",
    "DeviceReconciler",
    "EffectsReconciler",
    "ProfileReconciler",
    "Reconciler",
    "ReconcilerContext",
    "RefreshScope",
    "SlotReconciler",
    "StatusReconciler",
]
