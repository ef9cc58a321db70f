"""Panel indicators mirroring the battery and signal status of attached devices.

The indicator set is reconciled rather than rebuilt on every status tick: a full
rebuild happens only when the set of (device, indicator kind) bindings changes,
otherwise each live widget is updated in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from . import devices
from . import settings as prefs
from .endpoints import DeviceStatusEntry

UNKNOWN_PERCENT_TEXT = "--%"

_LOGGER = logging.getLogger(__name__)


class IndicatorKind(Enum):
    BATTERY = "battery"
    SIGNAL_STRENGTH = "signal-strength"


# ----------------------------------------------------------------------
# Presentation helpers
# ----------------------------------------------------------------------
def battery_level_icon(level: Optional[int]) -> str:
    if level is None:
        return "battery-missing-symbolic"
    if level >= 100:
        return "battery-level-100-symbolic"
    if level < 10:
        return "battery-empty-symbolic"
    return f"battery-level-{(level // 10) * 10}-symbolic"


def signal_strength_icon(strength: Optional[int]) -> str:
    if strength is None:
        return "network-cellular-signal-none-symbolic"
    if strength >= 90:
        return "network-cellular-signal-excellent-symbolic"
    if strength >= 60:
        return "network-cellular-signal-good-symbolic"
    if strength >= 40:
        return "network-cellular-signal-ok-symbolic"
    if strength >= 10:
        return "network-cellular-signal-weak-symbolic"
    return "network-cellular-signal-none-symbolic"


def format_percent(value: Optional[int]) -> str:
    if value is None:
        return UNKNOWN_PERCENT_TEXT
    return f"{value:>2}%"


def indicator_value(entry: DeviceStatusEntry, kind: IndicatorKind) -> Optional[int]:
    if kind is IndicatorKind.BATTERY:
        return entry.battery_level
    return entry.signal_strength


def indicator_icon(entry: DeviceStatusEntry, kind: IndicatorKind) -> str:
    value = indicator_value(entry, kind)
    if kind is IndicatorKind.BATTERY:
        return battery_level_icon(value)
    return signal_strength_icon(value)


# ----------------------------------------------------------------------
# Indicator set
# ----------------------------------------------------------------------
class IndicatorWidget(Protocol):
    def update(self, icon_name: str, text: Optional[str]) -> None:
        ...

    def destroy(self) -> None:
        ...


IndicatorFactory = Callable[[IndicatorKind, str], IndicatorWidget]
Binding = Tuple[Tuple[int, int], IndicatorKind]


@dataclass
class Indicator:
    entry: DeviceStatusEntry
    kind: IndicatorKind
    widget: IndicatorWidget

    @property
    def binding(self) -> Binding:
        return (self.entry.key, self.kind)


class DeviceIndicatorSet:
    """Ordered indicator widgets bound to (device, kind) pairs."""

    def __init__(self, factory: IndicatorFactory, settings: prefs.Settings) -> None:
        self._factory = factory
        self._settings = settings
        self._indicators: List[Indicator] = []
        self.rebuild_count = 0

    @property
    def indicators(self) -> List[Indicator]:
        return list(self._indicators)

    def __len__(self) -> int:
        return len(self._indicators)

    def plan(self, device_status: Sequence[DeviceStatusEntry]) -> List[Tuple[DeviceStatusEntry, IndicatorKind]]:
        """Bindings the given device list should produce, in display order."""

        if not self._settings.get_boolean(prefs.SHOW_DEVICE_INDICATORS):
            return []
        kinds: List[IndicatorKind] = []
        if self._settings.get_boolean(prefs.SHOW_BATTERY_LEVEL):
            kinds.append(IndicatorKind.BATTERY)
        if self._settings.get_boolean(prefs.SHOW_SIGNAL_STRENGTH):
            kinds.append(IndicatorKind.SIGNAL_STRENGTH)

        planned: List[Tuple[DeviceStatusEntry, IndicatorKind]] = []
        for entry in device_status:
            if not devices.supports_status_reporting(entry.usb_vid, entry.usb_pid):
                continue
            planned.extend((entry, kind) for kind in kinds)
        return planned

    def reconcile(self, device_status: Sequence[DeviceStatusEntry]) -> bool:
        """Bring the widgets in line with ``device_status``; returns True on rebuild."""

        planned = self.plan(device_status)
        current = [indicator.binding for indicator in self._indicators]
        if [(entry.key, kind) for entry, kind in planned] != current:
            self._rebuild(planned)
            return True
        self._update_in_place(device_status)
        return False

    def clear(self) -> None:
        indicators, self._indicators = self._indicators, []
        for indicator in indicators:
            try:
                indicator.widget.destroy()
            except Exception as err:  # noqa: BLE001 - a broken widget must not block the sweep
                _LOGGER.error("Could not destroy %s indicator: %s", indicator.kind.value, err)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _show_percentages(self) -> bool:
        return self._settings.get_boolean(prefs.SHOW_DEVICE_INDICATORS_PERCENTAGES)

    def _render(self, indicator: Indicator, show_percentages: bool) -> None:
        text = format_percent(indicator_value(indicator.entry, indicator.kind)) if show_percentages else None
        indicator.widget.update(indicator_icon(indicator.entry, indicator.kind), text)

    def _rebuild(self, planned: Sequence[Tuple[DeviceStatusEntry, IndicatorKind]]) -> None:
        self.clear()
        self.rebuild_count += 1
        show_percentages = self._show_percentages()
        for entry, kind in planned:
            widget = self._factory(kind, devices.device_name(entry.usb_vid, entry.usb_pid))
            indicator = Indicator(entry=entry, kind=kind, widget=widget)
            self._render(indicator, show_percentages)
            self._indicators.append(indicator)
        _LOGGER.info("Rebuilt device indicators: %d widget(s)", len(self._indicators))

    def _update_in_place(self, device_status: Sequence[DeviceStatusEntry]) -> None:
        show_percentages = self._show_percentages()
        for indicator in self._indicators:
            # First match wins when identical models share a (vid, pid) key.
            match = next((entry for entry in device_status if entry.key == indicator.entry.key), None)
            if match is not None:
                indicator.entry = match
            self._render(indicator, show_percentages)
        _LOGGER.debug("Updated %d device indicator(s) in place", len(self._indicators))


__all__ = [
    "DeviceIndicatorSet",
    "Indicator",
    "IndicatorFactory",
    "IndicatorKind",
    "IndicatorWidget",
    "UNKNOWN_PERCENT_TEXT",
    "battery_level_icon",
    "format_percent",
    "signal_strength_icon",
]
