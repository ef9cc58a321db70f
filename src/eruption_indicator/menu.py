"""Pure mapping from the view model to a toolkit-neutral menu description."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence

from . import devices
from . import settings as prefs
from .indicators import IndicatorKind, format_percent, indicator_value
from .launcher import Companion
from .view_model import SLOT_COUNT, Profile, ViewModel, profile_name_for

NOT_CONNECTED_LABEL = "Not connected to Eruption"
CONNECTED_ICON = "keyboard-brightness"
DISCONNECTED_ICON = "gtk-no"


class ItemKind(Enum):
    HEADER = "header"
    SEPARATOR = "separator"
    SLOT = "slot"
    LABEL = "label"
    SUBMENU = "submenu"
    PROFILE = "profile"
    ACTION = "action"
    SWITCH = "switch"
    SLIDER = "slider"
    DEVICE = "device"


class Action(Enum):
    SWITCH_SLOT = "switch-slot"
    SWITCH_PROFILE = "switch-profile"
    LAUNCH = "launch"
    PREFERENCES = "preferences"
    TOGGLE_AMBIENT_EFFECT = "toggle-ambient-effect"
    TOGGLE_SFX = "toggle-sfx"
    SET_BRIGHTNESS = "set-brightness"


@dataclass(frozen=True)
class StatusValue:
    kind: IndicatorKind
    text: str


@dataclass
class MenuItem:
    kind: ItemKind
    label: str = ""
    action: Optional[Action] = None
    argument: Any = None
    checked: bool = False
    value: Optional[float] = None
    status: List[StatusValue] = field(default_factory=list)
    children: List["MenuItem"] = field(default_factory=list)


@dataclass
class MenuModel:
    icon_name: str
    items: List[MenuItem]

    @property
    def placeholder(self) -> bool:
        return len(self.items) == 1 and self.items[0].label == NOT_CONNECTED_LABEL


def _header(label: str) -> MenuItem:
    return MenuItem(kind=ItemKind.HEADER, label=label)


def _separator() -> MenuItem:
    return MenuItem(kind=ItemKind.SEPARATOR)


def not_connected_menu() -> MenuModel:
    return MenuModel(icon_name=DISCONNECTED_ICON, items=[_header(NOT_CONNECTED_LABEL)])


def build_menu(
    model: ViewModel,
    settings: prefs.Settings,
    profiles: Sequence[Profile] = (),
    companions: Sequence[Companion] = (),
) -> MenuModel:
    """Build the full menu; a disconnected daemon yields the single placeholder."""

    if not model.connected:
        return not_connected_menu()

    compact = settings.get_boolean(prefs.COMPACT_MODE)
    items: List[MenuItem] = []

    if not compact:
        items.append(_header("Slots"))
    for slot in range(SLOT_COUNT):
        items.append(
            MenuItem(
                kind=ItemKind.SLOT,
                label=f"{slot + 1}: {model.slot_name(slot)}",
                action=Action.SWITCH_SLOT,
                argument=slot,
                checked=slot == model.active_slot,
            )
        )
    items.append(_separator())

    if not compact:
        items.append(_header("Active Profile"))
    active = model.active_profile
    items.append(MenuItem(kind=ItemKind.LABEL, label=profile_name_for(active, profiles)))
    items.append(
        MenuItem(
            kind=ItemKind.SUBMENU,
            label="Select profile for current slot",
            children=[
                MenuItem(
                    kind=ItemKind.PROFILE,
                    label=profile.name,
                    action=Action.SWITCH_PROFILE,
                    argument=profile.filename,
                    checked=profile.filename == active,
                )
                for profile in profiles
            ],
        )
    )
    items.append(_separator())

    for companion in companions:
        items.append(MenuItem(kind=ItemKind.ACTION, label=companion.label, action=Action.LAUNCH, argument=companion.path))
    items.append(MenuItem(kind=ItemKind.ACTION, label="Extension preferences…", action=Action.PREFERENCES))
    items.append(_separator())

    items.append(
        MenuItem(
            kind=ItemKind.SWITCH,
            label="Ambient Effect",
            action=Action.TOGGLE_AMBIENT_EFFECT,
            checked=model.ambient_effect_enabled,
        )
    )
    items.append(MenuItem(kind=ItemKind.SWITCH, label="Audio Effects", action=Action.TOGGLE_SFX, checked=model.sfx_enabled))
    items.append(
        MenuItem(
            kind=ItemKind.SLIDER,
            label="keyboard-brightness",
            action=Action.SET_BRIGHTNESS,
            value=model.brightness / 100,
        )
    )

    items.extend(build_device_section(model, settings))
    return MenuModel(icon_name=CONNECTED_ICON, items=items)


def build_device_section(model: ViewModel, settings: prefs.Settings) -> List[MenuItem]:
    """The "Connected Devices" block; empty when no device has a shown value."""

    if not model.connected:
        return []
    kinds: List[IndicatorKind] = []
    if settings.get_boolean(prefs.SHOW_SIGNAL_STRENGTH):
        kinds.append(IndicatorKind.SIGNAL_STRENGTH)
    if settings.get_boolean(prefs.SHOW_BATTERY_LEVEL):
        kinds.append(IndicatorKind.BATTERY)

    rows: List[MenuItem] = []
    for entry in model.device_status:
        reports = devices.supports_status_reporting(entry.usb_vid, entry.usb_pid)
        values = [
            StatusValue(kind=kind, text=format_percent(indicator_value(entry, kind)))
            for kind in kinds
            if reports or indicator_value(entry, kind) is not None
        ]
        if values:
            rows.append(
                MenuItem(
                    kind=ItemKind.DEVICE,
                    label=devices.device_name(entry.usb_vid, entry.usb_pid),
                    status=values,
                )
            )

    if not rows:
        return []
    section = [_separator()]
    if not settings.get_boolean(prefs.COMPACT_MODE):
        section.append(_header("Connected Devices"))
    section.extend(rows)
    return section


__all__ = [
    "Action",
    "ItemKind",
    "MenuItem",
    "MenuModel",
    "NOT_CONNECTED_LABEL",
    "StatusValue",
    "build_device_section",
    "build_menu",
    "not_connected_menu",
]
