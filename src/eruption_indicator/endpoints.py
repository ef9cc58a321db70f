"""Descriptions of the Eruption D-Bus interfaces and their typed signal payloads.

Each remote interface is described once by an :class:`EndpointSpec`: where it
lives on the bus, the GVariant signatures of its methods and properties, and a
decoder per signal.  Signal arguments are decoded into small frozen dataclasses
at the proxy boundary so the reconcilers never destructure raw tuples.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

# Constants that mirror the public D-Bus API of the daemon.
SERVICE_NAME = "org.eruption"
FX_PROXY_SERVICE_NAME = "org.eruption.fx_proxy"


class EndpointName(Enum):
    SLOT = "slot"
    PROFILE = "profile"
    CONFIG = "config"
    STATUS = "status"
    DEVICE = "device"
    EFFECTS = "effects"


class BusKind(Enum):
    SYSTEM = "system"
    SESSION = "session"


class PayloadError(ValueError):
    """Raised when a signal or property payload cannot be decoded."""


# ----------------------------------------------------------------------
# Typed payloads
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class ActiveSlotChanged:
    slot: int


@dataclass(frozen=True)
class ActiveProfileChanged:
    filename: str


@dataclass(frozen=True)
class ProfilesChanged:
    pass


@dataclass(frozen=True)
class BrightnessChanged:
    brightness: int


@dataclass(frozen=True)
class DeviceStatusEntry:
    """Status bag of one daemon-managed device.

    Identity is the ``(usb_vid, usb_pid)`` pair, so two attached units of the
    same model share a key.
    """

    usb_vid: int
    usb_pid: int
    status: Mapping[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[int, int]:
        return (self.usb_vid, self.usb_pid)

    @property
    def battery_level(self) -> Optional[int]:
        return _percent(self.status.get("battery-level-percent"))

    @property
    def signal_strength(self) -> Optional[int]:
        return _percent(self.status.get("signal-strength-percent"))


@dataclass(frozen=True)
class DeviceStatusChanged:
    devices: Tuple[DeviceStatusEntry, ...]


@dataclass(frozen=True)
class DeviceHotplug:
    usb_vid: int
    usb_pid: int
    failed: bool


@dataclass(frozen=True)
class EffectsStatusChanged:
    event: str


def _percent(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return None


# ----------------------------------------------------------------------
# Decoders
# ----------------------------------------------------------------------
def _single(args: Sequence[Any], signal: str) -> Any:
    if len(args) != 1:
        raise PayloadError(f"{signal}: expected 1 argument, got {len(args)}")
    return args[0]


def parse_device_status(payload: Any) -> List[DeviceStatusEntry]:
    """Parse the JSON encoded device status array published by the daemon."""

    if payload is None:
        raise PayloadError("Device status payload is missing")
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as err:
            raise PayloadError(f"Device status is not valid JSON: {err}") from err
    if not isinstance(payload, list):
        raise PayloadError(f"Device status must be a list, got {type(payload).__name__}")

    devices: List[DeviceStatusEntry] = []
    for item in payload:
        if not isinstance(item, Mapping):
            raise PayloadError(f"Device status entry must be an object, got {type(item).__name__}")
        try:
            usb_vid = int(item["usb_vid"])
            usb_pid = int(item["usb_pid"])
        except (KeyError, TypeError, ValueError) as err:
            raise PayloadError(f"Device status entry lacks usable USB ids: {item!r}") from err
        status = item.get("status") or {}
        if not isinstance(status, Mapping):
            status = {}
        devices.append(DeviceStatusEntry(usb_vid=usb_vid, usb_pid=usb_pid, status=dict(status)))
    return devices


def _decode_active_slot(args: Sequence[Any]) -> ActiveSlotChanged:
    try:
        return ActiveSlotChanged(slot=int(_single(args, "ActiveSlotChanged")))
    except (TypeError, ValueError) as err:
        raise PayloadError(f"ActiveSlotChanged: {err}") from err


def _decode_active_profile(args: Sequence[Any]) -> ActiveProfileChanged:
    return ActiveProfileChanged(filename=str(_single(args, "ActiveProfileChanged")))


def _decode_profiles_changed(_args: Sequence[Any]) -> ProfilesChanged:
    return ProfilesChanged()


def _decode_brightness(args: Sequence[Any]) -> BrightnessChanged:
    try:
        return BrightnessChanged(brightness=int(_single(args, "BrightnessChanged")))
    except (TypeError, ValueError) as err:
        raise PayloadError(f"BrightnessChanged: {err}") from err


def _decode_device_status(args: Sequence[Any]) -> DeviceStatusChanged:
    return DeviceStatusChanged(devices=tuple(parse_device_status(_single(args, "DeviceStatusChanged"))))


def _decode_hotplug(args: Sequence[Any]) -> DeviceHotplug:
    # The daemon sends a single (qqb) struct.
    info = _single(args, "DeviceHotplug")
    try:
        usb_vid, usb_pid, failed = info
        return DeviceHotplug(usb_vid=int(usb_vid), usb_pid=int(usb_pid), failed=bool(failed))
    except (TypeError, ValueError) as err:
        raise PayloadError(f"DeviceHotplug: unexpected payload {info!r}") from err


def _decode_effects_status(args: Sequence[Any]) -> EffectsStatusChanged:
    return EffectsStatusChanged(event=str(_single(args, "StatusChanged")))


# ----------------------------------------------------------------------
# Interface descriptions
# ----------------------------------------------------------------------
SignalDecoder = Callable[[Sequence[Any]], Any]


@dataclass(frozen=True)
class EndpointSpec:
    name: EndpointName
    bus: BusKind
    service_name: str
    object_path: str
    interface_name: str
    # method -> (input signature, output signature)
    methods: Mapping[str, Tuple[str, str]] = field(default_factory=dict)
    # property -> GVariant type string
    properties: Mapping[str, str] = field(default_factory=dict)
    writable_properties: Tuple[str, ...] = ()
    signals: Mapping[str, SignalDecoder] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.name.value.capitalize()


SLOT = EndpointSpec(
    name=EndpointName.SLOT,
    bus=BusKind.SYSTEM,
    service_name=SERVICE_NAME,
    object_path="/org/eruption/slot",
    interface_name="org.eruption.Slot",
    methods={
        "GetSlotProfiles": ("()", "(as)"),
        "SwitchSlot": ("(t)", "(b)"),
    },
    properties={"ActiveSlot": "t", "SlotNames": "as"},
    writable_properties=("SlotNames",),
    signals={"ActiveSlotChanged": _decode_active_slot},
)

PROFILE = EndpointSpec(
    name=EndpointName.PROFILE,
    bus=BusKind.SYSTEM,
    service_name=SERVICE_NAME,
    object_path="/org/eruption/profile",
    interface_name="org.eruption.Profile",
    methods={
        "EnumProfiles": ("()", "(a(ss))"),
        "SwitchProfile": ("(s)", "(b)"),
        "SetParameter": ("(ssss)", "(b)"),
    },
    properties={"ActiveProfile": "s"},
    signals={
        "ActiveProfileChanged": _decode_active_profile,
        "ProfilesChanged": _decode_profiles_changed,
    },
)

CONFIG = EndpointSpec(
    name=EndpointName.CONFIG,
    bus=BusKind.SYSTEM,
    service_name=SERVICE_NAME,
    object_path="/org/eruption/config",
    interface_name="org.eruption.Config",
    methods={
        "GetColorSchemes": ("()", "(as)"),
        "SetColorScheme": ("(say)", "(b)"),
        "RemoveColorScheme": ("(s)", "(b)"),
        "WriteFile": ("(ss)", "(b)"),
        "Ping": ("()", "(b)"),
        "PingPrivileged": ("()", "(b)"),
    },
    properties={"Brightness": "x", "EnableSfx": "b"},
    writable_properties=("Brightness", "EnableSfx"),
    signals={"BrightnessChanged": _decode_brightness},
)

STATUS = EndpointSpec(
    name=EndpointName.STATUS,
    bus=BusKind.SYSTEM,
    service_name=SERVICE_NAME,
    object_path="/org/eruption/status",
    interface_name="org.eruption.Status",
    methods={
        "GetLedColors": ("()", "(a(yyyy))"),
        "GetManagedDevices": ("()", "((a(qq)a(qq)a(qq)))"),
    },
    properties={"Running": "b"},
)

DEVICE = EndpointSpec(
    name=EndpointName.DEVICE,
    bus=BusKind.SYSTEM,
    service_name=SERVICE_NAME,
    object_path="/org/eruption/devices",
    interface_name="org.eruption.Device",
    methods={
        "GetDeviceConfig": ("(ts)", "(s)"),
        "SetDeviceConfig": ("(tss)", "(b)"),
        "GetDeviceStatus": ("(t)", "(s)"),
        "GetManagedDevices": ("()", "((a(qq)a(qq)a(qq)))"),
    },
    properties={"DeviceStatus": "s"},
    signals={
        "DeviceStatusChanged": _decode_device_status,
        "DeviceHotplug": _decode_hotplug,
    },
)

EFFECTS = EndpointSpec(
    name=EndpointName.EFFECTS,
    bus=BusKind.SESSION,
    service_name=FX_PROXY_SERVICE_NAME,
    object_path="/org/eruption/fx_proxy/effects",
    interface_name="org.eruption.fx_proxy.Effects",
    methods={
        "EnableAmbientEffect": ("()", "()"),
        "DisableAmbientEffect": ("()", "()"),
    },
    properties={"AmbientEffect": "b"},
    writable_properties=("AmbientEffect",),
    signals={"StatusChanged": _decode_effects_status},
)

ALL_ENDPOINTS: Dict[EndpointName, EndpointSpec] = {
    spec.name: spec for spec in (SLOT, PROFILE, CONFIG, STATUS, DEVICE, EFFECTS)
}


__all__ = [
    "ALL_ENDPOINTS",
    "ActiveProfileChanged",
    "ActiveSlotChanged",
    "BrightnessChanged",
    "BusKind",
    "CONFIG",
    "DEVICE",
    "DeviceHotplug",
    "DeviceStatusChanged",
    "DeviceStatusEntry",
    "EFFECTS",
    "EffectsStatusChanged",
    "EndpointName",
    "EndpointSpec",
    "PROFILE",
    "PayloadError",
    "ProfilesChanged",
    "SLOT",
    "STATUS",
    "parse_device_status",
]
