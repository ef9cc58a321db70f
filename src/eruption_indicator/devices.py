"""Static catalog of the devices the Eruption daemon supports, keyed by USB id."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

UNKNOWN_DEVICE_NAME = "<Unknown Device>"


@dataclass(frozen=True)
class DeviceDefinition:
    make: str
    model: str
    usb_vid: int
    usb_pid: int
    has_status: bool = False

    @property
    def key(self) -> Tuple[int, int]:
        return (self.usb_vid, self.usb_pid)

    @property
    def display_name(self) -> str:
        return f"{self.make} {self.model}"


def _roccat(model: str, usb_pid: int, has_status: bool = False) -> DeviceDefinition:
    return DeviceDefinition(make="ROCCAT", model=model, usb_vid=0x1E7D, usb_pid=usb_pid, has_status=has_status)


SUPPORTED_DEVICES: Tuple[DeviceDefinition, ...] = (
    _roccat("Vulcan 100/12x", 0x3098),
    _roccat("Vulcan 100/12x", 0x307A),
    _roccat("Vulcan Pro", 0x30F7),
    _roccat("Vulcan TKL", 0x2FEE),
    _roccat("Vulcan Pro TKL", 0x311A),
    _roccat("Magma", 0x3124),
    DeviceDefinition(make="Corsair", model="Corsair STRAFE Gaming Keyboard", usb_vid=0x1B1C, usb_pid=0x1B15),
    _roccat("Kone Aimo", 0x2E27),
    _roccat("Kone Aimo Remastered", 0x2E2C),
    _roccat("Kone XTD Mouse", 0x2E22),
    _roccat("Kone XP", 0x2C8B),
    _roccat("Kone Pure Ultra", 0x2DD2),
    _roccat("Burst Pro", 0x2DE1),
    _roccat("Kone Pro Air Dongle", 0x2C8E, has_status=True),
    _roccat("Kone Pro Air", 0x2C92, has_status=True),
    _roccat("Kain 100 AIMO", 0x2D00),
    _roccat("Kain 200/202 AIMO", 0x2D5F, has_status=True),
    _roccat("Kain 200/202 AIMO", 0x2D60, has_status=True),
    _roccat("Kova AIMO", 0x2CF1),
    _roccat("Kova AIMO", 0x2CF3),
    _roccat("Kova 2016", 0x2CEE),
    _roccat("Kova 2016", 0x2CEF),
    _roccat("Kova 2016", 0x2CF0),
    _roccat("Nyth", 0x2E7C),
    _roccat("Nyth", 0x2E7D),
    DeviceDefinition(make="ROCCAT/Turtle Beach", model="Elo 7.1 Air", usb_vid=0x1E7D, usb_pid=0x3A37, has_status=True),
    _roccat("Sense AIMO XXL", 0x343B),
)

_BY_KEY: Dict[Tuple[int, int], DeviceDefinition] = {}
for _device in SUPPORTED_DEVICES:
    _BY_KEY.setdefault(_device.key, _device)


def lookup(usb_vid: int, usb_pid: int) -> DeviceDefinition | None:
    return _BY_KEY.get((usb_vid, usb_pid))


def device_name(usb_vid: int, usb_pid: int) -> str:
    device = lookup(usb_vid, usb_pid)
    return device.display_name if device else UNKNOWN_DEVICE_NAME


def supports_status_reporting(usb_vid: int, usb_pid: int) -> bool:
    device = lookup(usb_vid, usb_pid)
    return bool(device and device.has_status)
