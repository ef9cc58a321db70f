"""Cached view of the daemon state shared by the reconcilers and the menu."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from .endpoints import DeviceStatusEntry

SLOT_COUNT = 4
DEFAULT_SLOT_NAMES: tuple[str, ...] = tuple(f"Profile Slot {index + 1}" for index in range(SLOT_COUNT))
UNKNOWN_PROFILE_NAME = "<unknown>"
DEFAULT_BRIGHTNESS = 100


class ConnectionState(Enum):
    UNKNOWN = "unknown"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class Profile:
    """A selectable lighting profile, rebuilt on every enumeration."""

    name: str
    filename: str


def profile_name_for(filename: Optional[str], profiles: Iterable[Profile]) -> str:
    if not filename:
        return UNKNOWN_PROFILE_NAME
    for profile in profiles:
        if profile.filename == filename:
            return profile.name
    return UNKNOWN_PROFILE_NAME


def clamp_brightness(value: object) -> int:
    """Brightness outside 0..100 (or unreadable) is treated as unknown, i.e. 100."""

    try:
        number = int(round(float(value)))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_BRIGHTNESS
    if number < 0 or number > 100:
        return DEFAULT_BRIGHTNESS
    return number


def is_valid_slot(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < SLOT_COUNT


@dataclass
class ViewModel:
    connection: ConnectionState = ConnectionState.UNKNOWN
    active_slot: Optional[int] = None
    slot_names: List[str] = field(default_factory=lambda: list(DEFAULT_SLOT_NAMES))
    active_profiles: Dict[int, str] = field(default_factory=dict)
    current_profile: Optional[str] = None
    brightness: int = DEFAULT_BRIGHTNESS
    sfx_enabled: bool = False
    ambient_effect_enabled: bool = False
    device_status: List[DeviceStatusEntry] = field(default_factory=list)

    @property
    def connected(self) -> bool:
        return self.connection is ConnectionState.CONNECTED

    @property
    def active_profile(self) -> Optional[str]:
        """Profile of the active slot, falling back to the daemon's current profile."""

        if self.active_slot is not None and self.active_slot in self.active_profiles:
            return self.active_profiles[self.active_slot]
        return self.current_profile

    def slot_name(self, slot: int) -> str:
        if 0 <= slot < len(self.slot_names) and self.slot_names[slot]:
            return self.slot_names[slot]
        return DEFAULT_SLOT_NAMES[slot]

    def set_slot_names(self, names: Sequence[str]) -> None:
        merged = list(DEFAULT_SLOT_NAMES)
        for index, name in enumerate(list(names)[:SLOT_COUNT]):
            if name:
                merged[index] = str(name)
        self.slot_names = merged


__all__ = [
    "ConnectionState",
    "DEFAULT_SLOT_NAMES",
    "Profile",
    "SLOT_COUNT",
    "ViewModel",
    "clamp_brightness",
    "is_valid_slot",
    "profile_name_for",
]
