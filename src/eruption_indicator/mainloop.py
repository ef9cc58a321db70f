"""GLib main loop timer primitives for :class:`~eruption_indicator.timers.TimerRegistry`."""

from __future__ import annotations

from typing import Any, Callable

from gi.repository import GLib

from .timers import TimerRegistry


def glib_after(delay_ms: int, callback: Callable[[], Any]) -> int:
    if delay_ms <= 0:
        return GLib.idle_add(callback)
    return GLib.timeout_add(delay_ms, callback)


def glib_cancel(source_id: object) -> None:
    GLib.source_remove(int(source_id))  # type: ignore[arg-type]


def create_timer_registry() -> TimerRegistry:
    return TimerRegistry(glib_after, glib_cancel)


__all__ = ["create_timer_registry", "glib_after", "glib_cancel"]
