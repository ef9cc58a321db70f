"""Small GTK widgets backing the notification overlay and device indicators."""

from __future__ import annotations

from typing import Optional

import gi

for namespace, version in (("Adw", "1"), ("Gtk", "4")):
    try:
        gi.require_version(namespace, version)
    except ValueError:
        # Namespace already initialised with a compatible version.
        pass

from gi.repository import Adw, Gtk

from ..indicators import IndicatorKind


class NotificationOverlay(Gtk.Window):
    """Undecorated OSD-style window showing one line of text."""

    def __init__(self, parent: Optional[Gtk.Window], text: str) -> None:
        super().__init__(decorated=False, resizable=False, focusable=False)
        if parent is not None:
            self.set_transient_for(parent)
        self.add_css_class("osd")
        self._animation: Optional[Adw.TimedAnimation] = None

        self._label = Gtk.Label(label=text, margin_top=18, margin_bottom=18, margin_start=24, margin_end=24)
        self._label.add_css_class("title-2")
        self.set_child(self._label)

    def set_text(self, text: str) -> None:
        self._label.set_text(text)

    def present(self) -> None:  # type: ignore[override]
        self._stop_animation()
        self.set_opacity(1.0)
        super().present()

    def fade_out(self, duration_ms: int) -> None:
        self._stop_animation()
        target = Adw.PropertyAnimationTarget.new(self, "opacity")
        self._animation = Adw.TimedAnimation.new(self, self.get_opacity(), 0.0, duration_ms, target)
        self._animation.play()

    def destroy(self) -> None:  # type: ignore[override]
        self._stop_animation()
        super().destroy()

    def _stop_animation(self) -> None:
        if self._animation is not None:
            self._animation.skip()
            self._animation = None


class IndicatorButton(Gtk.Box):
    """Icon plus optional percentage label for one device value."""

    def __init__(self, kind: IndicatorKind, device_name: str) -> None:
        super().__init__(orientation=Gtk.Orientation.HORIZONTAL, spacing=2)
        self.kind = kind
        self.set_tooltip_text(device_name)
        self._image = Gtk.Image()
        self._label = Gtk.Label()
        self._label.add_css_class("numeric")
        self._label.set_visible(False)
        self.append(self._image)
        self.append(self._label)

    def update(self, icon_name: str, text: Optional[str]) -> None:
        self._image.set_from_icon_name(icon_name)
        if text is None:
            self._label.set_visible(False)
        else:
            self._label.set_text(text)
            self._label.set_visible(True)

    def destroy(self) -> None:
        parent = self.get_parent()
        if isinstance(parent, Gtk.Box):
            parent.remove(self)
        else:
            self.unparent()


__all__ = ["IndicatorButton", "NotificationOverlay"]
