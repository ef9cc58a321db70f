"""Panel window: menu button, device indicator strip and the popover menu."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

import gi

for namespace, version in (("Adw", "1"), ("Gtk", "4")):
    try:
        gi.require_version(namespace, version)
    except ValueError:
        # Namespace already initialised with a compatible version.
        pass

from gi.repository import Adw, GLib, Gtk

from .. import settings as prefs
from ..indicators import IndicatorKind
from ..menu import Action, ItemKind, MenuItem, MenuModel
from ..view_model import ViewModel
from .widgets import IndicatorButton, NotificationOverlay

_LOGGER = logging.getLogger(__name__)

ActivateHandler = Callable[[MenuItem, Optional[float]], None]

_STATUS_ICONS = {
    IndicatorKind.BATTERY: "battery-good-symbolic",
    IndicatorKind.SIGNAL_STRENGTH: "network-wireless-signal-good-symbolic",
}


def _clear_box(box: Gtk.Box) -> None:
    child = box.get_first_child()
    while child:
        next_child = child.get_next_sibling()
        box.remove(child)
        child = next_child


class PanelMenu:
    """Renders a :class:`~eruption_indicator.menu.MenuModel` into a popover."""

    def __init__(self, button: Gtk.MenuButton, status_page: Adw.StatusPage) -> None:
        self._button = button
        self._status_page = status_page
        self._on_activate: Optional[ActivateHandler] = None
        self._syncing = False

        self._content = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=4, margin_top=6, margin_bottom=6)
        self._devices = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=4)
        self._switches: dict[Action, Gtk.Switch] = {}
        self._slider: Optional[Gtk.Scale] = None

        popover = Gtk.Popover()
        popover.set_child(self._content)
        self._popover = popover
        self._button.set_popover(popover)

    def set_activate_handler(self, handler: ActivateHandler) -> None:
        self._on_activate = handler

    # ------------------------------------------------------------------
    # MenuView
    # ------------------------------------------------------------------
    def render(self, menu: MenuModel) -> None:
        _clear_box(self._content)
        _clear_box(self._devices)
        self._switches.clear()
        self._slider = None

        self._button.set_icon_name(menu.icon_name)
        self._status_page.set_icon_name(menu.icon_name)
        self._status_page.set_description("Not connected" if menu.placeholder else "Connected")

        split = len(menu.items)
        for index, item in enumerate(menu.items):
            if item.kind is ItemKind.SLIDER:
                split = index + 1

        for item in menu.items[:split]:
            self._content.append(self._build_item(item))
        self._content.append(self._devices)
        self.render_devices(menu.items[split:])

    def render_devices(self, items: List[MenuItem]) -> None:
        _clear_box(self._devices)
        for item in items:
            self._devices.append(self._build_item(item))

    def update_controls(self, model: ViewModel) -> None:
        self._syncing = True
        try:
            switch = self._switches.get(Action.TOGGLE_AMBIENT_EFFECT)
            if switch is not None:
                switch.set_active(model.ambient_effect_enabled)
            switch = self._switches.get(Action.TOGGLE_SFX)
            if switch is not None:
                switch.set_active(model.sfx_enabled)
            if self._slider is not None:
                self._slider.set_value(model.brightness / 100)
        finally:
            self._syncing = False

    def clear(self) -> None:
        self._popover.popdown()
        _clear_box(self._content)
        _clear_box(self._devices)
        self._switches.clear()
        self._slider = None

    # ------------------------------------------------------------------
    # Item widgets
    # ------------------------------------------------------------------
    def _activate(self, item: MenuItem, value: Optional[float] = None) -> None:
        if self._syncing or self._on_activate is None:
            return
        if item.kind not in (ItemKind.SWITCH, ItemKind.SLIDER):
            self._popover.popdown()
        self._on_activate(item, value)

    def _build_item(self, item: MenuItem) -> Gtk.Widget:
        if item.kind is ItemKind.HEADER:
            label = Gtk.Label(xalign=0, margin_start=12, margin_end=12)
            label.set_markup(f"<b>{GLib.markup_escape_text(item.label)}</b>")
            label.add_css_class("dim-label")
            return label
        if item.kind is ItemKind.SEPARATOR:
            return Gtk.Separator(orientation=Gtk.Orientation.HORIZONTAL)
        if item.kind is ItemKind.LABEL:
            return Gtk.Label(label=item.label, xalign=0, margin_start=12, margin_end=12)
        if item.kind in (ItemKind.SLOT, ItemKind.PROFILE):
            return self._build_check(item)
        if item.kind is ItemKind.SUBMENU:
            expander = Gtk.Expander(label=item.label, margin_start=12, margin_end=12)
            children = Gtk.Box(orientation=Gtk.Orientation.VERTICAL, spacing=2)
            for child in item.children:
                children.append(self._build_check(child))
            expander.set_child(children)
            return expander
        if item.kind is ItemKind.ACTION:
            button = Gtk.Button(label=item.label)
            button.add_css_class("flat")
            button.connect("clicked", lambda _button: self._activate(item))
            return button
        if item.kind is ItemKind.SWITCH:
            return self._build_switch(item)
        if item.kind is ItemKind.SLIDER:
            return self._build_slider(item)
        if item.kind is ItemKind.DEVICE:
            return self._build_device(item)
        _LOGGER.debug("Skipping unsupported menu item kind %s", item.kind)
        return Gtk.Box()

    def _build_check(self, item: MenuItem) -> Gtk.Widget:
        check = Gtk.CheckButton(label=item.label, active=item.checked, margin_start=12, margin_end=12)

        def _on_toggled(button: Gtk.CheckButton) -> None:
            if not button.get_active():
                return
            self._activate(item)

        check.connect("toggled", _on_toggled)
        return check

    def _build_switch(self, item: MenuItem) -> Gtk.Widget:
        row = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=12, margin_start=12, margin_end=12)
        label = Gtk.Label(label=item.label, xalign=0, hexpand=True)
        switch = Gtk.Switch(active=item.checked, valign=Gtk.Align.CENTER)

        def _on_state_set(_switch: Gtk.Switch, _state: bool) -> bool:
            self._activate(item)
            return False

        switch.connect("state-set", _on_state_set)
        if item.action is not None:
            self._switches[item.action] = switch
        row.append(label)
        row.append(switch)
        return row

    def _build_slider(self, item: MenuItem) -> Gtk.Widget:
        row = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=6, margin_start=12, margin_end=12)
        row.append(Gtk.Image.new_from_icon_name(item.label))
        scale = Gtk.Scale.new_with_range(Gtk.Orientation.HORIZONTAL, 0.0, 1.0, 0.01)
        scale.set_draw_value(False)
        scale.set_hexpand(True)
        scale.set_value(item.value or 0.0)
        scale.connect("value-changed", lambda widget: self._activate(item, widget.get_value()))
        self._slider = scale
        row.append(scale)
        return row

    def _build_device(self, item: MenuItem) -> Gtk.Widget:
        row = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=6, margin_start=12, margin_end=12)
        row.append(Gtk.Label(label=item.label, xalign=0, hexpand=True))
        for status in item.status:
            row.append(Gtk.Image.new_from_icon_name(_STATUS_ICONS[status.kind]))
            value = Gtk.Label(label=status.text)
            value.add_css_class("numeric")
            row.append(value)
        return row


class PreferencesWindow(Adw.PreferencesWindow):
    """One switch row per boolean preference."""

    _TITLES = {
        prefs.NOTIFICATIONS_GENERAL: "Show notifications",
        prefs.NOTIFICATIONS_ON_PROFILE_SWITCH: "Notify on profile switch",
        prefs.NOTIFICATIONS_ON_HOTPLUG: "Notify on device hotplug",
        prefs.NOTIFICATIONS_ON_SETTINGS_CHANGE: "Notify on settings change",
        prefs.COMPACT_MODE: "Compact menu",
        prefs.SHOW_BATTERY_LEVEL: "Show battery level",
        prefs.SHOW_SIGNAL_STRENGTH: "Show signal strength",
        prefs.SHOW_DEVICE_INDICATORS: "Show device indicators in the panel",
        prefs.SHOW_DEVICE_INDICATORS_PERCENTAGES: "Show percentages next to indicators",
        prefs.POLL_DEVICE_STATUS: "Poll device status",
    }

    def __init__(self, parent: Gtk.Window, settings: prefs.Settings) -> None:
        super().__init__(transient_for=parent, modal=True, title="Preferences")
        page = Adw.PreferencesPage()
        group = Adw.PreferencesGroup(title="Eruption indicator")
        page.add(group)
        self.add(page)

        setter = getattr(settings, "set_boolean", None)
        for key, title in self._TITLES.items():
            row = Adw.SwitchRow(title=title, active=settings.get_boolean(key))
            if setter is None:
                row.set_sensitive(False)
            else:
                row.connect("notify::active", lambda widget, _pspec, key=key: setter(key, widget.get_active()))
            group.add(row)


class PanelWindow(Adw.ApplicationWindow):
    """Hosts the panel button and indicators; stands in for the shell panel."""

    def __init__(self, app: Adw.Application) -> None:
        super().__init__(application=app, title="Eruption")
        self.set_default_size(360, 220)

        self.indicator_box = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=6)
        self.menu_button = Gtk.MenuButton(icon_name="gtk-no")

        header = Adw.HeaderBar()
        header.pack_start(self.indicator_box)
        header.pack_end(self.menu_button)

        self.status_page = Adw.StatusPage(title="Eruption", icon_name="gtk-no")

        toolbar = Adw.ToolbarView()
        toolbar.add_top_bar(header)
        toolbar.set_content(self.status_page)
        self.set_content(toolbar)

        self.menu = PanelMenu(self.menu_button, self.status_page)

    def create_overlay(self, text: str) -> NotificationOverlay:
        return NotificationOverlay(self, text)

    def create_indicator(self, kind: IndicatorKind, device_name: str) -> IndicatorButton:
        indicator = IndicatorButton(kind, device_name)
        self.indicator_box.append(indicator)
        return indicator

    def show_preferences(self, settings: prefs.Settings) -> None:
        PreferencesWindow(self, settings).present()


__all__ = ["PanelMenu", "PanelWindow", "PreferencesWindow"]
