"""Application entry-point for the Eruption indicator."""

from __future__ import annotations

import logging
import sys
from typing import List, Optional

import gi

for namespace, version in (("Adw", "1"), ("Gtk", "4")):
    try:
        gi.require_version(namespace, version)
    except ValueError:
        # Namespace already initialised with a compatible version.
        pass

from gi.repository import Adw, Gio, GLib

from . import __version__
from . import settings as prefs
from .controller import EruptionIndicator
from .gio_backend import load_settings, make_connector
from .mainloop import create_timer_registry
from .ui.panel_window import PanelWindow

_LOGGER = logging.getLogger(__name__)

VERSION_TEXT = f"Eruption indicator {__version__}"


def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug or prefs.debug_requested() else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


class EruptionIndicatorApplication(Adw.Application):
    """Libadwaita application hosting the panel window and the indicator."""

    def __init__(self) -> None:
        super().__init__(application_id="org.eruption.Indicator", flags=Gio.ApplicationFlags.HANDLES_COMMAND_LINE)
        self.add_main_option(
            "version",
            ord("v"),
            GLib.OptionFlags.NONE,
            GLib.OptionArg.NONE,
            "Print application version and exit",
            None,
        )
        self.add_main_option(
            "debug",
            ord("d"),
            GLib.OptionFlags.NONE,
            GLib.OptionArg.NONE,
            "Enable debug logging",
            None,
        )
        self._window: Optional[PanelWindow] = None
        self._indicator: Optional[EruptionIndicator] = None
        self.connect("activate", self._on_activate)
        self.connect("command-line", self._on_command_line)
        self.connect("shutdown", self._on_shutdown)

    # ------------------------------------------------------------------
    # Application lifecycle
    # ------------------------------------------------------------------
    def _ensure_indicator(self) -> PanelWindow:
        if self._window is not None:
            return self._window
        window = PanelWindow(self)
        settings = load_settings()
        indicator = EruptionIndicator(
            connector=make_connector(),
            timers=create_timer_registry(),
            settings=settings,
            overlay_factory=window.create_overlay,
            indicator_factory=window.create_indicator,
            menu_view=window.menu,
            open_preferences=lambda: window.show_preferences(settings),
        )
        window.menu.set_activate_handler(indicator.activate)
        self._window = window
        self._indicator = indicator
        return window

    def _on_activate(self, _app: Adw.Application) -> None:
        window = self._ensure_indicator()
        assert self._indicator is not None
        self._indicator.enable()
        window.present()

    def _on_command_line(self, _app: Adw.Application, command_line: Gio.ApplicationCommandLine) -> int:
        options = command_line.get_options_dict()
        if options.contains("version"):
            print(VERSION_TEXT)
            return 0
        if options.contains("debug"):
            logging.getLogger().setLevel(logging.DEBUG)
        self.activate()
        return 0

    def _on_shutdown(self, _app: Adw.Application) -> None:
        if self._indicator is not None:
            self._indicator.disable()


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(argv if argv is not None else sys.argv)
    if "--version" in argv[1:] or "-v" in argv[1:]:
        print(VERSION_TEXT)
        return 0

    configure_logging("--debug" in argv[1:] or "-d" in argv[1:])
    _LOGGER.debug("Starting %s", VERSION_TEXT)
    app = EruptionIndicatorApplication()
    return app.run(argv)


__all__ = ["EruptionIndicatorApplication", "configure_logging", "main"]
