"""Lifecycle glue tying proxies, reconcilers, notifications and indicators together."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from . import launcher
from . import settings as prefs
from .endpoints import ALL_ENDPOINTS, EndpointName, EndpointSpec
from .indicators import DeviceIndicatorSet, IndicatorFactory
from .launcher import Companion
from .menu import Action, MenuItem, MenuModel, build_device_section, build_menu
from .notifications import NotificationKind, NotificationPresenter, OverlayFactory
from .proxy import Connector, EndpointProxy, RemoteCallError
from .reconcilers import (
    DEVICE_POLL_INTERVAL_MILLIS,
    ConfigReconciler,
    DeviceReconciler,
    EffectsReconciler,
    ProfileReconciler,
    Reconciler,
    ReconcilerContext,
    RefreshScope,
    SlotReconciler,
    StatusReconciler,
)
from .timers import TimerRegistry
from .view_model import ConnectionState, Profile, ViewModel

_LOGGER = logging.getLogger(__name__)


class MenuView(Protocol):
    def render(self, menu: MenuModel) -> None:
        ...

    def render_devices(self, items: List[MenuItem]) -> None:
        ...

    def update_controls(self, model: ViewModel) -> None:
        ...

    def clear(self) -> None:
        ...


class EruptionIndicator:
    """The panel indicator: enable binds every endpoint, disable tears it all down."""

    def __init__(
        self,
        *,
        connector: Connector,
        timers: TimerRegistry,
        settings: prefs.Settings,
        overlay_factory: OverlayFactory,
        indicator_factory: IndicatorFactory,
        menu_view: MenuView,
        open_preferences: Optional[Callable[[], None]] = None,
        endpoints: Optional[Mapping[EndpointName, EndpointSpec]] = None,
        companions: Sequence[Companion] = launcher.COMPANIONS,
        poll_interval_ms: int = DEVICE_POLL_INTERVAL_MILLIS,
    ) -> None:
        self._connector = connector
        self.timers = timers
        self.settings = settings
        self.menu_view = menu_view
        self._open_preferences = open_preferences
        self._endpoints = dict(endpoints or ALL_ENDPOINTS)
        self._companions = tuple(companions)
        self._poll_interval_ms = poll_interval_ms

        self.model = ViewModel()
        self.presenter = NotificationPresenter(overlay_factory, timers, settings)
        self.indicators = DeviceIndicatorSet(indicator_factory, settings)
        self.menu: Optional[MenuModel] = None
        self.enabled = False

        self.proxies: Dict[EndpointName, EndpointProxy] = {}
        self.reconcilers: Dict[EndpointName, Reconciler] = {}
        self._disconnect_settings: Optional[Callable[[], None]] = None
        self._bind_failure_reported = False
        self._menu_generation = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def enable(self) -> None:
        if self.enabled:
            return
        _LOGGER.info("Enabling Eruption indicator")
        self.enabled = True
        self.model = ViewModel()
        self._bind_failure_reported = False
        context = ReconcilerContext(
            model=self.model,
            timers=self.timers,
            notify=self.presenter.show,
            request_refresh=self.request_refresh,
            report_failure=self._report_failure,
        )

        for name, spec in self._endpoints.items():
            proxy = EndpointProxy(spec)
            self.proxies[name] = proxy
            reconciler = self._create_reconciler(name, proxy, context)
            reconciler.attach()
            self.reconcilers[name] = reconciler

        self._disconnect_settings = self.settings.connect_changed(self._on_settings_changed)
        self.rebuild_menu()

        for proxy in list(self.proxies.values()):
            proxy.bind(self._connector, self._on_proxy_ready)
        self._apply_polling_preference()

    def disable(self) -> None:
        if not self.enabled:
            return
        _LOGGER.info("Disabling Eruption indicator")
        self.enabled = False
        self.timers.cancel_all()
        self.presenter.dismiss()
        self.indicators.clear()
        for proxy in self.proxies.values():
            proxy.close()
        self.proxies.clear()
        self.reconcilers.clear()
        if self._disconnect_settings is not None:
            self._disconnect_settings()
            self._disconnect_settings = None
        self.menu = None
        self.menu_view.clear()

    def reload(self) -> None:
        self.disable()
        self.enable()

    def _create_reconciler(self, name: EndpointName, proxy: EndpointProxy, context: ReconcilerContext) -> Reconciler:
        if name is EndpointName.SLOT:
            return SlotReconciler(proxy, context)
        if name is EndpointName.PROFILE:
            return ProfileReconciler(proxy, context)
        if name is EndpointName.CONFIG:
            return ConfigReconciler(proxy, context)
        if name is EndpointName.STATUS:
            return StatusReconciler(
                proxy,
                context,
                on_connected=self._on_connected,
                on_disconnected=self._on_disconnected,
            )
        if name is EndpointName.DEVICE:
            return DeviceReconciler(proxy, context, self.indicators)
        if name is EndpointName.EFFECTS:
            return EffectsReconciler(proxy, context)
        raise ValueError(f"No reconciler for endpoint {name!r}")

    def _on_proxy_ready(self, proxy: EndpointProxy) -> None:
        if not self.enabled:
            return
        reconciler = self.reconcilers.get(proxy.spec.name)
        if reconciler is None:
            return
        if proxy.bound:
            reconciler.sync(suppress_notification=True)
            return
        if not self._bind_failure_reported:
            self._bind_failure_reported = True
            self.presenter.show(NotificationKind.ERROR, f"Could not connect to Eruption: {proxy.bind_error}")
        if isinstance(reconciler, StatusReconciler):
            reconciler.transition(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------
    def _on_connected(self) -> None:
        _LOGGER.info("Connected to Eruption")
        self.indicators.clear()
        self.resync()
        self.indicators.reconcile(self.model.device_status)
        self.rebuild_menu()

    def _on_disconnected(self) -> None:
        _LOGGER.info("Lost connection to Eruption")
        self.indicators.clear()
        self.rebuild_menu()

    def resync(self) -> None:
        """Re-read every property; signals may have been missed while disconnected."""

        for name, reconciler in self.reconcilers.items():
            if name is EndpointName.STATUS or not reconciler.proxy.bound:
                continue
            reconciler.sync(suppress_notification=True, fetch=True)

    def _report_failure(self, error: RemoteCallError) -> None:
        status = self.reconcilers.get(EndpointName.STATUS)
        if isinstance(status, StatusReconciler):
            status.report_failure(error)

    # ------------------------------------------------------------------
    # Menu
    # ------------------------------------------------------------------
    def request_refresh(self, scope: RefreshScope) -> None:
        if not self.enabled:
            return
        if scope is RefreshScope.SLOT_PROFILES:
            slot = self.reconcilers.get(EndpointName.SLOT)
            if isinstance(slot, SlotReconciler) and slot.refresh_slot_profiles():
                return
            self.rebuild_menu()
        elif scope is RefreshScope.FULL or self.menu is None:
            self.rebuild_menu()
        elif not self.model.connected:
            return
        elif scope is RefreshScope.DEVICES:
            self.menu_view.render_devices(build_device_section(self.model, self.settings))
        else:
            self.menu_view.update_controls(self.model)

    def rebuild_menu(self) -> None:
        """Rebuild the menu; when connected it renders once the profile list arrives.

        Only the most recent rebuild renders, so a slow enumeration can never
        overwrite a newer menu.
        """

        self._menu_generation += 1
        generation = self._menu_generation
        profile = self.reconcilers.get(EndpointName.PROFILE)
        if not self.model.connected or not (isinstance(profile, ProfileReconciler) and profile.proxy.bound):
            self._render_menu([])
            return

        def _on_profiles(profiles: List[Profile]) -> None:
            if not self.enabled or generation != self._menu_generation:
                _LOGGER.debug("Dropping stale menu rebuild %d", generation)
                return
            self._render_menu(profiles)

        profile.enumerate_profiles(_on_profiles)

    def _render_menu(self, profiles: List[Profile]) -> None:
        companions: List[Companion] = []
        if self.model.connected:
            companions = [companion for companion in self._companions if companion.is_available()]
        self.menu = build_menu(self.model, self.settings, profiles, companions)
        self.menu_view.render(self.menu)

    def _on_settings_changed(self, key: str) -> None:
        _LOGGER.debug("Preference %s changed", key)
        if key == prefs.POLL_DEVICE_STATUS:
            self._apply_polling_preference()
        self.rebuild_menu()
        if self.model.connected:
            self.indicators.reconcile(self.model.device_status)

    def _apply_polling_preference(self) -> None:
        device = self.reconcilers.get(EndpointName.DEVICE)
        if not isinstance(device, DeviceReconciler):
            return
        if self.settings.get_boolean(prefs.POLL_DEVICE_STATUS):
            if not device.polling:
                device.start_polling(self._poll_interval_ms)
        else:
            device.stop_polling()

    # ------------------------------------------------------------------
    # User intents
    # ------------------------------------------------------------------
    def activate(self, item: MenuItem, value: Optional[float] = None) -> None:
        if item.action is Action.SWITCH_SLOT:
            self.switch_slot(int(item.argument))
        elif item.action is Action.SWITCH_PROFILE:
            self.switch_profile(str(item.argument))
        elif item.action is Action.LAUNCH:
            self.launch_companion(str(item.argument))
        elif item.action is Action.PREFERENCES:
            self.open_preferences()
        elif item.action is Action.TOGGLE_AMBIENT_EFFECT:
            self.toggle_ambient_effect()
        elif item.action is Action.TOGGLE_SFX:
            self.toggle_sfx()
        elif item.action is Action.SET_BRIGHTNESS and value is not None:
            self.set_brightness(value * 100)

    def switch_slot(self, slot: int) -> None:
        reconciler = self.reconcilers.get(EndpointName.SLOT)
        if isinstance(reconciler, SlotReconciler):
            reconciler.switch_slot(slot)

    def switch_profile(self, filename: str) -> None:
        reconciler = self.reconcilers.get(EndpointName.PROFILE)
        if isinstance(reconciler, ProfileReconciler):
            reconciler.switch_profile(filename)

    def set_brightness(self, value: float) -> None:
        reconciler = self.reconcilers.get(EndpointName.CONFIG)
        if isinstance(reconciler, ConfigReconciler):
            reconciler.set_brightness(value)

    def toggle_sfx(self) -> None:
        reconciler = self.reconcilers.get(EndpointName.CONFIG)
        if isinstance(reconciler, ConfigReconciler):
            reconciler.toggle_sfx()

    def toggle_ambient_effect(self) -> None:
        reconciler = self.reconcilers.get(EndpointName.EFFECTS)
        if isinstance(reconciler, EffectsReconciler):
            reconciler.toggle_ambient_effect()

    def launch_companion(self, path: str) -> None:
        try:
            launcher.launch(path)
        except launcher.LaunchError as err:
            _LOGGER.error("%s", err)
            self.presenter.show(NotificationKind.ERROR, str(err))

    def open_preferences(self) -> None:
        if self._open_preferences is None:
            _LOGGER.debug("No preferences handler registered")
            return
        self._open_preferences()


__all__ = ["EruptionIndicator", "MenuView"]
