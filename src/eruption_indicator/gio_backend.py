"""Gio D-Bus transport for :class:`~eruption_indicator.proxy.EndpointProxy`.

Each endpoint is bound with an asynchronous ``Gio.DBusProxy``.  Method calls and
``org.freedesktop.DBus.Properties`` reads and writes are issued with
``Gio.DBusProxy.call`` and complete on the main loop.  GLib errors are converted into
:class:`~eruption_indicator.proxy.RemoteCallError` at this boundary.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

import gi

gi.require_version("Gio", "2.0")

from gi.repository import Gio, GLib

from . import settings as prefs
from .endpoints import BusKind, EndpointSpec
from .proxy import BindCallback, CallCallback, Connector, RemoteCallError, ValueCallback

CALL_TIMEOUT_MSEC = 5000

_LOGGER = logging.getLogger(__name__)

_UNREACHABLE_DBUS_ERRORS = (
    Gio.DBusError.SERVICE_UNKNOWN,
    Gio.DBusError.NAME_HAS_NO_OWNER,
    Gio.DBusError.NO_REPLY,
    Gio.DBusError.DISCONNECTED,
    Gio.DBusError.TIMEOUT,
    Gio.DBusError.UNKNOWN_OBJECT,
)
_UNREACHABLE_IO_ERRORS = (
    Gio.IOErrorEnum.CLOSED,
    Gio.IOErrorEnum.TIMED_OUT,
    Gio.IOErrorEnum.CONNECTION_REFUSED,
)


def _is_unreachable(error: GLib.Error) -> bool:
    if any(error.matches(Gio.dbus_error_quark(), code) for code in _UNREACHABLE_DBUS_ERRORS):
        return True
    return any(error.matches(Gio.io_error_quark(), code) for code in _UNREACHABLE_IO_ERRORS)


def _to_call_error(spec: EndpointSpec, method: str, error: GLib.Error) -> RemoteCallError:
    message = Gio.DBusError.strip_remote_error(error) if Gio.DBusError.is_remote_error(error) else None
    return RemoteCallError(
        spec.label,
        method,
        message or error.message,
        unreachable=_is_unreachable(error),
    )


class GioProxyBackend:
    """Wraps one bound ``Gio.DBusProxy``."""

    def __init__(self, spec: EndpointSpec, proxy: Gio.DBusProxy, cancellable: Gio.Cancellable) -> None:
        self._spec = spec
        self._proxy = proxy
        self._cancellable = cancellable
        self._handler_ids: List[int] = []

    # ------------------------------------------------------------------
    # Helper utilities
    # ------------------------------------------------------------------
    def _build_parameters(self, method: str, signature: str, args: Sequence[Any]) -> Optional[GLib.Variant]:
        if signature == "()":
            if args:
                raise RemoteCallError(self._spec.label, method, f"takes no arguments, got {len(args)}")
            return None
        try:
            return GLib.Variant(signature, tuple(args))
        except (TypeError, ValueError, OverflowError) as err:
            raise RemoteCallError(self._spec.label, method, f"malformed arguments: {err}") from err

    def _invoke(
        self,
        method: str,
        parameters: Optional[GLib.Variant],
        callback: Callable[[Optional[GLib.Variant], Optional[RemoteCallError]], None],
        label: Optional[str] = None,
    ) -> None:
        def _on_done(proxy: Gio.DBusProxy, result: Gio.AsyncResult) -> None:
            try:
                response = proxy.call_finish(result)
            except GLib.Error as error:
                if error.matches(Gio.io_error_quark(), Gio.IOErrorEnum.CANCELLED):
                    return
                callback(None, _to_call_error(self._spec, label or method, error))
                return
            callback(response, None)

        self._proxy.call(
            method,
            parameters,
            Gio.DBusCallFlags.NONE,
            CALL_TIMEOUT_MSEC,
            self._cancellable,
            _on_done,
        )

    # ------------------------------------------------------------------
    # ProxyBackend
    # ------------------------------------------------------------------
    def call_async(self, method: str, in_signature: str, args: Sequence[Any], callback: CallCallback) -> None:
        try:
            parameters = self._build_parameters(method, in_signature, args)
        except RemoteCallError as err:
            callback(None, err)
            return

        def _on_response(response: Optional[GLib.Variant], error: Optional[RemoteCallError]) -> None:
            if error is not None:
                callback(None, error)
                return
            callback(tuple(response.unpack()) if response is not None else (), None)

        self._invoke(method, parameters, _on_response)

    def get_cached_property(self, name: str) -> Any:
        value = self._proxy.get_cached_property(name)
        return value.unpack() if value is not None else None

    def fetch_property(self, name: str, callback: ValueCallback) -> None:
        def _on_response(response: Optional[GLib.Variant], error: Optional[RemoteCallError]) -> None:
            if error is not None or response is None:
                callback(None, error)
                return
            value = response.unpack()[0]
            self._proxy.set_cached_property(name, GLib.Variant(self._spec.properties[name], value))
            callback(value, None)

        self._invoke(
            "org.freedesktop.DBus.Properties.Get",
            GLib.Variant("(ss)", (self._spec.interface_name, name)),
            _on_response,
            label=name,
        )

    def set_property(self, name: str, signature: str, value: Any, callback: ValueCallback) -> None:
        try:
            variant = GLib.Variant(signature, value)
        except (TypeError, ValueError, OverflowError) as err:
            callback(None, RemoteCallError(self._spec.label, name, f"malformed value: {err}"))
            return
        self._invoke(
            "org.freedesktop.DBus.Properties.Set",
            GLib.Variant("(ssv)", (self._spec.interface_name, name, variant)),
            lambda _response, error: callback(value if error is None else None, error),
            label=name,
        )

    def subscribe(
        self,
        on_signal: Callable[[str, Tuple[Any, ...]], None],
        on_properties_changed: Callable[[Mapping[str, Any], Sequence[str]], None],
    ) -> None:
        def _on_g_signal(
            _proxy: Gio.DBusProxy,
            _sender_name: str,
            signal_name: str,
            parameters: GLib.Variant,
        ) -> None:
            on_signal(signal_name, tuple(parameters.unpack()))

        def _on_g_properties_changed(
            _proxy: Gio.DBusProxy,
            changed: GLib.Variant,
            invalidated: Sequence[str],
        ) -> None:
            on_properties_changed(changed.unpack(), list(invalidated))

        self._handler_ids.append(self._proxy.connect("g-signal", _on_g_signal))
        self._handler_ids.append(self._proxy.connect("g-properties-changed", _on_g_properties_changed))

    def close(self) -> None:
        self._cancellable.cancel()
        for handler_id in self._handler_ids:
            self._proxy.disconnect(handler_id)
        self._handler_ids.clear()


# ----------------------------------------------------------------------
# Service binding
# ----------------------------------------------------------------------
def _bus_type(spec: EndpointSpec, override: Optional[str]) -> Gio.BusType:
    bus = spec.bus
    if override and spec.bus is BusKind.SYSTEM:
        bus = BusKind(override)
    return Gio.BusType.SYSTEM if bus is BusKind.SYSTEM else Gio.BusType.SESSION


def make_connector(bus_override: Optional[str] = None) -> Connector:
    """Return a connector binding endpoints asynchronously with ``Gio.DBusProxy``."""

    override = bus_override if bus_override is not None else prefs.bus_override()

    def connect(spec: EndpointSpec, done: BindCallback) -> None:
        cancellable = Gio.Cancellable()

        def _on_proxy_ready(_source: Optional[Gio.DBusProxy], result: Gio.AsyncResult) -> None:
            try:
                proxy = Gio.DBusProxy.new_for_bus_finish(result)
            except GLib.Error as error:  # pragma: no cover - relies on DBus
                done(None, error.message)
                return
            done(GioProxyBackend(spec, proxy, cancellable), None)

        Gio.DBusProxy.new_for_bus(
            _bus_type(spec, override),
            Gio.DBusProxyFlags.DO_NOT_AUTO_START,
            None,
            spec.service_name,
            spec.object_path,
            spec.interface_name,
            cancellable,
            _on_proxy_ready,
        )

    return connect


# ----------------------------------------------------------------------
# Preferences
# ----------------------------------------------------------------------
class GioSettings:
    """``Gio.Settings`` adapter implementing the :class:`~eruption_indicator.settings.Settings` protocol."""

    def __init__(self, settings: Gio.Settings) -> None:
        self._settings = settings

    def get_boolean(self, key: str) -> bool:
        return self._settings.get_boolean(key)

    def set_boolean(self, key: str, value: bool) -> None:
        self._settings.set_boolean(key, value)

    def connect_changed(self, callback: prefs.ChangedCallback) -> Callable[[], None]:
        handler_id = self._settings.connect("changed", lambda _settings, key: callback(key))
        return lambda: self._settings.disconnect(handler_id)


def load_settings() -> prefs.Settings:
    source = Gio.SettingsSchemaSource.get_default()
    schema = source.lookup(prefs.SCHEMA_ID, True) if source is not None else None
    if schema is None:
        _LOGGER.warning("GSettings schema %s is not installed; using defaults", prefs.SCHEMA_ID)
        return prefs.MemorySettings()
    return GioSettings(Gio.Settings.new_full(schema, None, None))


__all__ = ["GioProxyBackend", "GioSettings", "load_settings", "make_connector"]
