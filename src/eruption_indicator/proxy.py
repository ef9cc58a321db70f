"""Endpoint proxies wrapping one remote Eruption interface each.

The proxy is transport agnostic: it talks to a :class:`ProxyBackend` produced
asynchronously by a connector.  :mod:`eruption_indicator.gio_backend` provides
the Gio implementation; tests provide in-memory backends.  All methods are safe
to use while the daemon is unavailable: reads return :data:`UNKNOWN` and calls
fail fast with :class:`RemoteCallError`.  Every remote operation completes
through a callback so nothing blocks the main loop.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from .endpoints import EndpointSpec, PayloadError

_LOGGER = logging.getLogger(__name__)


class _Unknown:
    _instance: Optional["_Unknown"] = None

    def __new__(cls) -> "_Unknown":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN: Any = _Unknown()
"""Sentinel returned by :meth:`EndpointProxy.get_property` before the first sync."""


class RemoteCallError(RuntimeError):
    """Raised when a remote call cannot be completed."""

    def __init__(self, endpoint: str, method: str, message: str, *, unreachable: bool = False) -> None:
        super().__init__(f"{endpoint}.{method}: {message}")
        self.endpoint = endpoint
        self.method = method
        self.message = message
        self.unreachable = unreachable


class BindState(Enum):
    UNBOUND = "unbound"
    BOUND = "bound"
    ERROR = "error"


PropertiesHandler = Callable[[Mapping[str, Any]], None]
SignalHandler = Callable[[Any], None]
CallCallback = Callable[[Optional[Tuple[Any, ...]], Optional[RemoteCallError]], None]
ValueCallback = Callable[[Any, Optional[RemoteCallError]], None]


class ProxyBackend(Protocol):
    """Transport operations required by :class:`EndpointProxy`."""

    def call_async(self, method: str, in_signature: str, args: Sequence[Any], callback: CallCallback) -> None:
        ...

    def get_cached_property(self, name: str) -> Any:
        ...

    def fetch_property(self, name: str, callback: ValueCallback) -> None:
        ...

    def set_property(self, name: str, signature: str, value: Any, callback: ValueCallback) -> None:
        ...

    def subscribe(
        self,
        on_signal: Callable[[str, Tuple[Any, ...]], None],
        on_properties_changed: Callable[[Mapping[str, Any], Sequence[str]], None],
    ) -> None:
        ...

    def close(self) -> None:
        ...


BindCallback = Callable[[Optional[ProxyBackend], Optional[str]], None]
Connector = Callable[[EndpointSpec, BindCallback], None]


class EndpointProxy:
    """Typed access to one remote interface with signal subscriptions."""

    def __init__(self, spec: EndpointSpec) -> None:
        self.spec = spec
        self.state = BindState.UNBOUND
        self.bind_error: Optional[str] = None
        self._backend: Optional[ProxyBackend] = None
        self._signal_handlers: Dict[str, SignalHandler] = {}
        self._properties_handlers: List[PropertiesHandler] = []
        self._closed = False

    @property
    def name(self) -> str:
        return self.spec.label

    @property
    def bound(self) -> bool:
        return self.state is BindState.BOUND

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------
    def bind(self, connector: Connector, on_ready: Optional[Callable[["EndpointProxy"], None]] = None) -> None:
        """Start binding; ``on_ready`` fires once the connection resolves either way."""

        def _on_bound(backend: Optional[ProxyBackend], error: Optional[str]) -> None:
            if self._closed:
                if backend is not None:
                    backend.close()
                return
            if backend is None:
                self.state = BindState.ERROR
                self.bind_error = error or "unknown error"
                _LOGGER.warning("Could not bind %s endpoint: %s", self.name, self.bind_error)
            else:
                self._backend = backend
                self.state = BindState.BOUND
                self.bind_error = None
                backend.subscribe(self._dispatch_signal, self._dispatch_properties)
                _LOGGER.debug("Bound %s endpoint at %s", self.name, self.spec.object_path)
            if on_ready is not None:
                on_ready(self)

        connector(self.spec, _on_bound)

    def close(self) -> None:
        self._closed = True
        self._signal_handlers.clear()
        self._properties_handlers.clear()
        backend, self._backend = self._backend, None
        self.state = BindState.UNBOUND
        if backend is not None:
            backend.close()

    # ------------------------------------------------------------------
    # Calls and properties
    # ------------------------------------------------------------------
    def _require_backend(self, method: str) -> ProxyBackend:
        if self._backend is None or self.state is not BindState.BOUND:
            raise RemoteCallError(
                self.name,
                method,
                self.bind_error or "endpoint is not bound",
                unreachable=True,
            )
        return self._backend

    def _signature(self, method: str) -> str:
        try:
            return self.spec.methods[method][0]
        except KeyError as err:
            raise RemoteCallError(self.name, method, "no such method") from err

    @staticmethod
    def _reporting(
        callback: Optional[Callable[[Any, Optional[RemoteCallError]], None]]
    ) -> Callable[[Any, Optional[RemoteCallError]], None]:
        def _done(result: Any, error: Optional[RemoteCallError]) -> None:
            if error is not None:
                _LOGGER.debug("%s", error)
            if callback is not None:
                callback(result, error)

        return _done

    def call_async(self, method: str, *args: Any, callback: Optional[CallCallback] = None) -> None:
        done = self._reporting(callback)
        try:
            signature = self._signature(method)
            backend = self._require_backend(method)
        except RemoteCallError as err:
            done(None, err)
            return
        backend.call_async(method, signature, args, done)

    def get_property(self, name: str) -> Any:
        if self._backend is None or self.state is not BindState.BOUND:
            return UNKNOWN
        value = self._backend.get_cached_property(name)
        return UNKNOWN if value is None else value

    def fetch_property(self, name: str, callback: ValueCallback) -> None:
        """Read ``name`` from the daemon, bypassing the cache."""

        done = self._reporting(callback)
        try:
            if name not in self.spec.properties:
                raise RemoteCallError(self.name, name, "no such property")
            backend = self._require_backend(name)
        except RemoteCallError as err:
            done(UNKNOWN, err)
            return
        backend.fetch_property(name, done)

    def get_properties(self) -> Dict[str, Any]:
        return {name: self.get_property(name) for name in self.spec.properties}

    def set_property(self, name: str, value: Any, callback: Optional[ValueCallback] = None) -> None:
        done = self._reporting(callback)
        try:
            if name not in self.spec.writable_properties:
                raise RemoteCallError(self.name, name, "property is not writable")
            backend = self._require_backend(name)
        except RemoteCallError as err:
            done(None, err)
            return
        backend.set_property(name, self.spec.properties[name], value, done)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def on_signal(self, name: str, handler: SignalHandler) -> None:
        if name not in self.spec.signals:
            raise ValueError(f"{self.name} has no signal named {name!r}")
        if name in self._signal_handlers:
            raise ValueError(f"{self.name}.{name} already has a handler")
        self._signal_handlers[name] = handler

    def on_properties_changed(self, handler: PropertiesHandler) -> None:
        self._properties_handlers.append(handler)

    def _dispatch_signal(self, name: str, args: Tuple[Any, ...]) -> None:
        handler = self._signal_handlers.get(name)
        decoder = self.spec.signals.get(name)
        if handler is None or decoder is None:
            return
        try:
            payload = decoder(args)
        except PayloadError as err:
            _LOGGER.error("Dropping malformed %s.%s signal: %s", self.name, name, err)
            return
        handler(payload)

    def _dispatch_properties(self, changed: Mapping[str, Any], invalidated: Sequence[str]) -> None:
        relevant = {key: value for key, value in changed.items() if key in self.spec.properties}
        for key in invalidated:
            if key in self.spec.properties and key not in relevant:
                relevant[key] = UNKNOWN
        if not relevant:
            return
        for handler in list(self._properties_handlers):
            handler(relevant)


__all__ = [
    "BindCallback",
    "BindState",
    "CallCallback",
    "Connector",
    "EndpointProxy",
    "ProxyBackend",
    "RemoteCallError",
    "SignalHandler",
    "UNKNOWN",
    "ValueCallback",
]
