"""In-memory fakes shared by the indicator tests: no bus, no display."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

from eruption_indicator.endpoints import EndpointName
from eruption_indicator.indicators import IndicatorKind
from eruption_indicator.proxy import RemoteCallError
from eruption_indicator.settings import MemorySettings
from eruption_indicator.timers import TimerRegistry

KONE_PRO_AIR = (0x1E7D, 0x2C92)
ELO_AIR = (0x1E7D, 0x3A37)
VULCAN_PRO = (0x1E7D, 0x30F7)

NOT_RUNNING = "The name org.eruption was not provided by any .service files"


def device_json(*devices: Tuple[Tuple[int, int], Dict[str, Any]]) -> str:
    return json.dumps(
        [{"usb_vid": vid, "usb_pid": pid, "status": status} for (vid, pid), status in devices]
    )


class AfterHarness:
    def __init__(self) -> None:
        self.scheduled: list[tuple[str, int, Callable[[], Any]]] = []
        self.cancelled: list[object] = []
        self.fired: list[str] = []

    def after(self, ms: int, cb) -> str:
        handle = f"h{len(self.scheduled) + 1}"
        self.scheduled.append((handle, ms, cb))
        return handle

    def cancel(self, handle: object) -> None:
        self.cancelled.append(handle)

    def live(self) -> list[tuple[str, int, Callable[[], Any]]]:
        return [
            entry
            for entry in self.scheduled
            if entry[0] not in self.cancelled and entry[0] not in self.fired
        ]

    def run(self, handle: str) -> None:
        for h, _ms, cb in list(self.scheduled):
            if h == handle:
                self.fired.append(h)
                cb()
                return
        raise AssertionError(f"Handle {handle} not found")

    def run_live(self, delay_ms: Optional[int] = None) -> int:
        """Fire every live callback (optionally only those with ``delay_ms``)."""

        ran = 0
        for handle, ms, _cb in self.live():
            if delay_ms is None or ms == delay_ms:
                self.run(handle)
                ran += 1
        return ran

    def registry(self) -> TimerRegistry:
        return TimerRegistry(self.after, self.cancel)


class FakeBackend:
    """One daemon interface; completions run immediately unless ``hold`` queues them."""

    def __init__(self, properties: Optional[Dict[str, Any]] = None, responses: Optional[Dict[str, Tuple[Any, ...]]] = None) -> None:
        self.properties: Dict[str, Any] = dict(properties or {})
        self.responses: Dict[str, Tuple[Any, ...]] = dict(responses or {})
        self.async_calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.set_calls: List[Tuple[str, Any]] = []
        self.fetches: List[str] = []
        self.fail: Optional[RemoteCallError] = None
        self.hold = False
        self.pending: List[Callable[[], None]] = []
        self.closed = False
        self._on_signal: Optional[Callable[[str, Tuple[Any, ...]], None]] = None
        self._on_properties: Optional[Callable[[Dict[str, Any], List[str]], None]] = None

    def _complete(self, callback, result, error) -> None:
        if self.hold:
            self.pending.append(lambda: callback(result, error))
        else:
            callback(result, error)

    def flush(self) -> int:
        """Deliver every held completion, oldest first."""

        held, self.pending = self.pending, []
        for complete in held:
            complete()
        return len(held)

    def call_async(self, method, in_signature, args, callback):
        self.async_calls.append((method, tuple(args)))
        if self.fail is not None:
            self._complete(callback, None, self.fail)
        else:
            self._complete(callback, self.responses.get(method, ()), None)

    def get_cached_property(self, name):
        return self.properties.get(name)

    def fetch_property(self, name, callback):
        self.fetches.append(name)
        if self.fail is not None:
            self._complete(callback, None, self.fail)
        elif name not in self.properties:
            self._complete(callback, None, RemoteCallError("Fake", name, "no such property"))
        else:
            self._complete(callback, self.properties[name], None)

    def set_property(self, name, signature, value, callback):
        self.set_calls.append((name, value))
        self._complete(callback, None if self.fail is not None else value, self.fail)

    def subscribe(self, on_signal, on_properties_changed):
        self._on_signal = on_signal
        self._on_properties = on_properties_changed

    def close(self):
        self.closed = True

    # Daemon side -------------------------------------------------------
    def emit(self, name: str, *args: Any) -> None:
        assert self._on_signal is not None, "backend is not subscribed"
        self._on_signal(name, args)

    def change(self, changed: Dict[str, Any], invalidated: Tuple[str, ...] = ()) -> None:
        assert self._on_properties is not None, "backend is not subscribed"
        self.properties.update(changed)
        for name in invalidated:
            self.properties.pop(name, None)
        self._on_properties(dict(changed), list(invalidated))


class FakeConnector:
    """Resolves binds from a table; ``deferred`` holds them until :meth:`resolve`."""

    def __init__(
        self,
        backends: Optional[Dict[EndpointName, FakeBackend]] = None,
        errors: Optional[Dict[EndpointName, str]] = None,
        deferred: bool = False,
    ) -> None:
        self.backends = dict(backends or {})
        self.errors = dict(errors or {})
        self.deferred = deferred
        self.requested: List[EndpointName] = []
        self.pending: Dict[EndpointName, Callable[..., None]] = {}

    def __call__(self, spec, done) -> None:
        self.requested.append(spec.name)
        if self.deferred:
            self.pending[spec.name] = done
            return
        self._resolve(spec.name, done)

    def resolve(self, name: EndpointName) -> None:
        self._resolve(name, self.pending.pop(name))

    def _resolve(self, name: EndpointName, done) -> None:
        if name in self.errors:
            done(None, self.errors[name])
        elif name in self.backends:
            done(self.backends[name], None)
        else:
            done(None, NOT_RUNNING)


class FakeOverlay:
    def __init__(self, text: str) -> None:
        self.text = text
        self.history: List[str] = [text]
        self.presented = 0
        self.fades: List[int] = []
        self.destroyed = False

    def set_text(self, text: str) -> None:
        self.text = text
        self.history.append(text)

    def present(self) -> None:
        self.presented += 1

    def fade_out(self, duration_ms: int) -> None:
        self.fades.append(duration_ms)

    def destroy(self) -> None:
        self.destroyed = True


class OverlayFactory:
    def __init__(self) -> None:
        self.created: List[FakeOverlay] = []

    def __call__(self, text: str) -> FakeOverlay:
        overlay = FakeOverlay(text)
        self.created.append(overlay)
        return overlay


class FakeIndicatorWidget:
    def __init__(self, kind: IndicatorKind, device_name: str) -> None:
        self.kind = kind
        self.device_name = device_name
        self.updates: List[Tuple[str, Optional[str]]] = []
        self.destroyed = False

    @property
    def icon_name(self) -> Optional[str]:
        return self.updates[-1][0] if self.updates else None

    @property
    def text(self) -> Optional[str]:
        return self.updates[-1][1] if self.updates else None

    def update(self, icon_name: str, text: Optional[str]) -> None:
        self.updates.append((icon_name, text))

    def destroy(self) -> None:
        self.destroyed = True


class IndicatorFactory:
    def __init__(self) -> None:
        self.created: List[FakeIndicatorWidget] = []

    def __call__(self, kind: IndicatorKind, device_name: str) -> FakeIndicatorWidget:
        widget = FakeIndicatorWidget(kind, device_name)
        self.created.append(widget)
        return widget

    def live(self) -> List[FakeIndicatorWidget]:
        return [widget for widget in self.created if not widget.destroyed]


class FakeMenuView:
    def __init__(self) -> None:
        self.renders: list = []
        self.device_renders: list = []
        self.control_updates = 0
        self.cleared = 0

    @property
    def current(self):
        return self.renders[-1] if self.renders else None

    def render(self, menu) -> None:
        self.renders.append(menu)

    def render_devices(self, items) -> None:
        self.device_renders.append(items)

    def update_controls(self, model) -> None:
        self.control_updates += 1

    def clear(self) -> None:
        self.cleared += 1


def daemon_backends(device_status: str = "[]") -> Dict[EndpointName, FakeBackend]:
    """A running daemon in slot 1 with two profiles and no devices."""

    return {
        EndpointName.SLOT: FakeBackend(
            {"ActiveSlot": 0, "SlotNames": ["Gaming", "Work", "", ""]},
            {
                "SwitchSlot": (True,),
                "GetSlotProfiles": (["spectrum.profile", "rainbow.profile", "", ""],),
            },
        ),
        EndpointName.PROFILE: FakeBackend(
            {"ActiveProfile": "spectrum.profile"},
            {
                "EnumProfiles": (
                    [("Spectrum Analyzer", "spectrum.profile"), ("Rainbow Wave", "rainbow.profile")],
                ),
                "SwitchProfile": (True,),
            },
        ),
        EndpointName.CONFIG: FakeBackend({"Brightness": 80, "EnableSfx": False}),
        EndpointName.STATUS: FakeBackend({"Running": True}),
        EndpointName.DEVICE: FakeBackend({"DeviceStatus": device_status}),
        EndpointName.EFFECTS: FakeBackend({"AmbientEffect": False}),
    }


class Rig:
    """A fully wired :class:`EruptionIndicator` over fakes."""

    def __init__(
        self,
        backends: Optional[Dict[EndpointName, FakeBackend]] = None,
        *,
        settings: Optional[Dict[str, bool]] = None,
        errors: Optional[Dict[EndpointName, str]] = None,
        deferred: bool = False,
        companions=(),
    ) -> None:
        from eruption_indicator.controller import EruptionIndicator

        self.backends = daemon_backends() if backends is None else backends
        self.harness = AfterHarness()
        self.timers = self.harness.registry()
        self.settings = MemorySettings(settings)
        self.connector = FakeConnector(self.backends, errors, deferred)
        self.overlays = OverlayFactory()
        self.widgets = IndicatorFactory()
        self.view = FakeMenuView()
        self.preferences_opened = 0
        self.indicator = EruptionIndicator(
            connector=self.connector,
            timers=self.timers,
            settings=self.settings,
            overlay_factory=self.overlays,
            indicator_factory=self.widgets,
            menu_view=self.view,
            open_preferences=self._open_preferences,
            companions=companions,
        )

    def _open_preferences(self) -> None:
        self.preferences_opened += 1

    @property
    def model(self):
        return self.indicator.model

    def notifications(self) -> List[str]:
        texts: List[str] = []
        for overlay in self.overlays.created:
            texts.extend(overlay.history)
        return texts
