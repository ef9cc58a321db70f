from eruption_indicator import settings as prefs
from eruption_indicator.endpoints import CONFIG, DEVICE, EFFECTS, PROFILE, SLOT, STATUS
from eruption_indicator.indicators import DeviceIndicatorSet
from eruption_indicator.notifications import NotificationKind
from eruption_indicator.proxy import EndpointProxy, RemoteCallError
from eruption_indicator.reconcilers import (
    DEVICE_POLL_TIMER,
    ConfigReconciler,
    DeviceReconciler,
    EffectsReconciler,
    ProfileReconciler,
    ReconcilerContext,
    RefreshScope,
    SlotReconciler,
    StatusReconciler,
)
from eruption_indicator.settings import MemorySettings
from eruption_indicator.view_model import ConnectionState, ViewModel

from support import KONE_PRO_AIR, AfterHarness, FakeBackend, FakeConnector, IndicatorFactory, device_json


class Recorder:
    def __init__(self, model=None) -> None:
        self.harness = AfterHarness()
        self.timers = self.harness.registry()
        self.notes: list[tuple[NotificationKind, str]] = []
        self.refreshes: list[RefreshScope] = []
        self.failures: list[RemoteCallError] = []
        self.context = ReconcilerContext(
            model=model or ViewModel(),
            timers=self.timers,
            notify=lambda kind, text: self.notes.append((kind, text)),
            request_refresh=self.refreshes.append,
            report_failure=self.failures.append,
        )

    @property
    def model(self) -> ViewModel:
        return self.context.model

    def texts(self) -> list[str]:
        return [text for _kind, text in self.notes]


def attach(reconciler_cls, spec, backend, recorder, **kwargs):
    proxy = EndpointProxy(spec)
    reconciler = reconciler_cls(proxy, recorder.context, **kwargs)
    reconciler.attach()
    proxy.bind(FakeConnector({spec.name: backend}))
    return reconciler


UNREACHABLE = RemoteCallError("Slot", "SwitchSlot", "no reply", unreachable=True)


# ----------------------------------------------------------------------
# Slots
# ----------------------------------------------------------------------
SLOT_PROFILES = {"GetSlotProfiles": (["spectrum.profile", "", "rainbow.profile", ""],)}


def switch_calls(backend: FakeBackend) -> list:
    return [call for call in backend.async_calls if call[0] == "SwitchSlot"]


def test_slot_sync_reads_cached_properties_and_slot_profiles() -> None:
    recorder = Recorder()
    backend = FakeBackend({"ActiveSlot": 1, "SlotNames": ["Gaming", "", "Work"]}, SLOT_PROFILES)
    reconciler = attach(SlotReconciler, SLOT, backend, recorder)

    reconciler.sync()

    assert recorder.model.active_slot == 1
    assert recorder.model.slot_names == ["Gaming", "Profile Slot 2", "Work", "Profile Slot 4"]
    assert recorder.model.active_profiles == {0: "spectrum.profile", 2: "rainbow.profile"}
    assert recorder.refreshes == [RefreshScope.FULL, RefreshScope.FULL]
    assert recorder.notes == []


def test_active_slot_signal_updates_model_and_ignores_out_of_range() -> None:
    recorder = Recorder()
    backend = FakeBackend({"ActiveSlot": 0})
    attach(SlotReconciler, SLOT, backend, recorder)

    backend.emit("ActiveSlotChanged", 3)
    assert recorder.model.active_slot == 3

    backend.emit("ActiveSlotChanged", 7)
    assert recorder.model.active_slot == 3
    assert recorder.refreshes == [RefreshScope.FULL]
    assert backend.async_calls == [("GetSlotProfiles", ())]


def test_slot_switch_rereads_slot_profiles() -> None:
    recorder = Recorder()
    backend = FakeBackend({"ActiveSlot": 0}, SLOT_PROFILES)
    reconciler = attach(SlotReconciler, SLOT, backend, recorder)
    reconciler.sync()
    backend.responses["GetSlotProfiles"] = (["spectrum.profile", "rainbow.profile", "rainbow.profile", ""],)

    backend.emit("ActiveSlotChanged", 1)

    assert recorder.model.active_profiles == {0: "spectrum.profile", 1: "rainbow.profile", 2: "rainbow.profile"}
    assert recorder.model.active_profile == "rainbow.profile"


def test_malformed_slot_profiles_reply_keeps_previous_map() -> None:
    recorder = Recorder()
    backend = FakeBackend({"ActiveSlot": 0}, SLOT_PROFILES)
    reconciler = attach(SlotReconciler, SLOT, backend, recorder)
    reconciler.sync()
    backend.responses["GetSlotProfiles"] = (42,)

    backend.emit("ActiveSlotChanged", 2)

    assert recorder.model.active_profiles == {0: "spectrum.profile", 2: "rainbow.profile"}


def test_switch_slot_waits_for_daemon_echo() -> None:
    recorder = Recorder()
    backend = FakeBackend({"ActiveSlot": 0}, {"SwitchSlot": (True,)})
    reconciler = attach(SlotReconciler, SLOT, backend, recorder)
    reconciler.sync()

    reconciler.switch_slot(2)

    assert switch_calls(backend) == [("SwitchSlot", (2,))]
    assert recorder.model.active_slot == 0

    backend.emit("ActiveSlotChanged", 2)
    assert recorder.model.active_slot == 2

    reconciler.switch_slot(2)
    reconciler.switch_slot(9)
    assert len(switch_calls(backend)) == 1


def test_switch_slot_failure_notifies_and_reports() -> None:
    recorder = Recorder()
    backend = FakeBackend({"ActiveSlot": 0})
    backend.fail = UNREACHABLE
    reconciler = attach(SlotReconciler, SLOT, backend, recorder)
    reconciler.sync()

    reconciler.switch_slot(1)

    assert recorder.notes == [(NotificationKind.ERROR, "Could not switch slots! Is Eruption running?")]
    assert recorder.failures == [UNREACHABLE]


def test_rename_slot_writes_all_names() -> None:
    recorder = Recorder()
    backend = FakeBackend({"ActiveSlot": 0, "SlotNames": ["A", "B", "C", "D"]})
    reconciler = attach(SlotReconciler, SLOT, backend, recorder)
    reconciler.sync()

    reconciler.rename_slot(1, "Streaming")

    assert backend.set_calls == [("SlotNames", ["A", "Streaming", "C", "D"])]


# ----------------------------------------------------------------------
# Profiles
# ----------------------------------------------------------------------
PROFILES = {"EnumProfiles": ([("Spectrum Analyzer", "spectrum.profile"), ("Rainbow Wave", "rainbow.profile")],)}


def test_active_profile_property_never_touches_slot_map() -> None:
    recorder = Recorder()
    recorder.model.active_slot = 1
    recorder.model.active_profiles = {0: "spectrum.profile"}
    backend = FakeBackend({"ActiveProfile": "spectrum.profile"}, PROFILES)
    reconciler = attach(ProfileReconciler, PROFILE, backend, recorder)

    reconciler.sync()
    backend.change({"ActiveProfile": "rainbow.profile"})

    assert recorder.model.current_profile == "rainbow.profile"
    assert recorder.model.active_profiles == {0: "spectrum.profile"}
    assert recorder.model.active_profile == "rainbow.profile"
    assert recorder.refreshes == [RefreshScope.SLOT_PROFILES, RefreshScope.SLOT_PROFILES]
    assert recorder.notes == []


def test_profile_switch_signal_notifies_resolved_name() -> None:
    recorder = Recorder()
    recorder.model.active_slot = 0
    backend = FakeBackend({}, PROFILES)
    attach(ProfileReconciler, PROFILE, backend, recorder)

    backend.emit("ActiveProfileChanged", "rainbow.profile")
    backend.emit("ActiveProfileChanged", "missing.profile")

    assert recorder.notes == [
        (NotificationKind.PROFILE_SWITCH, "Rainbow Wave"),
        (NotificationKind.PROFILE_SWITCH, "<unknown>"),
    ]
    assert recorder.model.current_profile == "missing.profile"
    assert recorder.model.active_profiles == {}
    assert recorder.refreshes == [RefreshScope.SLOT_PROFILES, RefreshScope.SLOT_PROFILES]


def test_profile_switch_is_announced_when_enumeration_completes() -> None:
    recorder = Recorder()
    backend = FakeBackend({}, PROFILES)
    backend.hold = True
    attach(ProfileReconciler, PROFILE, backend, recorder)

    backend.emit("ActiveProfileChanged", "rainbow.profile")
    assert recorder.notes == []

    backend.flush()
    assert recorder.texts() == ["Rainbow Wave"]


def test_profiles_changed_requests_full_refresh() -> None:
    recorder = Recorder()
    backend = FakeBackend({}, PROFILES)
    attach(ProfileReconciler, PROFILE, backend, recorder)

    backend.emit("ProfilesChanged")

    assert recorder.refreshes == [RefreshScope.FULL]


def test_enumerate_profiles_yields_empty_list_on_call_errors() -> None:
    recorder = Recorder()
    backend = FakeBackend({}, PROFILES)
    reconciler = attach(ProfileReconciler, PROFILE, backend, recorder)
    results: list = []

    reconciler.enumerate_profiles(results.append)
    backend.fail = UNREACHABLE
    reconciler.enumerate_profiles(results.append)
    backend.fail = None
    backend.responses["EnumProfiles"] = ([("Broken",)],)
    reconciler.enumerate_profiles(results.append)

    assert [len(profiles) for profiles in results] == [2, 0, 0]
    assert results[0][1].name == "Rainbow Wave"
    assert recorder.notes == []


# ----------------------------------------------------------------------
# Config
# ----------------------------------------------------------------------
def test_config_sync_is_silent_but_remote_changes_notify() -> None:
    recorder = Recorder()
    backend = FakeBackend({"Brightness": 80, "EnableSfx": False})
    reconciler = attach(ConfigReconciler, CONFIG, backend, recorder)

    reconciler.sync(suppress_notification=True)
    assert recorder.model.brightness == 80
    assert recorder.notes == []

    backend.change({"EnableSfx": True})
    backend.change({"Brightness": 42})

    assert recorder.texts() == ["Audio Effects enabled", "Brightness: 42%"]
    assert recorder.refreshes[-1] is RefreshScope.CONTROLS


def test_out_of_range_brightness_is_treated_as_full() -> None:
    recorder = Recorder()
    backend = FakeBackend({"Brightness": 250})
    reconciler = attach(ConfigReconciler, CONFIG, backend, recorder)

    reconciler.sync()
    assert recorder.model.brightness == 100

    backend.emit("BrightnessChanged", -4)
    assert recorder.model.brightness == 100
    assert recorder.notes == []


def test_brightness_slider_burst_writes_last_value_once() -> None:
    recorder = Recorder()
    backend = FakeBackend({"Brightness": 80})
    reconciler = attach(ConfigReconciler, CONFIG, backend, recorder)

    for value in (10, 20.4, 33, 30):
        reconciler.set_brightness(value)

    assert recorder.model.brightness == 30
    assert backend.set_calls == []
    assert [ms for _h, ms, _cb in recorder.harness.live()] == [15]

    recorder.harness.run_live()

    assert backend.set_calls == [("Brightness", 30)]


def test_toggle_sfx_reverts_on_failure() -> None:
    recorder = Recorder()
    backend = FakeBackend({"EnableSfx": False})
    reconciler = attach(ConfigReconciler, CONFIG, backend, recorder)
    reconciler.sync()
    backend.fail = UNREACHABLE

    reconciler.toggle_sfx()

    assert backend.set_calls == [("EnableSfx", True)]
    assert recorder.model.sfx_enabled is False
    assert recorder.texts() == ["Could not toggle audio effects! Is Eruption running?"]
    assert recorder.failures == [UNREACHABLE]


def test_toggle_sfx_is_optimistic_until_write_completes() -> None:
    recorder = Recorder()
    backend = FakeBackend({"EnableSfx": False})
    reconciler = attach(ConfigReconciler, CONFIG, backend, recorder)
    reconciler.sync()
    backend.hold = True
    backend.fail = UNREACHABLE

    reconciler.toggle_sfx()
    assert recorder.model.sfx_enabled is True
    assert recorder.notes == []

    backend.flush()
    assert recorder.model.sfx_enabled is False
    assert recorder.failures == [UNREACHABLE]


# ----------------------------------------------------------------------
# Effects
# ----------------------------------------------------------------------
def test_ambient_effect_changes_and_toggle() -> None:
    recorder = Recorder()
    backend = FakeBackend({"AmbientEffect": False})
    reconciler = attach(EffectsReconciler, EFFECTS, backend, recorder)
    reconciler.sync()

    reconciler.toggle_ambient_effect()
    backend.change({"AmbientEffect": True})

    assert backend.set_calls == [("AmbientEffect", True)]
    assert recorder.model.ambient_effect_enabled is True
    assert recorder.texts() == ["Ambient Effect enabled"]

    backend.emit("StatusChanged", "reload")
    assert recorder.refreshes[-1] is RefreshScope.FULL


def test_ambient_effect_failure_does_not_report_daemon_absence() -> None:
    recorder = Recorder()
    backend = FakeBackend({"AmbientEffect": False})
    reconciler = attach(EffectsReconciler, EFFECTS, backend, recorder)
    backend.fail = RemoteCallError("Effects", "AmbientEffect", "no owner", unreachable=True)

    reconciler.toggle_ambient_effect()

    assert recorder.model.ambient_effect_enabled is False
    assert recorder.notes[0][0] is NotificationKind.ERROR
    assert recorder.failures == []


# ----------------------------------------------------------------------
# Status
# ----------------------------------------------------------------------
def make_status(recorder, backend):
    events: list[str] = []
    reconciler = attach(
        StatusReconciler,
        STATUS,
        backend,
        recorder,
        on_connected=lambda: events.append("connected"),
        on_disconnected=lambda: events.append("disconnected"),
    )
    return reconciler, events


def test_running_property_drives_connection_state() -> None:
    recorder = Recorder()
    backend = FakeBackend({"Running": True})
    reconciler, events = make_status(recorder, backend)

    reconciler.sync()
    backend.change({"Running": True})
    backend.change({"Running": False})
    backend.change({"Running": True})

    assert events == ["connected", "disconnected", "connected"]
    assert recorder.model.connection is ConnectionState.CONNECTED


def test_unreachable_failure_disconnects_only_when_connected() -> None:
    recorder = Recorder()
    reconciler, events = make_status(recorder, FakeBackend({"Running": True}))

    reconciler.report_failure(UNREACHABLE)
    assert events == []

    reconciler.sync()
    reconciler.report_failure(RemoteCallError("Slot", "SwitchSlot", "access denied"))
    assert recorder.model.connected

    reconciler.report_failure(UNREACHABLE)
    assert events == ["connected", "disconnected"]
    assert recorder.model.connection is ConnectionState.DISCONNECTED


def test_invalidated_running_property_disconnects() -> None:
    recorder = Recorder()
    backend = FakeBackend({"Running": True})
    reconciler, events = make_status(recorder, backend)
    reconciler.sync()

    backend.change({}, invalidated=("Running",))
    backend.change({}, invalidated=("Running",))

    assert events == ["connected", "disconnected"]
    assert recorder.model.connection is ConnectionState.DISCONNECTED

    backend.change({"Running": True})
    assert events == ["connected", "disconnected", "connected"]


# ----------------------------------------------------------------------
# Devices
# ----------------------------------------------------------------------
def make_devices(recorder, backend, values=None):
    widgets = IndicatorFactory()
    indicators = DeviceIndicatorSet(widgets, MemorySettings(values))
    reconciler = attach(DeviceReconciler, DEVICE, backend, recorder, indicators=indicators)
    return reconciler, indicators, widgets


def test_device_status_updates_indicators_when_connected() -> None:
    recorder = Recorder()
    recorder.model.connection = ConnectionState.CONNECTED
    backend = FakeBackend({"DeviceStatus": device_json((KONE_PRO_AIR, {"battery-level-percent": 80}))})
    reconciler, indicators, widgets = make_devices(recorder, backend, {prefs.SHOW_SIGNAL_STRENGTH: False})

    reconciler.sync()
    backend.emit("DeviceStatusChanged", device_json((KONE_PRO_AIR, {"battery-level-percent": 60})))

    assert indicators.rebuild_count == 1
    assert widgets.created[0].icon_name == "battery-level-60-symbolic"
    assert recorder.refreshes == [RefreshScope.DEVICES, RefreshScope.DEVICES]


def test_device_status_while_disconnected_only_updates_model() -> None:
    recorder = Recorder()
    recorder.model.connection = ConnectionState.DISCONNECTED
    backend = FakeBackend({"DeviceStatus": device_json((KONE_PRO_AIR, {"battery-level-percent": 80}))})
    reconciler, indicators, widgets = make_devices(recorder, backend)

    reconciler.sync()

    assert len(recorder.model.device_status) == 1
    assert widgets.created == []
    assert recorder.refreshes == []


def test_malformed_device_status_is_skipped() -> None:
    recorder = Recorder()
    recorder.model.connection = ConnectionState.CONNECTED
    backend = FakeBackend({"DeviceStatus": "{broken"})
    reconciler, indicators, widgets = make_devices(recorder, backend)

    reconciler.sync()
    backend.emit("DeviceStatusChanged", "[{]")

    assert recorder.model.device_status == []
    assert widgets.created == []


def test_hotplug_notifications() -> None:
    recorder = Recorder()
    backend = FakeBackend({})
    make_devices(recorder, backend)

    backend.emit("DeviceHotplug", (KONE_PRO_AIR[0], KONE_PRO_AIR[1], False))
    backend.emit("DeviceHotplug", (0, 0, False))
    backend.emit("DeviceHotplug", (KONE_PRO_AIR[0], KONE_PRO_AIR[1], True))
    backend.emit("DeviceHotplug", (0, 0, True))

    assert recorder.notes == [
        (NotificationKind.HOTPLUG, "Plugged ROCCAT Kone Pro Air"),
        (NotificationKind.HOTPLUG, "New device plugged and activated"),
        (NotificationKind.HOTPLUG, "Removed ROCCAT Kone Pro Air"),
        (NotificationKind.HOTPLUG, "Device removed"),
    ]


def test_polling_fetches_device_status_until_stopped() -> None:
    recorder = Recorder()
    recorder.model.connection = ConnectionState.CONNECTED
    backend = FakeBackend({"DeviceStatus": device_json((KONE_PRO_AIR, {"battery-level-percent": 80}))})
    reconciler, indicators, widgets = make_devices(recorder, backend)

    reconciler.start_polling(3000)
    assert reconciler.polling
    recorder.harness.run_live(3000)
    recorder.harness.run_live(3000)

    assert backend.fetches == ["DeviceStatus", "DeviceStatus"]
    assert indicators.rebuild_count == 1

    reconciler.stop_polling()
    assert not reconciler.polling
    assert not recorder.timers.is_pending(DEVICE_POLL_TIMER)
    assert recorder.harness.live() == []


def test_poll_failure_is_reported() -> None:
    recorder = Recorder()
    backend = FakeBackend({})
    backend.fail = UNREACHABLE
    reconciler, _indicators, _widgets = make_devices(recorder, backend)

    reconciler.poll()

    assert recorder.failures == [UNREACHABLE]
