from __future__ import annotations

import gc
from typing import Callable

from domain.settings import LayeredSettings, PropertiesSettings, RefreshInterval
from infrastructure.settings import RefreshTask, SettingsSource
from infrastructure.settings.refresh import PAUSED_POLL_SECONDS


class CountingSource(SettingsSource):
    def __init__(self, interval: RefreshInterval) -> None:
        self.interval = interval
        self.calls = 0
        self.fail = False

    def load(self) -> dict[str, str]:
        if self.fail:
            raise OSError("gone")
        self.calls += 1
        return {"count": str(self.calls)}


class FakeTimer:
    def __init__(self, seconds: float, callback: Callable[[], None]) -> None:
        self.seconds = seconds
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True


def make_task(source: SettingsSource, owner: LayeredSettings, layer: PropertiesSettings, timers: list[FakeTimer]) -> RefreshTask:
    def timer_factory(seconds: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(seconds, callback)
        timers.append(timer)
        return timer

    return RefreshTask(source, layer, owner, timer_factory=timer_factory)


def test_tick_replaces_values_and_reschedules_with_current_interval() -> None:
    interval = RefreshInterval("refresh-test", 10)
    source = CountingSource(interval)
    layer = PropertiesSettings({})
    owner = LayeredSettings("app", [layer])
    timers: list[FakeTimer] = []
    task = make_task(source, owner, layer, timers)

    task.start()
    interval.set_seconds(20)
    timers[-1].callback()

    assert owner.get_string("count") == "1"
    assert [timer.seconds for timer in timers] == [10, 20]
    assert all(timer.started for timer in timers)


def test_failed_load_keeps_previous_values() -> None:
    source = CountingSource(RefreshInterval("refresh-fail", 10))
    layer = PropertiesSettings({"count": "0"})
    owner = LayeredSettings("app", [layer])
    task = make_task(source, owner, layer, [])

    source.fail = True

    assert task.run_once() is True
    assert owner.get_string("count") == "0"


def test_task_stops_when_owner_is_collected() -> None:
    source = CountingSource(RefreshInterval("refresh-gc", 10))
    layer = PropertiesSettings({})
    owner = LayeredSettings("app", [layer])
    timers: list[FakeTimer] = []
    task = make_task(source, owner, layer, timers)
    task.start()

    del owner
    gc.collect()
    timers[-1].callback()

    assert task.cancelled is True
    assert source.calls == 0
    assert len(timers) == 1


def test_cancel_stops_pending_timer_and_disabled_interval_never_schedules() -> None:
    layer = PropertiesSettings({})
    owner = LayeredSettings("app", [layer])
    timers: list[FakeTimer] = []
    task = make_task(CountingSource(RefreshInterval("refresh-cancel", 10)), owner, layer, timers)
    task.start()

    task.cancel()

    assert timers[0].cancelled is True
    assert task.run_once() is False

    idle: list[FakeTimer] = []
    make_task(CountingSource(RefreshInterval("refresh-off", 0)), owner, layer, idle).start()
    assert idle == []


def test_interval_lowered_to_zero_pauses_and_resumes_when_raised() -> None:
    interval = RefreshInterval("refresh-pause", 10)
    source = CountingSource(interval)
    layer = PropertiesSettings({})
    owner = LayeredSettings("app", [layer])
    timers: list[FakeTimer] = []
    task = make_task(source, owner, layer, timers)
    task.start()

    interval.set_seconds(0)
    timers[-1].callback()
    timers[-1].callback()

    assert source.calls == 0
    assert [timer.seconds for timer in timers] == [10, PAUSED_POLL_SECONDS, PAUSED_POLL_SECONDS]

    interval.set_seconds(5)
    timers[-1].callback()

    assert source.calls == 1
    assert owner.get_string("count") == "1"
    assert timers[-1].seconds == 5
    assert task.cancelled is False
