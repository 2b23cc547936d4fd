import threading
import time
from datetime import datetime

import pytest

from battman.config import ConfigInvalidError
from battman.log_store import LogStore, StoreIOError
from battman.models import BatterySnapshot, BatteryState
from battman.sampler import Sampler
from battman.sensors import BatterySensor, SensorUnavailableError


class FakeSensor(BatterySensor):
    name = "fake"

    def __init__(self, snapshots=None, fail_enumerate=False, fail_devices=()):
        self.snapshots = snapshots or {
            "BAT0": BatterySnapshot(
                device_id="BAT0",
                percentage=81,
                state=BatteryState.DISCHARGING,
                energy_now=40.0,
                energy_full=45.0,
                energy_design=50.0,
                power_rate=9.5,
            )
        }
        self.fail_enumerate = fail_enumerate
        self.fail_devices = set(fail_devices)
        self.reads = 0
        self.read_event = threading.Event()

    def enumerate_devices(self):
        if self.fail_enumerate:
            raise SensorUnavailableError("upower not responding")
        return list(self.snapshots)

    def read_snapshot(self, device_id):
        self.reads += 1
        self.read_event.set()
        if device_id in self.fail_devices:
            raise SensorUnavailableError(f"cannot read {device_id}")
        return self.snapshots[device_id]


def fixed_clock():
    return datetime(2025, 3, 1, 12, 30, 15, 999)


@pytest.fixture
def store(tmp_path):
    return LogStore(tmp_path / "battery_log.csv")


def test_tick_writes_one_row_per_device(store):
    sensor = FakeSensor(
        snapshots={
            "BAT0": BatterySnapshot(device_id="BAT0", percentage=81, state=BatteryState.DISCHARGING),
            "BAT1": BatterySnapshot(device_id="BAT1", percentage=64, state=BatteryState.CHARGING),
        }
    )
    sampler = Sampler(sensor, store, clock=fixed_clock)

    assert sampler.tick() == 2
    rows = list(store.tail(10))
    assert [r.device_id for r in rows] == ["BAT0", "BAT1"]
    assert all(r.timestamp == datetime(2025, 3, 1, 12, 30, 15) for r in rows)


def test_tick_computes_health(store):
    sampler = Sampler(FakeSensor(), store, clock=fixed_clock)
    sampler.tick()
    (row,) = list(store.tail(1))
    assert row.health_pct == 90.0
    assert row.power_rate == 9.5


def test_tick_missing_design_capacity_gives_null_health(store):
    sensor = FakeSensor(
        snapshots={"BAT0": BatterySnapshot(device_id="BAT0", percentage=50, energy_full=45.0, energy_design=0.0)}
    )
    sampler = Sampler(sensor, store, clock=fixed_clock)
    assert sampler.tick() == 1
    (row,) = list(store.tail(1))
    assert row.health_pct is None


def test_tick_skips_failed_device(store):
    sensor = FakeSensor(
        snapshots={
            "BAT0": BatterySnapshot(device_id="BAT0", percentage=81),
            "BAT1": BatterySnapshot(device_id="BAT1", percentage=64),
        },
        fail_devices={"BAT0"},
    )
    sampler = Sampler(sensor, store, clock=fixed_clock)

    assert sampler.tick() == 1
    assert [r.device_id for r in store.tail(10)] == ["BAT1"]


def test_tick_unexpected_device_error_does_not_skip_others(store, monkeypatch):
    sensor = FakeSensor(
        snapshots={
            "BAT0": BatterySnapshot(device_id="BAT0", percentage=81),
            "BAT1": BatterySnapshot(device_id="BAT1", percentage=64),
        }
    )
    original = sensor.read_snapshot

    def flaky_read(device_id):
        if device_id == "BAT0":
            raise UnicodeDecodeError("utf-8", b"\xff\xfe", 0, 1, "invalid start byte")
        return original(device_id)

    monkeypatch.setattr(sensor, "read_snapshot", flaky_read)
    sampler = Sampler(sensor, store, clock=fixed_clock)

    assert sampler.tick() == 1
    assert [r.device_id for r in store.tail(10)] == ["BAT1"]


def test_tick_failed_enumeration_logs_nothing(store):
    sampler = Sampler(FakeSensor(fail_enumerate=True), store, clock=fixed_clock)
    assert sampler.tick() == 0
    assert store.count_rows() == 0


def test_tick_store_error_is_not_raised(store, monkeypatch):
    sampler = Sampler(FakeSensor(), store, clock=fixed_clock)

    def broken_append(sample):
        raise StoreIOError("disk full")

    monkeypatch.setattr(store, "append", broken_append)
    assert sampler.tick() == 0


def test_start_twice_returns_same_handle(store):
    sensor = FakeSensor()
    sampler = Sampler(sensor, store)
    try:
        h1 = sampler.start(60)
        h2 = sampler.start(60)
        assert h1 is h2
        assert sampler.is_running
        alive = [t for t in threading.enumerate() if t.name == "battman-sampler"]
        assert len(alive) == 1
    finally:
        sampler.stop()


def test_start_runs_first_tick_immediately(store):
    sensor = FakeSensor()
    sampler = Sampler(sensor, store)
    try:
        sampler.start(3600)
        assert sensor.read_event.wait(timeout=5)
    finally:
        sampler.stop()
    assert store.count_rows() == 1


def test_stop_joins_thread_and_clears_state(store):
    sampler = Sampler(FakeSensor(), store)
    handle = sampler.start(3600)

    assert sampler.stop() is True
    assert not handle.alive
    assert not sampler.is_running
    assert sampler.handle is None
    assert sampler.interval_seconds is None


def test_no_appends_after_stop(store):
    sensor = FakeSensor()
    sampler = Sampler(sensor, store)
    sampler.start(1)
    assert sensor.read_event.wait(timeout=5)
    sampler.stop()
    count = store.count_rows()
    time.sleep(1.5)
    assert store.count_rows() == count


def test_stop_when_not_running_reports_false(store):
    sampler = Sampler(FakeSensor(), store)
    assert sampler.stop() is False
    assert sampler.stop() is False


def test_restart_after_stop_gets_new_handle(store):
    sampler = Sampler(FakeSensor(), store)
    h1 = sampler.start(3600)
    sampler.stop()
    h2 = sampler.start(3600)
    try:
        assert h1 is not h2
        assert h2.alive
    finally:
        sampler.stop()


@pytest.mark.parametrize("bad", [0, -5, "abc", 1.5, True, None])
def test_start_rejects_invalid_interval(store, bad):
    sampler = Sampler(FakeSensor(), store)
    with pytest.raises(ConfigInvalidError):
        sampler.start(bad)
    assert not sampler.is_running


def test_loop_survives_unexpected_errors(store, monkeypatch):
    sampler = Sampler(FakeSensor(), store)
    calls = []
    second_call = threading.Event()

    def flaky_tick():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        second_call.set()
        return 0

    monkeypatch.setattr(sampler, "tick", flaky_tick)
    sampler.start(1)
    try:
        assert second_call.wait(timeout=5)
    finally:
        sampler.stop()
    assert len(calls) >= 2
