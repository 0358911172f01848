"""Tests for the ticker and the sampling loop."""

import itertools
import threading
import time
from datetime import datetime, timezone

import pytest

from mem_metrics.collector.base import MemorySnapshot, MemoryStatsSource
from mem_metrics.errors import PublishError, PublishTimeoutError, RecordBuildError, SnapshotError
from mem_metrics.exporter.base import BasePublisher
from mem_metrics.loop import SAMPLE_INTERVAL_SECONDS, SamplingLoop, Ticker
from mem_metrics.records import MissingCounterError, build_dimensions

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
DIMS = build_dimensions("i-1", "t3.micro", "host-a")


class FakeSource(MemoryStatsSource):
    """Returns a fixed snapshot; fails on the listed refresh numbers."""

    def __init__(self, fail_on=()):
        super().__init__()
        self.fail_on = set(fail_on)
        self.refreshes = 0

    def _read(self):
        self.refreshes += 1
        if self.refreshes in self.fail_on:
            raise OSError("/proc/meminfo unreadable")
        return MemorySnapshot({"Buffers": 1000, "Cached": 2000, "Free": 500, "FreeTotal": 1500})


class RecordingPublisher(BasePublisher):
    """Records batches and the peak number of overlapping sends."""

    def __init__(self, fail_on=(), delay=0.0, on_send=None):
        super().__init__()
        self.fail_on = set(fail_on)
        self.delay = delay
        self.on_send = on_send
        self.batches = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def _send(self, batch, timeout, attempt):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            self.batches.append(batch)
            if len(self.batches) in self.fail_on:
                raise ConnectionError("network unreachable")
            if self.on_send is not None:
                self.on_send(len(self.batches))
        finally:
            with self._lock:
                self.active -= 1


# ---------------------------------------------------------------------------
# Ticker
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeStop:
    """Stands in for threading.Event; waiting just advances the clock."""

    def __init__(self, clock):
        self.clock = clock
        self.set_flag = False

    def wait(self, delay):
        self.clock.now += delay
        return self.set_flag

    def is_set(self):
        return self.set_flag


class TestTicker:

    def test_fixed_cadence(self):
        clock = FakeClock()
        fired = []
        for _ in itertools.islice(Ticker(60, FakeStop(clock), monotonic=clock), 3):
            fired.append(clock.now)
            clock.now += 5
        assert fired == [60, 120, 180]

    def test_overrun_fires_once_then_realigns(self):
        clock = FakeClock()
        work = iter([10, 150, 5, 5])
        fired = []
        for _ in itertools.islice(Ticker(60, FakeStop(clock), monotonic=clock), 4):
            fired.append(clock.now)
            clock.now += next(work)
        # slot 180 fires late at 270, slot 240 is dropped
        assert fired == [60, 120, 270, 300]

    def test_stop_ends_iteration(self):
        clock = FakeClock()
        stop = FakeStop(clock)
        ticks = []
        for n in Ticker(60, stop, monotonic=clock):
            ticks.append(n)
            if n == 2:
                stop.set_flag = True
        assert ticks == [1, 2]

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            Ticker(0)


# ---------------------------------------------------------------------------
# SamplingLoop
# ---------------------------------------------------------------------------

def _loop(source, publisher, interval=0.01, timeout=1.0):
    return SamplingLoop(source, publisher, DIMS, interval=interval, timeout=timeout, clock=lambda: NOW)


def test_default_interval():
    assert SAMPLE_INTERVAL_SECONDS == 60.0


def test_tick_builds_and_publishes():
    publisher = RecordingPublisher()
    batch = _loop(FakeSource(), publisher).tick()

    assert publisher.batches == [batch]
    assert [r.value for r in batch.records] == [1000.0, 2000.0, 500.0, 1500.0]
    assert all(r.timestamp == NOW and r.dimensions is DIMS for r in batch.records)


def test_run_until_stopped():
    holder = {}

    def on_send(count):
        if count == 3:
            holder["loop"].stop()

    publisher = RecordingPublisher(on_send=on_send)
    loop = _loop(FakeSource(), publisher)
    holder["loop"] = loop
    loop.run()

    assert loop.ticks == 3
    assert len(publisher.batches) == 3
    assert not loop.terminated


def test_refresh_error_terminates():
    source = FakeSource(fail_on={2})
    publisher = RecordingPublisher()
    loop = _loop(source, publisher)

    with pytest.raises(SnapshotError) as excinfo:
        loop.run()

    assert str(excinfo.value) == "memory info update: /proc/meminfo unreadable"
    assert loop.terminated
    assert loop.ticks == 1
    time.sleep(0.05)
    assert source.refreshes == 2
    assert len(publisher.batches) == 1


def test_publish_error_terminates():
    source = FakeSource()
    publisher = RecordingPublisher(fail_on={2})
    loop = _loop(source, publisher)

    with pytest.raises(PublishError):
        loop.run()

    assert loop.ticks == 1
    time.sleep(0.05)
    assert source.refreshes == 2
    assert len(publisher.batches) == 2


def test_publish_timeout_terminates():
    """A send that outlives the deadline stops the loop; nothing else runs."""
    source = FakeSource()
    publisher = RecordingPublisher(delay=0.3)
    loop = _loop(source, publisher, interval=0.01, timeout=0.05)

    with pytest.raises(PublishTimeoutError):
        loop.run()

    assert loop.ticks == 0
    time.sleep(0.4)
    assert source.refreshes == 1


def test_no_concurrent_publishes_when_ticks_overrun():
    holder = {}

    def on_send(count):
        if count == 4:
            holder["loop"].stop()

    # each send takes longer than the interval
    publisher = RecordingPublisher(delay=0.03, on_send=on_send)
    loop = _loop(FakeSource(), publisher, interval=0.01)
    holder["loop"] = loop
    loop.run()

    assert loop.ticks == 4
    assert publisher.max_active == 1


def test_run_after_termination_refused():
    loop = _loop(FakeSource(fail_on={1}), RecordingPublisher())
    with pytest.raises(SnapshotError):
        loop.run()
    with pytest.raises(RuntimeError):
        loop.run()


class PartialSource(MemoryStatsSource):
    def _read(self):
        return MemorySnapshot({"Buffers": 1, "Cached": 2, "Free": 3})


def test_incomplete_snapshot_terminates():
    publisher = RecordingPublisher()
    loop = _loop(PartialSource(), publisher)

    with pytest.raises(RecordBuildError) as excinfo:
        loop.run()

    assert excinfo.value.stage == "metric records build"
    assert "FreeTotal" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, MissingCounterError)
    assert loop.terminated
    assert publisher.batches == []
