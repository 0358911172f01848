"""Fixed-interval sampling loop."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Iterator

from .collector.base import MemoryStatsSource
from .errors import MemMetricsError, RecordBuildError, SnapshotError
from .exporter.base import PUBLISH_TIMEOUT_SECONDS, BasePublisher
from .records import Dimension, MissingCounterError, PublishBatch, build_batch

logger = logging.getLogger(__name__)

SAMPLE_INTERVAL_SECONDS = 60.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Ticker:
    """Yields once per *interval*, measured from when iteration starts.

    Fire times do not drift with the time spent between yields. When the
    consumer overruns, one tick fires immediately on return and any further
    missed slots are dropped, after which the original cadence resumes.
    Iteration ends when *stop* is set.
    """

    def __init__(
        self,
        interval: float,
        stop: threading.Event | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._interval = interval
        self._stop = stop if stop is not None else threading.Event()
        self._monotonic = monotonic

    def __iter__(self) -> Iterator[int]:
        next_fire = self._monotonic() + self._interval
        overdue = False
        count = 0
        while True:
            if not overdue:
                delay = next_fire - self._monotonic()
                if delay > 0 and self._stop.wait(delay):
                    return
                next_fire += self._interval
            if self._stop.is_set():
                return
            count += 1
            yield count
            now = self._monotonic()
            overdue = next_fire <= now
            while next_fire <= now:
                next_fire += self._interval


class SamplingLoop:
    """Samples memory and publishes it on every tick until something fails.

    There is no recovery: the first snapshot or publish error ends
    :meth:`run` by raising it, and the process is expected to exit and be
    restarted by its supervisor.
    """

    def __init__(
        self,
        source: MemoryStatsSource,
        publisher: BasePublisher,
        dimensions: tuple[Dimension, ...],
        interval: float = SAMPLE_INTERVAL_SECONDS,
        timeout: float = PUBLISH_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._source = source
        self._publisher = publisher
        self._dimensions = dimensions
        self._interval = interval
        self._timeout = timeout
        self._clock = clock
        self._stop = threading.Event()
        self.ticks = 0
        self.error: MemMetricsError | None = None

    @property
    def publisher(self) -> BasePublisher:
        return self._publisher

    @property
    def dimensions(self) -> tuple[Dimension, ...]:
        return self._dimensions

    @property
    def terminated(self) -> bool:
        return self.error is not None

    def tick(self) -> PublishBatch:
        """Run one refresh, build and publish cycle."""
        try:
            snapshot = self._source.refresh()
        except Exception as exc:
            raise SnapshotError("memory info update", exc) from exc

        try:
            batch = build_batch(snapshot, self._clock(), self._dimensions)
        except MissingCounterError as exc:
            raise RecordBuildError("metric records build", f"snapshot lacks counter {exc}") from exc
        self._publisher.publish(batch, self._timeout)
        self.ticks += 1
        logger.debug("Tick %d published %d records", self.ticks, len(batch))
        return batch

    def run(self) -> None:
        """Tick forever; returns only after :meth:`stop`, raises on failure."""
        if self.terminated:
            raise RuntimeError("loop already terminated") from self.error
        logger.info(
            "SamplingLoop started (interval=%.0fs, timeout=%.0fs)",
            self._interval,
            self._timeout,
        )
        try:
            for _ in Ticker(self._interval, self._stop):
                self.tick()
        except MemMetricsError as exc:
            self.error = exc
            logger.error("SamplingLoop terminated after %d ticks: %s", self.ticks, exc)
            raise
        logger.info("SamplingLoop stopped after %d ticks", self.ticks)

    def stop(self) -> None:
        """Stop before the next tick; an in-progress tick finishes first."""
        self._stop.set()
