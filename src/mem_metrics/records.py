"""Metric record construction and dimension tagging."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .collector.base import COUNTER_NAMES, MemorySnapshot

NAMESPACE = "Memory"
UNIT_BYTES = "Bytes"


class MissingCounterError(KeyError):
    """A snapshot lacks one of the published counters."""


@dataclass(frozen=True)
class Dimension:
    """A named tag identifying where a metric came from."""

    name: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"Name": self.name, "Value": self.value}


@dataclass(frozen=True)
class MetricRecord:
    """A single data point ready to publish."""

    name: str
    value: float
    unit: str
    timestamp: datetime
    dimensions: tuple[Dimension, ...]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ``MetricData`` entry shape used by PutMetricData."""
        return {
            "MetricName": self.name,
            "Value": self.value,
            "Unit": self.unit,
            "Timestamp": self.timestamp,
            "Dimensions": [d.to_dict() for d in self.dimensions],
        }


@dataclass(frozen=True)
class PublishBatch:
    """All records produced by one tick."""

    records: tuple[MetricRecord, ...]
    namespace: str = NAMESPACE

    def __len__(self) -> int:
        return len(self.records)


def build_dimensions(instance_id: str, instance_type: str, hostname: str) -> tuple[Dimension, ...]:
    """Return the static dimension set for this process run."""
    return (
        Dimension("InstanceID", instance_id),
        Dimension("InstanceType", instance_type),
        Dimension("Hostname", hostname),
    )


def build_records(
    snapshot: MemorySnapshot,
    now: datetime,
    dims: tuple[Dimension, ...],
) -> tuple[MetricRecord, ...]:
    """Build one record per published counter, in publish order.

    Every record shares *now* and the same *dims* object. Raises
    :class:`MissingCounterError` if *snapshot* lacks a counter.
    """
    records = []
    for name in COUNTER_NAMES:
        if name not in snapshot:
            raise MissingCounterError(name)
        records.append(MetricRecord(
            name=name,
            value=float(snapshot[name]),
            unit=UNIT_BYTES,
            timestamp=now,
            dimensions=dims,
        ))
    return tuple(records)


def build_batch(
    snapshot: MemorySnapshot,
    now: datetime,
    dims: tuple[Dimension, ...],
) -> PublishBatch:
    return PublishBatch(records=build_records(snapshot, now, dims))
