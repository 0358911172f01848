"""Base interface for memory statistics sources."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

BUFFERS = "Buffers"
CACHED = "Cached"
FREE = "Free"
FREE_TOTAL = "FreeTotal"

# Publish order of the counters.
COUNTER_NAMES: tuple[str, ...] = (BUFFERS, CACHED, FREE, FREE_TOTAL)


@dataclass(frozen=True)
class MemorySnapshot:
    """Point-in-time byte counts keyed by counter name."""

    counters: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name, value in self.counters.items():
            if value < 0:
                raise ValueError(f"counter {name} is negative: {value}")
        # freeze a private copy so callers cannot mutate it afterwards
        object.__setattr__(self, "counters", MappingProxyType(dict(self.counters)))

    def __getitem__(self, name: str) -> int:
        return self.counters[name]

    def __contains__(self, name: object) -> bool:
        return name in self.counters

    def to_dict(self) -> dict[str, int]:
        return dict(self.counters)


class MemoryStatsSource(abc.ABC):
    """Abstract source of host memory counters.

    :meth:`refresh` must be called before the accessors; each call replaces
    the previous snapshot wholesale.
    """

    def __init__(self) -> None:
        self._snapshot: MemorySnapshot | None = None

    @abc.abstractmethod
    def _read(self) -> MemorySnapshot:
        """Read the counters from the operating system."""

    def refresh(self) -> MemorySnapshot:
        """Take a fresh snapshot and make it current."""
        self._snapshot = self._read()
        return self._snapshot

    def snapshot(self) -> MemorySnapshot:
        if self._snapshot is None:
            raise RuntimeError("refresh() has not been called")
        return self._snapshot

    def buffers(self) -> int:
        return self.snapshot()[BUFFERS]

    def cached(self) -> int:
        return self.snapshot()[CACHED]

    def free(self) -> int:
        return self.snapshot()[FREE]

    def free_total(self) -> int:
        """Free plus reclaimable (buffers and page cache) bytes."""
        return self.snapshot()[FREE_TOTAL]
