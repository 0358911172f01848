"""Memory statistics source backed by psutil."""

from __future__ import annotations

import psutil

from .base import BUFFERS, CACHED, FREE, FREE_TOTAL, MemorySnapshot, MemoryStatsSource


class PsutilMemorySource(MemoryStatsSource):
    """Reads system-wide memory counters with :func:`psutil.virtual_memory`.

    ``buffers`` and ``cached`` are only reported on Linux and the BSDs; on
    other platforms they read as zero.
    """

    def _read(self) -> MemorySnapshot:
        mem = psutil.virtual_memory()
        buffers = int(getattr(mem, "buffers", 0))
        cached = int(getattr(mem, "cached", 0))
        free = int(mem.free)

        return MemorySnapshot({
            BUFFERS: buffers,
            CACHED: cached,
            FREE: free,
            FREE_TOTAL: free + buffers + cached,
        })
