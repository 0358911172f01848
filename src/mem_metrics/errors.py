"""Error hierarchy for mem_metrics.

Every error carries a short ``stage`` label naming the step that produced
it. The CLI prints ``"<stage>: <cause>"`` and exits; nothing in the package
recovers from these.
"""

from __future__ import annotations


class MemMetricsError(Exception):
    """Base class for all fatal agent errors."""

    def __init__(self, stage: str, cause: BaseException | str) -> None:
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause


class StartupError(MemMetricsError):
    """Hostname, session, identity or memory source setup failed."""


class SnapshotError(MemMetricsError):
    """Reading the memory counters on a tick failed."""


class RecordBuildError(MemMetricsError):
    """A snapshot could not be turned into a batch of records."""


class PublishError(MemMetricsError):
    """Sending a batch to the metrics service failed.

    ``kind`` is one of ``"transport"``, ``"auth"``, ``"rejected"`` or
    ``"timeout"`` and is informational only.
    """

    def __init__(
        self,
        stage: str,
        cause: BaseException | str,
        kind: str = "transport",
    ) -> None:
        super().__init__(stage, cause)
        self.kind = kind


class PublishTimeoutError(PublishError):
    """The publish deadline elapsed before the service acknowledged."""

    def __init__(self, stage: str, timeout: float) -> None:
        super().__init__(stage, f"deadline of {timeout:g}s exceeded", kind="timeout")
        self.timeout = timeout
