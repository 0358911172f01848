"""Local file publisher - writes metric batches to JSONL files."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import IO

from ..config import LocalExporterConfig
from ..errors import PublishError
from ..records import PublishBatch
from .base import BasePublisher, SendAttempt

logger = logging.getLogger(__name__)


class LocalPublisher(BasePublisher):
    """Appends each record of a batch as one JSON line.

    One file per UTC day is created inside the configured *output_dir*.
    """

    stage = "local metrics write"

    def __init__(self, config: LocalExporterConfig) -> None:
        super().__init__()
        self._output_dir = Path(config.output_dir)
        self._output_dir.mkdir(parents=True, exist_ok=True)
        self._fh: IO[str] | None = None
        self._current_date: str | None = None
        self._closed = False
        logger.info("LocalPublisher initialized → %s", self._output_dir)

    def _ensure_file(self) -> IO[str]:
        if self._closed:
            raise PublishError(self.stage, "publisher is shut down")
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        if self._current_date != today or self._fh is None:
            if self._fh is not None:
                self._fh.close()
            filepath = self._output_dir / f"metrics-{today}.jsonl"
            self._fh = open(filepath, "a", encoding="utf-8")  # noqa: SIM115
            self._current_date = today
        return self._fh

    def _send(self, batch: PublishBatch, timeout: float, attempt: SendAttempt) -> None:
        lines = []
        for r in batch.records:
            lines.append(json.dumps({
                "namespace": batch.namespace,
                "name": r.name,
                "value": r.value,
                "unit": r.unit,
                "timestamp": r.timestamp.isoformat(),
                "dimensions": {d.name: d.value for d in r.dimensions},
            }) + "\n")
        # the batch lands whole and only if the deadline has not claimed it
        with self._lock:
            if attempt.abandoned:
                return
            fh = self._ensure_file()
            fh.write("".join(lines))
            fh.flush()
            attempt.committed = True

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            if self._fh is not None:
                self._fh.close()
                self._fh = None
        logger.info("LocalPublisher shut down")
