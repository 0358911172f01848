"""Base interface for publishers that send metric batches under a deadline."""

from __future__ import annotations

import abc
import logging
import threading

from ..errors import PublishError, PublishTimeoutError
from ..records import PublishBatch

logger = logging.getLogger(__name__)

PUBLISH_TIMEOUT_SECONDS = 30.0


class SendAttempt:
    """State of one :meth:`BasePublisher.publish` call.

    Both fields are only changed while holding the publisher's ``_lock``.
    Once ``abandoned`` is set the send must not deliver anything; a sink
    that can deliver atomically sets ``committed`` under the same lock.
    """

    def __init__(self) -> None:
        self.abandoned = False
        self.committed = False


class BasePublisher(abc.ABC):
    """Abstract publisher with a wall-clock bound on every send.

    Subclasses implement :meth:`_send`, which performs exactly one request.
    :meth:`publish` runs it on a daemon worker thread and stops waiting once
    the deadline passes; an abandoned send is never reported as delivered
    and does not keep the process alive.
    """

    stage = "metrics publish"

    def __init__(self) -> None:
        self._inflight: threading.Thread | None = None
        self._lock = threading.Lock()

    @abc.abstractmethod
    def _send(self, batch: PublishBatch, timeout: float, attempt: SendAttempt) -> None:
        """Send *batch* in a single request."""

    def classify(self, exc: BaseException) -> str:
        """Return the failure kind for *exc*, used only for logging."""
        return "transport"

    def _abandon(self, attempt: SendAttempt) -> bool:
        """Mark *attempt* abandoned unless it already committed."""
        with self._lock:
            if not attempt.committed:
                attempt.abandoned = True
            return attempt.abandoned

    def publish(self, batch: PublishBatch, timeout: float = PUBLISH_TIMEOUT_SECONDS) -> None:
        """Send *batch*, raising :class:`PublishError` on any failure."""
        if self._inflight is not None and self._inflight.is_alive():
            raise PublishError(self.stage, "previous publish still in flight")

        attempt = SendAttempt()
        done = threading.Event()
        outcome: dict[str, BaseException] = {}

        def _worker() -> None:
            try:
                self._send(batch, timeout, attempt)
            except BaseException as exc:  # handed back to the caller below
                outcome["error"] = exc
            finally:
                done.set()

        thread = threading.Thread(target=_worker, name="publish", daemon=True)
        self._inflight = thread
        thread.start()

        if not done.wait(timeout):
            if self._abandon(attempt):
                logger.error("Publish of %d records abandoned after %.1fs", len(batch), timeout)
                raise PublishTimeoutError(self.stage, timeout)
            # delivered right at the deadline; only the return is left
            done.wait()
        self._inflight = None

        error = outcome.get("error")
        if error is None:
            logger.debug("Published %d records to %s", len(batch), batch.namespace)
            return
        if isinstance(error, PublishError):
            raise error
        kind = self.classify(error)
        logger.error("Publish failed (%s): %s", kind, error)
        raise PublishError(self.stage, error, kind=kind) from error

    def shutdown(self) -> None:
        """Release resources."""
