"""CloudWatch publisher - pushes memory metrics with PutMetricData."""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError

from ..records import PublishBatch
from .base import PUBLISH_TIMEOUT_SECONDS, BasePublisher, SendAttempt

logger = logging.getLogger(__name__)

AUTH_ERROR_CODES = frozenset({
    "AccessDenied",
    "AccessDeniedException",
    "ExpiredToken",
    "ExpiredTokenException",
    "InvalidClientTokenId",
    "SignatureDoesNotMatch",
    "UnrecognizedClientException",
})


def make_client(
    session: boto3.session.Session,
    region: str,
    endpoint_url: str | None = None,
    timeout: float = PUBLISH_TIMEOUT_SECONDS,
) -> Any:
    """Create a CloudWatch client that never retries and never outlives *timeout*."""
    config = Config(
        region_name=region,
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )
    return session.client("cloudwatch", endpoint_url=endpoint_url, config=config)


class CloudWatchPublisher(BasePublisher):
    """Sends each batch as one ``PutMetricData`` request.

    The client is built by the caller (see :func:`make_client`) so a stubbed
    client can be passed in tests.
    """

    stage = "CloudWatch metrics put"

    def __init__(self, client: Any) -> None:
        super().__init__()
        self._client = client
        logger.info("CloudWatchPublisher initialized (region=%s)", client.meta.region_name)

    def _send(self, batch: PublishBatch, timeout: float, attempt: SendAttempt) -> None:
        self._client.put_metric_data(
            Namespace=batch.namespace,
            MetricData=[r.to_dict() for r in batch.records],
        )

    def classify(self, exc: BaseException) -> str:
        if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
            return "auth"
        if isinstance(exc, ClientError):
            code = exc.response.get("Error", {}).get("Code", "")
            return "auth" if code in AUTH_ERROR_CODES else "rejected"
        return "transport"

    def shutdown(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            close()
        logger.info("CloudWatchPublisher shut down")
