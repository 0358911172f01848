"""Startup wiring: resolve identity once and assemble the sampling loop."""

from __future__ import annotations

import logging
from typing import Callable

import boto3
from botocore.exceptions import BotoCoreError

from .collector.base import MemoryStatsSource
from .collector.memory import PsutilMemorySource
from .config import MemMetricsConfig
from .errors import StartupError
from .exporter.base import PUBLISH_TIMEOUT_SECONDS, BasePublisher
from .identity import Ec2IdentityResolver, IdentityError, InstanceIdentity, get_hostname
from .loop import SamplingLoop
from .records import build_dimensions

logger = logging.getLogger(__name__)


def _make_publisher(
    cfg: MemMetricsConfig,
    identity: InstanceIdentity,
    session_factory: Callable[[], boto3.session.Session],
) -> BasePublisher:
    if cfg.mode == "local":
        from .exporter.local import LocalPublisher

        try:
            return LocalPublisher(cfg.local_exporter)
        except OSError as exc:
            raise StartupError("local output open", exc) from exc

    from .exporter.cloudwatch import CloudWatchPublisher, make_client

    try:
        session = session_factory()
        client = make_client(
            session,
            region=cfg.cloudwatch.region or identity.region,
            endpoint_url=cfg.cloudwatch.endpoint_url or None,
            timeout=PUBLISH_TIMEOUT_SECONDS,
        )
    except (BotoCoreError, ValueError) as exc:
        raise StartupError("AWS session create", exc) from exc
    return CloudWatchPublisher(client)


def build_loop(
    cfg: MemMetricsConfig,
    hostname_fn: Callable[[], str] = get_hostname,
    resolver: Ec2IdentityResolver | None = None,
    session_factory: Callable[[], boto3.session.Session] = boto3.session.Session,
    source: MemoryStatsSource | None = None,
) -> SamplingLoop:
    """Resolve everything the loop needs, failing fast on the first error.

    Collaborators are injectable so tests can run without EC2 or AWS.
    """
    try:
        hostname = hostname_fn()
    except OSError as exc:
        raise StartupError("hostname get", exc) from exc

    if resolver is None:
        resolver = Ec2IdentityResolver(
            endpoint=cfg.identity.metadata_endpoint,
            timeout=cfg.identity.timeout_seconds,
        )
    try:
        identity = resolver.resolve()
    except IdentityError as exc:
        raise StartupError("ec2 instance metadata fetch", exc) from exc

    publisher = _make_publisher(cfg, identity, session_factory)

    if source is None:
        source = PsutilMemorySource()
    try:
        source.refresh()
    except Exception as exc:
        publisher.shutdown()
        raise StartupError("memory info fetch", exc) from exc

    dims = build_dimensions(identity.instance_id, identity.instance_type, hostname)
    logger.info("Publishing as %s", ", ".join(f"{d.name}={d.value}" for d in dims))
    return SamplingLoop(source, publisher, dims)


def run(loop: SamplingLoop) -> None:
    """Run *loop* until it stops or fails, then release the publisher."""
    try:
        loop.run()
    finally:
        loop.publisher.shutdown()
