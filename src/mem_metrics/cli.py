"""CLI interface for mem_metrics."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys

from . import __version__
from .config import load_config
from .errors import MemMetricsError, StartupError


def _cmd_run(args: argparse.Namespace) -> None:
    """Start the agent; returns only when stopped by a signal."""
    cfg = load_config(args.config)
    logging.getLogger().setLevel(cfg.log_level)

    from .app import build_loop, run

    loop = build_loop(cfg)

    def _handle_signal(_sig: int, _frame: object) -> None:
        loop.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    run(loop)


def _cmd_snapshot(_args: argparse.Namespace) -> None:
    """Print the current memory counters as the batch that would be sent."""
    from datetime import datetime, timezone

    from .collector.memory import PsutilMemorySource
    from .records import build_batch

    source = PsutilMemorySource()
    try:
        snapshot = source.refresh()
    except Exception as exc:
        raise StartupError("memory info fetch", exc) from exc

    batch = build_batch(snapshot, datetime.now(timezone.utc), ())
    out = {
        "namespace": batch.namespace,
        "metrics": [
            {**r.to_dict(), "Timestamp": r.timestamp.isoformat()}
            for r in batch.records
        ],
    }
    print(json.dumps(out, indent=2))


def _cmd_version(_args: argparse.Namespace) -> None:
    print(f"mem_metrics {__version__}")


def main(argv: list[str] | None = None) -> None:
    """Entry point for the mem-metrics CLI."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(
        prog="mem-metrics",
        description="Publish host memory statistics as CloudWatch custom metrics",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to mem_metrics.yaml")
    sub = parser.add_subparsers(dest="command")

    run_p = sub.add_parser("run", help="Sample and publish memory metrics every minute")
    run_p.set_defaults(func=_cmd_run)

    snap_p = sub.add_parser("snapshot", help="Print one memory sample without publishing")
    snap_p.set_defaults(func=_cmd_snapshot)

    ver_p = sub.add_parser("version", help="Print version")
    ver_p.set_defaults(func=_cmd_version)

    args = parser.parse_args(argv)
    func = getattr(args, "func", _cmd_run)

    try:
        func(args)
    except (MemMetricsError, ValueError) as exc:
        print(exc, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
