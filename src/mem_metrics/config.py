"""Configuration loading for mem_metrics.

Only ambient settings live here. The sampling interval, the publish
timeout, the namespace and the metric set are fixed in code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .identity import DEFAULT_METADATA_ENDPOINT

MODES = ("cloudwatch", "local")


@dataclass
class IdentityConfig:
    """Instance metadata service settings."""

    metadata_endpoint: str = DEFAULT_METADATA_ENDPOINT
    timeout_seconds: float = 2.0


@dataclass
class CloudWatchConfig:
    """CloudWatch client settings."""

    region: str = ""
    endpoint_url: str = ""


@dataclass
class LocalExporterConfig:
    """Local file publisher settings."""

    output_dir: str = "./metrics_data"


@dataclass
class MemMetricsConfig:
    """Top-level mem_metrics configuration."""

    mode: str = "cloudwatch"
    log_level: str = "INFO"
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    cloudwatch: CloudWatchConfig = field(default_factory=CloudWatchConfig)
    local_exporter: LocalExporterConfig = field(default_factory=LocalExporterConfig)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides using MEM_METRICS_ prefix."""
    env_map = {
        "MEM_METRICS_MODE": ("mode",),
        "MEM_METRICS_LOG_LEVEL": ("log_level",),
        "MEM_METRICS_METADATA_ENDPOINT": ("identity", "metadata_endpoint"),
        "MEM_METRICS_CLOUDWATCH_REGION": ("cloudwatch", "region"),
        "MEM_METRICS_CLOUDWATCH_ENDPOINT": ("cloudwatch", "endpoint_url"),
        "MEM_METRICS_LOCAL_OUTPUT_DIR": ("local_exporter", "output_dir"),
    }
    for env_key, path in env_map.items():
        value = os.environ.get(env_key)
        if value is not None:
            obj = data
            for part in path[:-1]:
                obj = obj.setdefault(part, {})
            obj[path[-1]] = value
    return data


def _section(cls: type, raw: Any) -> Any:
    if not isinstance(raw, dict):
        raw = {}
    return cls(**{k: v for k, v in raw.items() if k in cls.__dataclass_fields__})


def _dict_to_config(data: dict[str, Any]) -> MemMetricsConfig:
    """Convert a raw dictionary to a MemMetricsConfig dataclass."""
    cfg = MemMetricsConfig(
        mode=str(data.get("mode", "cloudwatch")).lower(),
        log_level=str(data.get("log_level", "INFO")).upper(),
        identity=_section(IdentityConfig, data.get("identity")),
        cloudwatch=_section(CloudWatchConfig, data.get("cloudwatch")),
        local_exporter=_section(LocalExporterConfig, data.get("local_exporter")),
    )
    if cfg.mode not in MODES:
        raise ValueError(f"unknown mode {cfg.mode!r}, expected one of {', '.join(MODES)}")
    cfg.identity.timeout_seconds = float(cfg.identity.timeout_seconds)
    return cfg


def load_config(path: str | Path | None = None) -> MemMetricsConfig:
    """Load configuration from a YAML file with environment overrides.

    Looks for ``mem_metrics.yaml`` in the current directory if *path* is None.
    A missing file yields the defaults.
    """
    data: dict[str, Any] = {}
    if path is None:
        path = Path("mem_metrics.yaml")
    else:
        path = Path(path)

    if path.exists():
        with open(path, encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh)
            if isinstance(loaded, dict):
                data = loaded

    data = _apply_env_overrides(data)
    return _dict_to_config(data)
