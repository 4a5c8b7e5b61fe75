"""Configuration loading and validation for cutbatch."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Optional, Tuple

import yaml

from .core.cancellation import CancellationToken
from .core.task_runner import BatchConfig


PROJECT_ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_PATH = CONFIG_DIR / "config.yaml"
ENV_CONFIG_PATH = "CUTBATCH_CONFIG"

BATCH_MODES = ("sequential", "image", "audio")


DEFAULT_CONFIG: Dict[str, Any] = {
    "batch": {
        "max_concurrent": 3,
        "max_retries": 2,
        "retry_delay_seconds": 1.0,
        "mode": "sequential",
    },
    "producers": {
        "base_url": "http://localhost:8080",
        "timeout": 120,
        "image": {"route": "/v1/images"},
        "audio": {"route": "/v1/speech"},
    },
    "paths": {
        "units": "data/units.yaml",
        "summaries": "data/summaries",
        "logs": "logs",
    },
    "logging": {
        "console_level": "INFO",
        "file_level": "DEBUG",
        "json_logs": False,
        "color": True,
    },
}


@dataclass(frozen=True)
class ConfigLoadResult:
    """Container for the merged configuration."""

    config: Dict[str, Any]
    sources: Tuple[str, ...]


def _ensure_default_config(path: Path) -> None:
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with tmp.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(DEFAULT_CONFIG, handle, sort_keys=True)
    tmp.replace(path)


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, MutableMapping):
        raise ValueError(f"Configuration file {path} must contain a mapping at the root")
    return dict(data)


def _deep_merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = dict(base)
    for key, value in overlay.items():
        if (
            key in merged
            and isinstance(merged[key], MutableMapping)
            and isinstance(value, MutableMapping)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _resolve_path(base_dir: Path, value: str) -> Path:
    path = Path(value)
    if path.is_absolute():
        return path
    return (base_dir / value).resolve()


def _apply_path_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    paths = dict(config.get("paths", {}))
    for key, rel_path in paths.items():
        if isinstance(rel_path, str):
            paths[key] = str(_resolve_path(PROJECT_ROOT, rel_path))
    config["paths"] = paths
    return config


def _collect_sources(config_path: str | Path | None) -> Iterable[Tuple[Path, bool]]:
    yield CONFIG_PATH, True
    env_path = os.getenv(ENV_CONFIG_PATH)
    if env_path:
        yield Path(env_path), False
    if config_path:
        yield Path(config_path), False


def _validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    batch = config.get("batch")
    if not isinstance(batch, Mapping):
        raise ValueError("Configuration must define a 'batch' section")
    if int(batch.get("max_concurrent", 0)) < 1:
        raise ValueError("batch.max_concurrent must be >= 1")
    if int(batch.get("max_retries", -1)) < 0:
        raise ValueError("batch.max_retries must be >= 0")
    if float(batch.get("retry_delay_seconds", -1)) < 0:
        raise ValueError("batch.retry_delay_seconds must be >= 0")
    if batch.get("mode") not in BATCH_MODES:
        raise ValueError(f"batch.mode must be one of {', '.join(BATCH_MODES)}")
    timeout = config.get("producers", {}).get("timeout")
    if timeout is None or float(timeout) <= 0:
        raise ValueError("producers.timeout must be positive")
    return config


def load_config(
    config_path: str | Path | None = None,
    *,
    include_sources: bool = False,
) -> ConfigLoadResult | Dict[str, Any]:
    """Load and validate configuration settings.

    Defaults are overlaid by ``config/config.yaml`` (written on first use),
    then the file named by ``CUTBATCH_CONFIG``, then ``config_path``.
    """

    config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
    sources: list[str] = []

    for path, required in _collect_sources(config_path):
        if required:
            _ensure_default_config(path)
        elif not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        data = _load_yaml(path)
        config = _deep_merge(config, data)
        sources.append(str(path.resolve()))

    config = _apply_path_defaults(config)
    config = _validate_config(config)

    result = ConfigLoadResult(config=config, sources=tuple(sources))
    if include_sources:
        return result
    return result.config


def batch_config_from_mapping(
    config: Mapping[str, Any],
    cancellation: Optional[CancellationToken] = None,
) -> BatchConfig:
    batch = config.get("batch", {})
    defaults = DEFAULT_CONFIG["batch"]
    return BatchConfig(
        max_concurrent=int(batch.get("max_concurrent", defaults["max_concurrent"])),
        max_retries=int(batch.get("max_retries", defaults["max_retries"])),
        retry_delay=float(batch.get("retry_delay_seconds", defaults["retry_delay_seconds"])),
        cancellation=cancellation,
    )


__all__ = ["BATCH_MODES", "DEFAULT_CONFIG", "ConfigLoadResult", "batch_config_from_mapping", "load_config"]
