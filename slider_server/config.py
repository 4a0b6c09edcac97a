"""Configuration loading, validation, and defaults."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .types import (
    ConfigError,
    DeployConfig,
    ExportConfig,
    SliderServerConfig,
    SnapshotConfig,
)

CONFIG_FILENAMES = [
    "slider-server.yaml",
    "slider-server.yml",
    "slider-server.json",
    "PlutoDeployment.yaml",
    "PlutoDeployment.yml",
]


def _discover_config() -> Path | None:
    """Search CWD then parent dirs up to home for a config file."""
    cwd = Path.cwd()
    home = Path.home()
    search = cwd
    while True:
        for name in CONFIG_FILENAMES:
            candidate = search / name
            if candidate.is_file():
                return candidate
        if search == home or search == search.parent:
            break
        search = search.parent
    return None


def _section(raw: dict[str, Any], *names: str) -> dict[str, Any]:
    """First present section among ``names`` (accepts the legacy TOML-style keys)."""
    for name in names:
        value = raw.get(name)
        if isinstance(value, dict):
            return value
    return {}


def _str_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, list):
        raise ConfigError(f"'{key}' must be a list of paths, got {value!r}")
    return [str(v) for v in value]


def _build_config(raw: dict[str, Any]) -> DeployConfig:
    """Build a DeployConfig from a raw dict."""
    server_raw = _section(raw, "slider_server", "SliderServer")
    slider_server = SliderServerConfig(
        exclude=_str_list(server_raw.get("exclude"), "slider_server.exclude"),
        port=int(server_raw.get("port", 2345)),
        host=str(server_raw.get("host", "127.0.0.1")),
        simulated_lag=float(server_raw.get("simulated_lag", 0.0)),
        serve_static_export_folder=bool(server_raw.get("serve_static_export_folder", False)),
    )

    export_raw = _section(raw, "export", "Export")
    export = ExportConfig(
        output_dir=export_raw.get("output_dir"),
        exclude=_str_list(export_raw.get("exclude"), "export.exclude"),
        cache_dir=export_raw.get("cache_dir"),
    )

    snapshot_raw = _section(raw, "snapshot")
    snapshot = SnapshotConfig(
        cell_results_key=snapshot_raw.get("cell_results_key", "cell_results"),
        bonds_key=snapshot_raw.get("bonds_key", "bonds"),
    )

    return DeployConfig(
        slider_server=slider_server,
        export=export,
        snapshot=snapshot,
        engine=raw.get("engine", "") or "",
    )


def validate_config(config: DeployConfig) -> list[str]:
    """Validate a config. Returns list of error strings (empty = valid)."""
    errors: list[str] = []

    port = config.slider_server.port
    if not 0 < port < 65536:
        errors.append(f"slider_server.port must be in 1..65535, got {port}")

    if config.slider_server.simulated_lag < 0:
        errors.append(
            f"slider_server.simulated_lag must be >= 0, got {config.slider_server.simulated_lag}"
        )

    snap = config.snapshot
    if not snap.cell_results_key or not snap.bonds_key:
        errors.append("snapshot.cell_results_key and snapshot.bonds_key must be non-empty")
    elif snap.cell_results_key == snap.bonds_key:
        errors.append(
            f"snapshot.cell_results_key and snapshot.bonds_key must differ "
            f"(both '{snap.bonds_key}')"
        )

    if config.engine:
        module_part, _, attr = config.engine.partition(":")
        if not module_part or not attr:
            errors.append(f"engine must look like 'module:attribute', got '{config.engine}'")

    return errors


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
) -> DeployConfig:
    """Load config from dict, explicit path, or auto-discover."""
    if config_dict is not None:
        return _build_config(config_dict)

    if config_path is not None:
        path = Path(config_path)
    else:
        path = _discover_config()

    if path is None:
        return _build_config({})

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    text = path.read_text()
    try:
        if path.suffix == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")

    return _build_config(raw)
