from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

try:
    import tomllib as _toml
except ModuleNotFoundError:  # pragma: no cover - Python <=3.10
    import tomli as _toml  # type: ignore[no-redef]

import yaml


class ConfigError(ValueError):
    """Invalid or unsupported configuration file."""


def _as_mapping(path: Path, payload: object) -> dict[str, Any]:
    if not isinstance(payload, Mapping):
        raise ConfigError(f"config must be a mapping: {path}")
    return {str(key): value for key, value in payload.items()}


def load_config(path: str | Path) -> dict[str, Any]:
    cfg_path = Path(path)
    if not cfg_path.exists() or not cfg_path.is_file():
        raise ConfigError(f"config file does not exist: {cfg_path}")

    suffix = cfg_path.suffix.lower()
    try:
        if suffix in {".toml", ""}:
            with cfg_path.open("rb") as fp:
                return _as_mapping(cfg_path, _toml.load(fp))

        if suffix in {".yaml", ".yml"}:
            with cfg_path.open("r", encoding="utf-8") as fp:
                return _as_mapping(cfg_path, yaml.safe_load(fp))

        if suffix == ".json":
            with cfg_path.open("r", encoding="utf-8") as fp:
                return _as_mapping(cfg_path, json.load(fp))
    except (_toml.TOMLDecodeError, yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"config file could not be parsed: {cfg_path}: {exc}") from exc

    raise ConfigError(f"unsupported config extension: {suffix or '<none>'}")
