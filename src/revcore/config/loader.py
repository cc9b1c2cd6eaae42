"""YAML configuration loader with env var interpolation."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml

from revcore.config.defaults import CONFIG_FILE_NAMES, CONFIG_SEARCH_PATHS
from revcore.config.models import RevCoreConfig

_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)(?::([^}]*))?\}")


def _interpolate_env(value: str) -> str:
    """Replace ${VAR} or ${VAR:default} with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        default = match.group(2)
        return os.environ.get(match.group(1), default if default is not None else "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _walk_and_interpolate(obj: object) -> object:
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(item) for item in obj]
    return obj


def find_config_file(explicit_path: str | Path | None = None) -> Path | None:
    """Locate a revcore config file, returning the first found or None."""
    if explicit_path is not None:
        p = Path(explicit_path)
        return p if p.is_file() else None

    for search_dir in CONFIG_SEARCH_PATHS:
        for name in CONFIG_FILE_NAMES:
            candidate = search_dir / name
            if candidate.is_file():
                return candidate
    return None


def load_config(path: str | Path | None = None) -> RevCoreConfig:
    """Load and validate configuration, falling back to defaults.

    Hex strings such as ``"0x140000000"`` are accepted for integer fields.
    """
    config_path = find_config_file(path)
    if config_path is None:
        return RevCoreConfig()

    raw = yaml.safe_load(config_path.read_text()) or {}
    interpolated = _walk_and_interpolate(raw)
    return RevCoreConfig.model_validate(_coerce_hex(interpolated))


def _coerce_hex(obj: object) -> object:
    if isinstance(obj, str) and obj.lower().startswith("0x"):
        try:
            return int(obj, 16)
        except ValueError:
            return obj
    if isinstance(obj, dict):
        return {k: _coerce_hex(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_coerce_hex(item) for item in obj]
    return obj
