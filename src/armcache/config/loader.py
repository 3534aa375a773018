"""Load ``armcache.yaml`` into a :class:`ToolConfig`."""

from __future__ import annotations

import difflib
from pathlib import Path
from typing import Any

import yaml

from armcache.config.model import ToolConfig
from armcache.constants.config import (
    DEFAULT_CACHE_ROOT,
    DEFAULT_LOCK_TIMEOUT_SECONDS,
    DEFAULT_LOG_LEVEL,
    TOOL_CONFIG_FILENAME,
    TOOL_CONFIG_KEYS,
    VALID_LOG_LEVELS,
)
from armcache.exceptions import ConfigError


def load_tool_config(root: Path, config_path: Path | None = None) -> ToolConfig:
    """Load tool config from ``armcache.yaml`` under ``root`` or an explicit path.

    A missing implicit file yields defaults; a missing explicit file is an error.
    """
    path = config_path.expanduser().resolve() if config_path else (root.resolve() / TOOL_CONFIG_FILENAME)
    if not path.exists():
        if config_path is not None:
            raise ConfigError(f"Config file not found: {path}")
        return ToolConfig()

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML config file at {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file at {path} must be a YAML mapping")

    for key in sorted(str(item) for item in raw):
        if key not in TOOL_CONFIG_KEYS:
            hint = _suggest_key(key, TOOL_CONFIG_KEYS)
            raise ConfigError(f"unknown config key `{key}`" + (f"; {hint}" if hint else ""))

    return ToolConfig(
        cache_root=_cache_root(raw.get("cache_root", str(DEFAULT_CACHE_ROOT)), base=path.parent),
        lock_timeout_seconds=_lock_timeout(raw.get("lock_timeout_seconds", DEFAULT_LOCK_TIMEOUT_SECONDS)),
        log_level=_log_level(raw.get("log_level", DEFAULT_LOG_LEVEL)),
    )


def _cache_root(value: Any, *, base: Path) -> Path:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError("cache_root must be a non-empty string")
    cache_root = Path(value.strip()).expanduser()
    if not cache_root.is_absolute():
        cache_root = base / cache_root
    return cache_root


def _lock_timeout(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError("lock_timeout_seconds must be a positive number")
    return float(value)


def _log_level(value: Any) -> str:
    if not isinstance(value, str) or value.upper() not in VALID_LOG_LEVELS:
        raise ConfigError(f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got {value!r}")
    return value.upper()


def _suggest_key(unknown: str, allowed: frozenset[str]) -> str:
    """Return a 'did you mean ...' hint for a close key match, or empty string."""
    matches = difflib.get_close_matches(unknown, sorted(allowed), n=1, cutoff=0.6)
    if matches:
        return f"did you mean `{matches[0]}`?"
    return ""
