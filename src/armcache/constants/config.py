"""Tool configuration defaults and filenames."""

from __future__ import annotations

from pathlib import Path

TOOL_CONFIG_FILENAME: str = "armcache.yaml"
DEFAULT_CACHE_ROOT: Path = Path("~/.arm/cache")
DEFAULT_LOCK_TIMEOUT_SECONDS: float = 30.0
DEFAULT_LOG_LEVEL: str = "INFO"
VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR"})
TOOL_CONFIG_KEYS: frozenset[str] = frozenset({"cache_root", "lock_timeout_seconds", "log_level"})
