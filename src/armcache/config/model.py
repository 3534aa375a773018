"""Resolved tool configuration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from armcache.constants.config import DEFAULT_CACHE_ROOT, DEFAULT_LOCK_TIMEOUT_SECONDS, DEFAULT_LOG_LEVEL


@dataclass(frozen=True)
class ToolConfig:
    """Settings for one ``armcache`` invocation.

    ``cache_root`` is already user-expanded; nothing downstream consults the
    home directory on its own.
    """

    cache_root: Path = DEFAULT_CACHE_ROOT.expanduser()
    lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS
    log_level: str = DEFAULT_LOG_LEVEL
