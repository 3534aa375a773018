"""Shared exception hierarchy for armcache."""

from __future__ import annotations

from .base import ArmCacheError
from .cache import (
    CacheCorruptError,
    CacheIOError,
    CacheNotFoundError,
    IndexNotFoundError,
    InvalidInputError,
    LockTimeoutError,
)
from .config import ConfigError

__all__ = [
    "ArmCacheError",
    "CacheCorruptError",
    "CacheIOError",
    "CacheNotFoundError",
    "ConfigError",
    "IndexNotFoundError",
    "InvalidInputError",
    "LockTimeoutError",
]
