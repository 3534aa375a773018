"""Cache store, index, and lock exceptions."""

from __future__ import annotations

from armcache.exceptions.base import ArmCacheError


class CacheNotFoundError(ArmCacheError, LookupError):
    """Raised when a cached document or directory is absent."""


class IndexNotFoundError(CacheNotFoundError):
    """Raised when a registry has no ``index.json`` yet."""


class CacheCorruptError(ArmCacheError, ValueError):
    """Raised when a cache document cannot be parsed."""


class LockTimeoutError(ArmCacheError, TimeoutError):
    """Raised when a registry lock is not acquired within its timeout."""


class CacheIOError(ArmCacheError, OSError):
    """Raised when the filesystem rejects a create, write, or rename."""


class InvalidInputError(ArmCacheError, ValueError):
    """Raised for malformed caller input such as an empty ruleset name."""
