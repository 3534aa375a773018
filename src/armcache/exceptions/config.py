"""Configuration-related exceptions."""

from __future__ import annotations

from armcache.exceptions.base import ArmCacheError


class ConfigError(ArmCacheError, ValueError):
    """Raised when tool configuration is invalid."""
