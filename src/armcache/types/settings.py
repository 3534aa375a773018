"""Global cache settings persisted as ``config.json`` at the cache root."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from armcache.constants.cache import (
    BYTES_PER_MB,
    CACHE_CONFIG_VERSION,
    DEFAULT_CLEANUP_ENABLED,
    DEFAULT_MAX_SIZE_MB,
    DEFAULT_TTL_HOURS,
)
from armcache.exceptions import CacheCorruptError
from armcache.types.common import JsonObject
from armcache.utils import format_timestamp


@dataclass(frozen=True)
class CacheSettings:
    """TTL, size budget, and cleanup toggle shared by every invocation."""

    version: str = CACHE_CONFIG_VERSION
    created_on: str = ""
    last_updated_on: str = ""
    ttl_hours: int = DEFAULT_TTL_HOURS
    max_size_mb: int = DEFAULT_MAX_SIZE_MB
    cleanup_enabled: bool = DEFAULT_CLEANUP_ENABLED

    @classmethod
    def defaults(cls, now: datetime) -> CacheSettings:
        stamp = format_timestamp(now)
        return cls(created_on=stamp, last_updated_on=stamp)

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=self.ttl_hours)

    @property
    def max_size_bytes(self) -> int:
        return self.max_size_mb * BYTES_PER_MB

    def touched(self, now: datetime) -> CacheSettings:
        """Return a copy with ``last_updated_on`` set to ``now``."""
        return replace(self, last_updated_on=format_timestamp(now))

    def to_dict(self) -> JsonObject:
        return {
            "version": self.version,
            "created_on": self.created_on,
            "last_updated_on": self.last_updated_on,
            "ttl_hours": self.ttl_hours,
            "max_size_mb": self.max_size_mb,
            "cleanup_enabled": self.cleanup_enabled,
        }

    @classmethod
    def from_dict(cls, raw: object) -> CacheSettings:
        if not isinstance(raw, dict):
            raise CacheCorruptError("cache config must be a JSON object")

        ttl_hours = raw.get("ttl_hours", DEFAULT_TTL_HOURS)
        if isinstance(ttl_hours, bool) or not isinstance(ttl_hours, int):
            raise CacheCorruptError("cache config 'ttl_hours' must be an integer")
        max_size_mb = raw.get("max_size_mb", DEFAULT_MAX_SIZE_MB)
        if isinstance(max_size_mb, bool) or not isinstance(max_size_mb, int):
            raise CacheCorruptError("cache config 'max_size_mb' must be an integer")
        cleanup_enabled = raw.get("cleanup_enabled", DEFAULT_CLEANUP_ENABLED)
        if not isinstance(cleanup_enabled, bool):
            raise CacheCorruptError("cache config 'cleanup_enabled' must be a boolean")

        version = raw.get("version")
        created_on = raw.get("created_on")
        last_updated_on = raw.get("last_updated_on")
        return cls(
            version=version if isinstance(version, str) else CACHE_CONFIG_VERSION,
            created_on=created_on if isinstance(created_on, str) else "",
            last_updated_on=last_updated_on if isinstance(last_updated_on, str) else "",
            ttl_hours=ttl_hours,
            max_size_mb=max_size_mb,
            cleanup_enabled=cleanup_enabled,
        )
