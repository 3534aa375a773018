"""Shared record types for armcache."""

from .common import Clock, JsonObject, JsonScalar, JsonValue
from .index import RegistryIndex, RulesetCacheEntry, VersionCacheEntry
from .lock import LockInfo
from .mapping import RegistryMapping, RulesetMapping, is_cache_key
from .results import CachedFiles, CacheStats, EvictionReport, MappingRecovery, RegistryDescription
from .settings import CacheSettings

__all__ = [
    "CacheSettings",
    "CacheStats",
    "CachedFiles",
    "Clock",
    "EvictionReport",
    "JsonObject",
    "JsonScalar",
    "JsonValue",
    "LockInfo",
    "MappingRecovery",
    "RegistryDescription",
    "RegistryIndex",
    "RegistryMapping",
    "RulesetCacheEntry",
    "RulesetMapping",
    "VersionCacheEntry",
    "is_cache_key",
]
