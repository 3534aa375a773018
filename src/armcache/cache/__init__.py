"""Registry cache engine: keys, payload store, metadata documents, locks and eviction."""

from __future__ import annotations

from armcache.cache.eviction import (
    cleanup_by_size,
    cleanup_by_ttl,
    cleanup_cache,
    clear_cache,
    describe_registry,
    get_cache_stats,
)
from armcache.cache.fetch import ByteSource, VersionResolver, fetch_with_cache, resolve_and_fetch
from armcache.cache.index import load_registry_index, save_registry_index
from armcache.cache.keys import normalize_patterns, patterns_key, registry_key, ruleset_key, sha256_hex
from armcache.cache.layout import CacheLayout
from armcache.cache.lock import RegistryLock, cleanup_stale_locks, read_lock_info
from armcache.cache.mapping import RegistryMapper, RulesetMapper
from armcache.cache.normalize import normalize_locator
from armcache.cache.settings import initialize_cache, load_cache_settings, save_cache_settings
from armcache.cache.store import CacheManager, GitCacheManager, RulesetCacheManager, build_cache_manager

__all__ = [
    "ByteSource",
    "CacheLayout",
    "CacheManager",
    "GitCacheManager",
    "RegistryLock",
    "RegistryMapper",
    "RulesetCacheManager",
    "RulesetMapper",
    "VersionResolver",
    "build_cache_manager",
    "cleanup_by_size",
    "cleanup_by_ttl",
    "cleanup_cache",
    "cleanup_stale_locks",
    "clear_cache",
    "describe_registry",
    "fetch_with_cache",
    "get_cache_stats",
    "initialize_cache",
    "load_cache_settings",
    "load_registry_index",
    "normalize_locator",
    "normalize_patterns",
    "patterns_key",
    "read_lock_info",
    "registry_key",
    "resolve_and_fetch",
    "ruleset_key",
    "save_cache_settings",
    "save_registry_index",
    "sha256_hex",
]
