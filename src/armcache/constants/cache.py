"""Cache layout names, defaults, and thresholds."""

from __future__ import annotations

from datetime import timedelta

CONFIG_FILENAME: str = "config.json"
REGISTRY_MAP_FILENAME: str = "registry-map.json"
RULESET_MAP_FILENAME: str = "ruleset-map.json"
INDEX_FILENAME: str = "index.json"

LOCKS_DIRNAME: str = "locks"
REGISTRIES_DIRNAME: str = "registries"
RULESETS_DIRNAME: str = "rulesets"
REPOSITORY_DIRNAME: str = "repository"
LOCK_SUFFIX: str = ".lock"

CACHE_CONFIG_VERSION: str = "1.0"
MAP_FILE_VERSION: str = "1.0"

DEFAULT_TTL_HOURS: int = 24
DEFAULT_MAX_SIZE_MB: int = 1024
DEFAULT_CLEANUP_ENABLED: bool = True

BYTES_PER_MB: int = 1024 * 1024

STALE_LOCK_THRESHOLD: timedelta = timedelta(hours=1)
LOCK_POLL_INTERVAL_SECONDS: float = 0.1
EVICTION_LOCK_TIMEOUT_SECONDS: float = 5.0
ACCESS_REFRESH_LOCK_TIMEOUT_SECONDS: float = 0.5

EMPTY_PATTERNS_SENTINEL: str = "__EMPTY__"
CACHE_KEY_LENGTH: int = 64
CORRUPT_BACKUP_INFIX: str = ".corrupted."

MAP_TEMP_PREFIX: str = ".armcache-map-"
MAP_TEMP_SUFFIX: str = ".tmp"
LOCK_TEMP_PREFIX: str = ".armcache-lock-"
LOCK_TEMP_SUFFIX: str = ".tmp"
CONFIG_TEMP_PREFIX: str = ".armcache-config-"
CONFIG_TEMP_SUFFIX: str = ".tmp"
