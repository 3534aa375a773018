"""Three-level payload store: registry, ruleset (or pattern set), version.

Payload files are written without locking; a version directory is written at
most once per key and only ever removed by eviction. The registry index and
the reverse mappings are updated afterwards inside the registry lock.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from datetime import timedelta
from pathlib import Path, PurePosixPath

from armcache.cache.eviction import cleanup_by_size, cleanup_by_ttl
from armcache.cache.index import load_registry_index, save_registry_index
from armcache.cache.keys import normalize_patterns, patterns_key, registry_key, ruleset_key
from armcache.cache.layout import CacheLayout
from armcache.cache.lock import RegistryLock
from armcache.cache.mapping import RegistryMapper, RulesetMapper
from armcache.cache.normalize import normalize_locator
from armcache.constants.cache import ACCESS_REFRESH_LOCK_TIMEOUT_SECONDS
from armcache.constants.config import DEFAULT_LOCK_TIMEOUT_SECONDS
from armcache.constants.registry import RegistryKind
from armcache.exceptions import (
    ArmCacheError,
    CacheCorruptError,
    CacheIOError,
    CacheNotFoundError,
    InvalidInputError,
)
from armcache.io import iter_files
from armcache.types import (
    CachedFiles,
    Clock,
    EvictionReport,
    RegistryIndex,
    RulesetCacheEntry,
    VersionCacheEntry,
)
from armcache.utils import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class _RegistryCacheManager[SelectorT](ABC):
    """Operations shared by the Git and non-Git cache variants.

    ``SelectorT`` is the ruleset selector: a pattern list for Git
    registries, a ruleset name for everything else.
    """

    def __init__(
        self,
        root: Path,
        registry_type: RegistryKind,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self.layout = CacheLayout(root)
        self.registry_type = registry_type
        self.lock_timeout = lock_timeout
        self._clock = clock
        self.registry_mapper = RegistryMapper(self.layout, lock_timeout=lock_timeout, clock=clock)
        self.ruleset_mapper = RulesetMapper(self.layout, lock_timeout=lock_timeout, clock=clock)

    @abstractmethod
    def _selector_key(self, selector: SelectorT) -> str:
        """Return the ruleset-level cache key for ``selector``."""

    @abstractmethod
    def _new_ruleset_entry(self, selector: SelectorT, ruleset_name: str) -> RulesetCacheEntry:
        """Build the index entry recorded the first time ``selector`` is stored."""

    @abstractmethod
    def _selector_mapping(self, selector: SelectorT, ruleset_name: str) -> tuple[str, list[str]]:
        """Return the ruleset name and pattern list recorded in the ruleset mapping."""

    def registry_key(self, locator: str) -> str:
        return registry_key(self.registry_type.value, locator)

    def get_path(self, locator: str, selector: SelectorT, version: str) -> Path:
        """Return the version directory for a key triple, whether or not it exists."""
        _check_version(version)
        return self.layout.version_dir(self.registry_key(locator), self._selector_key(selector), version)

    def store(
        self,
        locator: str,
        selector: SelectorT,
        version: str,
        files: Mapping[str, bytes],
        *,
        ruleset_name: str = "",
    ) -> Path:
        """Write ``files`` under the version directory and record them in the index.

        Returns:
            The version directory the files were written to.

        Raises:
            InvalidInputError: the selector, version, or a relative path is unusable.
            LockTimeoutError: the registry lock could not be acquired.
            CacheCorruptError: the existing registry index cannot be parsed.
            CacheIOError: a payload or metadata write failed.
        """
        version_dir = self.get_path(locator, selector, version)
        reg_key = self.registry_key(locator)
        sel_key = self._selector_key(selector)

        _write_payload(version_dir, files)

        lock = RegistryLock(self.layout, reg_key, timeout=self.lock_timeout, clock=self._clock)
        with lock.hold(f"store {version}"):
            index = self._load_or_create_index(reg_key, locator)
            now = self._clock()
            stamp = format_timestamp(now)

            entry = index.rulesets.get(sel_key)
            if entry is None:
                entry = self._new_ruleset_entry(selector, ruleset_name)
                index.rulesets[sel_key] = entry
            entry.last_updated_on = stamp
            entry.touch(now)

            version_entry = entry.versions.get(version)
            if version_entry is None:
                entry.versions[version] = VersionCacheEntry.new(now)
            else:
                version_entry.last_updated_on = stamp
                version_entry.touch(now)

            index.last_updated_on = stamp
            index.touch(now)
            save_registry_index(self.layout.registry_dir(reg_key), index)

            self.registry_mapper.add_mapping(
                reg_key,
                self.registry_type.value,
                locator,
                normalize_locator(self.registry_type, locator),
            )
            mapped_name, mapped_patterns = self._selector_mapping(selector, ruleset_name)
            self.ruleset_mapper.add_mapping(sel_key, reg_key, mapped_name, mapped_patterns)

        logger.debug("Stored %d file(s) at %s", len(files), version_dir)
        return version_dir

    def get(self, locator: str, selector: SelectorT, version: str) -> CachedFiles | None:
        """Read every file of a cached version, or return None on a miss.

        Access timestamps are refreshed on a best-effort basis; a failed
        refresh is reported through ``CachedFiles.access_recorded`` and never
        fails the read.
        """
        version_dir = self.get_path(locator, selector, version)
        if not version_dir.is_dir():
            logger.debug("Cache miss for %s", version_dir)
            return None

        files: dict[str, bytes] = {}
        try:
            for path in iter_files(version_dir):
                files[path.relative_to(version_dir).as_posix()] = path.read_bytes()
        except OSError as exc:
            raise CacheIOError(f"Failed to read cached files in {version_dir}: {exc}") from exc

        recorded = self._refresh_access(self.registry_key(locator), self._selector_key(selector), version)
        logger.debug("Cache hit for %s (%d file(s))", version_dir, len(files))
        return CachedFiles(path=version_dir, files=files, access_recorded=recorded)

    def is_valid(self, locator: str, ttl: timedelta) -> bool:
        """Return True while the registry was accessed within ``ttl``.

        A non-positive ``ttl`` disables expiry. A missing or unreadable index
        counts as expired.
        """
        if ttl <= timedelta(0):
            return True
        try:
            index = load_registry_index(self.layout.registry_dir(self.registry_key(locator)))
        except (CacheNotFoundError, CacheCorruptError):
            return False
        last_accessed = parse_timestamp(index.last_accessed_on)
        if last_accessed is None:
            return False
        return self._clock() - last_accessed < ttl

    def cleanup(self, ttl: timedelta, max_size: int) -> EvictionReport:
        """Run a TTL sweep and, when ``max_size`` is positive, a size sweep over the cache root."""
        report = cleanup_by_ttl(self.layout.root, ttl, clock=self._clock)
        if max_size > 0:
            report.merge(cleanup_by_size(self.layout.root, max_size, clock=self._clock))
        return report

    def _load_or_create_index(self, reg_key: str, locator: str) -> RegistryIndex:
        try:
            return load_registry_index(self.layout.registry_dir(reg_key))
        except CacheNotFoundError:
            return RegistryIndex.new(
                self._clock(),
                normalized_url=normalize_locator(self.registry_type, locator),
                registry_type=self.registry_type.value,
            )

    def _refresh_access(self, reg_key: str, sel_key: str, version: str) -> bool:
        lock = RegistryLock(self.layout, reg_key, timeout=ACCESS_REFRESH_LOCK_TIMEOUT_SECONDS, clock=self._clock)
        try:
            with lock.hold(f"access {version}"):
                registry_dir = self.layout.registry_dir(reg_key)
                index = load_registry_index(registry_dir)
                now = self._clock()
                entry = index.rulesets.get(sel_key)
                if entry is not None:
                    version_entry = entry.versions.get(version)
                    if version_entry is not None:
                        version_entry.touch(now)
                    entry.touch(now)
                index.touch(now)
                save_registry_index(registry_dir, index)
                self.registry_mapper.update_last_accessed(reg_key)
                self.ruleset_mapper.touch_ruleset(reg_key, sel_key)
        except ArmCacheError as exc:
            logger.warning("Could not record access for %s/%s: %s", reg_key, version, exc)
            return False
        return True


class GitCacheManager(_RegistryCacheManager[Sequence[str]]):
    """Cache for Git registries, keyed by commit under a file-pattern set."""

    def __init__(
        self,
        root: Path,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(root, RegistryKind.GIT, lock_timeout=lock_timeout, clock=clock)

    def get_repository_path(self, locator: str) -> Path:
        """Return the stable clone directory shared by every version of the registry."""
        return self.layout.repository_dir(self.registry_key(locator))

    def _selector_key(self, selector: Sequence[str]) -> str:
        return patterns_key(selector)

    def _new_ruleset_entry(self, selector: Sequence[str], ruleset_name: str) -> RulesetCacheEntry:
        return RulesetCacheEntry.new(self._clock(), name=ruleset_name.strip(), patterns=normalize_patterns(selector))

    def _selector_mapping(self, selector: Sequence[str], ruleset_name: str) -> tuple[str, list[str]]:
        return ruleset_name.strip(), list(selector)


class RulesetCacheManager(_RegistryCacheManager[str]):
    """Cache for S3, HTTPS, GitLab and local registries, keyed by ruleset name."""

    def _selector_key(self, selector: str) -> str:
        return ruleset_key(_require_name(selector))

    def _new_ruleset_entry(self, selector: str, ruleset_name: str) -> RulesetCacheEntry:
        return RulesetCacheEntry.new(self._clock(), name=_require_name(selector))

    def _selector_mapping(self, selector: str, ruleset_name: str) -> tuple[str, list[str]]:
        return _require_name(selector), []


type CacheManager = GitCacheManager | RulesetCacheManager


def build_cache_manager(
    kind: RegistryKind | str,
    root: Path,
    *,
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
    clock: Clock = utc_now,
) -> CacheManager:
    """Pick the cache variant for a registry type once, at construction time."""
    try:
        registry_kind = RegistryKind(kind)
    except ValueError as exc:
        raise InvalidInputError(f"Unknown registry type: {kind!r}") from exc

    match registry_kind:
        case RegistryKind.GIT:
            return GitCacheManager(root, lock_timeout=lock_timeout, clock=clock)
        case _:
            return RulesetCacheManager(root, registry_kind, lock_timeout=lock_timeout, clock=clock)


def _require_name(name: str) -> str:
    stripped = name.strip()
    if not stripped:
        raise InvalidInputError("ruleset name is required for non-Git registries")
    return stripped


def _check_version(version: str) -> None:
    if not version or version in {".", ".."} or "/" in version or "\\" in version:
        raise InvalidInputError(f"Invalid version identifier: {version!r}")


def _write_payload(version_dir: Path, files: Mapping[str, bytes]) -> None:
    for relative, content in files.items():
        target = version_dir / _safe_relative_path(relative)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            raise CacheIOError(f"Failed to write cached file {target}: {exc}") from exc
    if not files:
        try:
            version_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheIOError(f"Failed to create version directory {version_dir}: {exc}") from exc


def _safe_relative_path(relative: str) -> PurePosixPath:
    path = PurePosixPath(relative.replace("\\", "/"))
    if path.is_absolute() or not path.parts or ".." in path.parts:
        raise InvalidInputError(f"Cached file path must stay inside the version directory: {relative!r}")
    return path
