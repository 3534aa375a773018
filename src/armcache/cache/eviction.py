"""TTL and size eviction over a cache root, plus size accounting and full clears.

Each registry is swept under its own lock. A registry whose lock cannot be
taken, or whose index cannot be read, is logged and skipped so that one bad
registry never blocks reclamation elsewhere. Removing something that is
already gone counts as success.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from armcache.cache.index import load_registry_index, save_registry_index
from armcache.cache.layout import CacheLayout
from armcache.cache.lock import RegistryLock
from armcache.cache.mapping import RegistryMapper, RulesetMapper
from armcache.cache.settings import load_cache_settings, save_cache_settings
from armcache.constants.cache import EVICTION_LOCK_TIMEOUT_SECONDS
from armcache.exceptions import ArmCacheError, CacheIOError, IndexNotFoundError
from armcache.io import directory_size, remove_tree
from armcache.types import (
    CacheStats,
    Clock,
    EvictionReport,
    RegistryDescription,
    RegistryIndex,
)
from armcache.utils import parse_timestamp, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _VersionCandidate:
    registry_key: str
    ruleset_key: str
    version: str
    path: Path
    modified: float


def cleanup_by_ttl(
    root: Path,
    ttl: timedelta,
    *,
    clock: Clock = utc_now,
    lock_timeout: float = EVICTION_LOCK_TIMEOUT_SECONDS,
) -> EvictionReport:
    """Remove rulesets and versions not accessed within ``ttl``.

    A ruleset whose own access time is expired (or unparsable) goes as a
    whole; otherwise its expired versions go one by one, and a ruleset left
    without versions is removed too. A non-positive ``ttl`` disables the
    sweep.
    """
    report = EvictionReport()
    if ttl <= timedelta(0):
        return report

    layout = CacheLayout(root)
    now = clock()
    for reg_key in layout.registry_keys():
        lock = RegistryLock(layout, reg_key, timeout=lock_timeout, clock=clock)
        try:
            with lock.hold("cleanup ttl"):
                report.merge(_sweep_registry_ttl(layout, reg_key, ttl, now, clock=clock))
        except IndexNotFoundError:
            logger.debug("Registry %s has no index; skipping TTL sweep", reg_key)
        except ArmCacheError as exc:
            logger.warning("Skipping registry %s during TTL cleanup: %s", reg_key, exc)
            report.failed_registries.append(reg_key)

    if report.changed:
        logger.info(
            "TTL cleanup removed %d ruleset(s) and %d version(s), freeing %d bytes",
            len(report.removed_rulesets),
            len(report.removed_versions),
            report.bytes_freed,
        )
    return report


def cleanup_by_size(
    root: Path,
    max_size: int,
    *,
    clock: Clock = utc_now,
    lock_timeout: float = EVICTION_LOCK_TIMEOUT_SECONDS,
) -> EvictionReport:
    """Delete the least recently modified version directories until the root fits ``max_size`` bytes.

    Directory modification time stands in for access time so that the
    sweep never has to load every index to rank candidates.
    """
    report = EvictionReport()
    total = directory_size(root)
    if total <= max_size:
        return report

    layout = CacheLayout(root)
    candidates = sorted(_version_candidates(layout), key=lambda item: (item.modified, str(item.path)))
    skipped: set[str] = set()
    for candidate in candidates:
        if total <= max_size:
            break
        if candidate.registry_key in skipped:
            continue
        lock = RegistryLock(layout, candidate.registry_key, timeout=lock_timeout, clock=clock)
        try:
            with lock.hold("cleanup size"):
                freed = _evict_version(layout, candidate, report, clock=clock)
        except ArmCacheError as exc:
            logger.warning("Skipping registry %s during size cleanup: %s", candidate.registry_key, exc)
            skipped.add(candidate.registry_key)
            report.failed_registries.append(candidate.registry_key)
            continue
        total -= freed

    if report.changed:
        logger.info(
            "Size cleanup removed %d version(s), freeing %d bytes (budget %d)",
            len(report.removed_versions),
            report.bytes_freed,
            max_size,
        )
    return report


def cleanup_cache(root: Path, *, clock: Clock = utc_now) -> EvictionReport | None:
    """Run the sweeps configured in ``config.json``.

    Returns None without touching anything when cleanup is disabled.
    """
    settings = load_cache_settings(root, clock=clock)
    if not settings.cleanup_enabled:
        logger.debug("Cache cleanup disabled in %s", CacheLayout(root).config_path)
        return None

    report = cleanup_by_ttl(root, settings.ttl, clock=clock)
    if settings.max_size_bytes > 0:
        report.merge(cleanup_by_size(root, settings.max_size_bytes, clock=clock))
    save_cache_settings(root, settings.touched(clock()))
    return report


def clear_cache(
    root: Path,
    *,
    clock: Clock = utc_now,
    lock_timeout: float = EVICTION_LOCK_TIMEOUT_SECONDS,
) -> EvictionReport:
    """Remove every cached registry and the mapping documents describing them.

    ``config.json`` and the ``locks/`` directory are kept. A registry whose
    lock cannot be taken is left in place together with its mappings.
    """
    layout = CacheLayout(root)
    report = EvictionReport()
    registry_mapper = RegistryMapper(layout, lock_timeout=lock_timeout, clock=clock)
    ruleset_mapper = RulesetMapper(layout, lock_timeout=lock_timeout, clock=clock)

    for reg_key in layout.registry_keys():
        lock = RegistryLock(layout, reg_key, timeout=lock_timeout, clock=clock)
        try:
            with lock.hold("clear"):
                report.bytes_freed += _remove(layout.registry_dir(reg_key))
                report.removed_registries.append(reg_key)
        except ArmCacheError as exc:
            logger.warning("Skipping registry %s during clear: %s", reg_key, exc)
            report.failed_registries.append(reg_key)

    if report.failed_registries:
        for reg_key in report.removed_registries:
            registry_mapper.remove_mapping(reg_key)
            ruleset_mapper.remove_registry_mappings(reg_key)
    else:
        registry_mapper.clear()
        ruleset_mapper.clear()

    logger.info(
        "Cleared %d registr(y/ies), freeing %d bytes",
        len(report.removed_registries),
        report.bytes_freed,
    )
    return report


def get_cache_stats(root: Path) -> CacheStats:
    """Total on-disk size of the root and the number of registry directories."""
    return CacheStats(
        total_size_bytes=directory_size(root),
        registry_count=len(CacheLayout(root).registry_keys()),
    )


def describe_registry(root: Path, registry_key: str) -> RegistryDescription:
    """Join a registry's index with what the mapping documents know about it.

    Raises:
        IndexNotFoundError: no registry with that key is indexed.
        CacheCorruptError: the index cannot be parsed.
    """
    layout = CacheLayout(root)
    registry_dir = layout.registry_dir(registry_key)
    index = load_registry_index(registry_dir)
    return RegistryDescription(
        registry_key=registry_key,
        index=index,
        mapping=RegistryMapper(layout).get_mapping(registry_key),
        ruleset_mappings=RulesetMapper(layout).list_mappings_by_registry(registry_key),
        size_bytes=directory_size(registry_dir),
    )


def _sweep_registry_ttl(
    layout: CacheLayout,
    reg_key: str,
    ttl: timedelta,
    now: datetime,
    *,
    clock: Clock,
) -> EvictionReport:
    registry_dir = layout.registry_dir(reg_key)
    index = load_registry_index(registry_dir)
    report = EvictionReport()
    removed: set[str] = set()

    for ruleset_key, entry in list(index.rulesets.items()):
        ruleset_dir = layout.ruleset_dir(reg_key, ruleset_key)
        if _expired(entry.last_accessed_on, ttl, now):
            report.bytes_freed += _remove(ruleset_dir)
            del index.rulesets[ruleset_key]
            removed.add(ruleset_key)
            report.removed_rulesets.append(f"{reg_key}/{ruleset_key}")
            continue

        for version, version_entry in list(entry.versions.items()):
            if _expired(version_entry.last_accessed_on, ttl, now):
                report.bytes_freed += _remove(ruleset_dir / version)
                del entry.versions[version]
                report.removed_versions.append(f"{reg_key}/{ruleset_key}/{version}")

        if not entry.versions:
            report.bytes_freed += _remove(ruleset_dir)
            del index.rulesets[ruleset_key]
            removed.add(ruleset_key)
            report.removed_rulesets.append(f"{reg_key}/{ruleset_key}")

    if report.changed:
        save_registry_index(registry_dir, index)
        _prune_mappings(layout, reg_key, index, removed, clock=clock)
    return report


def _evict_version(
    layout: CacheLayout,
    candidate: _VersionCandidate,
    report: EvictionReport,
    *,
    clock: Clock,
) -> int:
    """Delete one version directory and return the bytes freed.

    Once the payload is gone its bytes count as freed even if the index or
    mapping update that follows fails; that failure is only logged.
    """
    reg_key = candidate.registry_key
    freed = _remove(candidate.path)
    report.bytes_freed += freed
    report.removed_versions.append(f"{reg_key}/{candidate.ruleset_key}/{candidate.version}")

    ruleset_dir = candidate.path.parent
    ruleset_emptied = _remove_if_empty(ruleset_dir)
    if ruleset_emptied:
        report.removed_rulesets.append(f"{reg_key}/{candidate.ruleset_key}")

    try:
        _drop_from_index(layout, candidate, ruleset_emptied, clock=clock)
    except ArmCacheError as exc:
        logger.warning("Removed %s but could not update registry %s: %s", candidate.path, reg_key, exc)
    return freed


def _drop_from_index(
    layout: CacheLayout,
    candidate: _VersionCandidate,
    ruleset_emptied: bool,
    *,
    clock: Clock,
) -> None:
    registry_dir = layout.registry_dir(candidate.registry_key)
    try:
        index = load_registry_index(registry_dir)
    except IndexNotFoundError:
        return

    entry = index.rulesets.get(candidate.ruleset_key)
    if entry is not None:
        entry.versions.pop(candidate.version, None)
        if ruleset_emptied or not entry.versions:
            del index.rulesets[candidate.ruleset_key]
    save_registry_index(registry_dir, index)
    _prune_mappings(layout, candidate.registry_key, index, {candidate.ruleset_key}, clock=clock)


def _prune_mappings(
    layout: CacheLayout,
    reg_key: str,
    index: RegistryIndex,
    removed_rulesets: set[str],
    *,
    clock: Clock,
) -> None:
    orphaned = {key for key in removed_rulesets if key not in index.rulesets}
    if orphaned:
        RulesetMapper(layout, clock=clock).remove_registry_mappings(reg_key, orphaned)
    if not index.rulesets:
        RegistryMapper(layout, clock=clock).remove_mapping(reg_key)


def _version_candidates(layout: CacheLayout) -> list[_VersionCandidate]:
    candidates: list[_VersionCandidate] = []
    for reg_key in layout.registry_keys():
        for ruleset_dir in _subdirectories(layout.rulesets_dir(reg_key)):
            for version_dir in _subdirectories(ruleset_dir):
                try:
                    modified = version_dir.stat().st_mtime
                except OSError:
                    continue
                candidates.append(
                    _VersionCandidate(
                        registry_key=reg_key,
                        ruleset_key=ruleset_dir.name,
                        version=version_dir.name,
                        path=version_dir,
                        modified=modified,
                    )
                )
    return candidates


def _subdirectories(path: Path) -> list[Path]:
    try:
        return sorted(entry for entry in path.iterdir() if entry.is_dir())
    except FileNotFoundError:
        return []


def _expired(stamp: str, ttl: timedelta, now: datetime) -> bool:
    accessed = parse_timestamp(stamp)
    return accessed is None or now - accessed > ttl


def _remove(path: Path) -> int:
    size = directory_size(path)
    try:
        remove_tree(path)
    except OSError as exc:
        raise CacheIOError(f"Failed to remove {path}: {exc}") from exc
    return size


def _remove_if_empty(path: Path) -> bool:
    try:
        path.rmdir()
    except FileNotFoundError:
        return True
    except OSError:
        return False
    return True
