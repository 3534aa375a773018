"""CLI subcommand handlers."""

from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from pathlib import Path

from armcache.cache import (
    RegistryMapper,
    RulesetMapper,
    cleanup_by_size,
    cleanup_by_ttl,
    cleanup_cache,
    cleanup_stale_locks,
    clear_cache,
    describe_registry,
    get_cache_stats,
    load_cache_settings,
    save_cache_settings,
)
from armcache.cache.layout import CacheLayout
from armcache.config import ToolConfig
from armcache.constants.branding import STATS_TITLE
from armcache.constants.cache import BYTES_PER_MB
from armcache.exceptions import ConfigError
from armcache.types import EvictionReport, is_cache_key
from armcache.utils import utc_now


def handle_stats(args: argparse.Namespace, cache_root: Path, config: ToolConfig) -> int:
    stats = get_cache_stats(cache_root)
    print(STATS_TITLE)
    print(f"  root:       {cache_root}")
    print(f"  size:       {stats.total_size_bytes} bytes ({stats.total_size_mb:.2f} MB)")
    print(f"  registries: {stats.registry_count}")
    return 0


def handle_cleanup(args: argparse.Namespace, cache_root: Path, config: ToolConfig) -> int:
    """Run the configured sweeps, or the overridden ones when flags are given.

    Explicit ``--ttl-hours``/``--max-size-mb`` flags run even when cleanup is
    disabled in ``config.json``.
    """
    if args.ttl_hours is not None and args.ttl_hours < 0:
        raise ConfigError("--ttl-hours must not be negative")
    if args.max_size_mb is not None and args.max_size_mb < 0:
        raise ConfigError("--max-size-mb must not be negative")

    if args.ttl_hours is None and args.max_size_mb is None:
        report = cleanup_cache(cache_root)
        if report is None:
            print("Cleanup is disabled in config.json; nothing removed.")
            return 0
        _print_report(report)
        return 0

    settings = load_cache_settings(cache_root)
    ttl = timedelta(hours=args.ttl_hours) if args.ttl_hours is not None else settings.ttl
    max_size = args.max_size_mb * BYTES_PER_MB if args.max_size_mb is not None else settings.max_size_bytes

    report = cleanup_by_ttl(cache_root, ttl)
    if max_size > 0:
        report.merge(cleanup_by_size(cache_root, max_size))
    save_cache_settings(cache_root, settings.touched(utc_now()))
    _print_report(report)
    return 0


def handle_clear(args: argparse.Namespace, cache_root: Path, config: ToolConfig) -> int:
    report = clear_cache(cache_root, lock_timeout=config.lock_timeout_seconds)
    print(f"Removed {len(report.removed_registries)} registr(y/ies), freed {report.bytes_freed} bytes.")
    for registry_key in report.failed_registries:
        print(f"Skipped registry {registry_key} (locked or unreadable)", file=sys.stderr)
    return 1 if report.failed_registries else 0


def handle_unlock_stale(args: argparse.Namespace, cache_root: Path, config: ToolConfig) -> int:
    removed = cleanup_stale_locks(cache_root)
    if not removed:
        print("No stale locks found.")
        return 0
    for name in removed:
        print(f"removed {name}")
    return 0


def handle_recover(args: argparse.Namespace, cache_root: Path, config: ToolConfig) -> int:
    layout = CacheLayout(cache_root)
    mappers = (
        RegistryMapper(layout, lock_timeout=config.lock_timeout_seconds),
        RulesetMapper(layout, lock_timeout=config.lock_timeout_seconds),
    )
    for mapper in mappers:
        outcome = mapper.validate_and_recover()
        if outcome.backup_path is not None:
            print(f"{mapper.path.name}: corrupt, preserved as {outcome.backup_path.name}")
        elif outcome.dropped_records:
            print(f"{mapper.path.name}: dropped {outcome.dropped_records} invalid record(s)")
        else:
            print(f"{mapper.path.name}: ok")
    return 0


def handle_show(args: argparse.Namespace, cache_root: Path, config: ToolConfig) -> int:
    key = args.registry_key.strip().lower()
    if not is_cache_key(key):
        print(f"Configuration error: not a registry cache key: {args.registry_key!r}", file=sys.stderr)
        return 2

    description = describe_registry(cache_root, key)
    index = description.index
    print(f"registry {description.registry_key}")
    if description.mapping is not None:
        print(f"  url:           {description.mapping.registry_url}")
    print(f"  type:          {index.normalized_registry_type}")
    print(f"  normalized:    {index.normalized_registry_url}")
    print(f"  last accessed: {index.last_accessed_on}")
    print(f"  size:          {description.size_bytes} bytes")

    names = {mapping.cache_key: mapping for mapping in description.ruleset_mappings}
    for ruleset_key, entry in sorted(index.rulesets.items()):
        mapping = names.get(ruleset_key)
        label = entry.normalized_ruleset_name or (mapping.ruleset_name if mapping else "")
        if entry.normalized_ruleset_patterns:
            label = f"{label} [{', '.join(entry.normalized_ruleset_patterns)}]".strip()
        print(f"  ruleset {ruleset_key[:12]} {label}".rstrip())
        for version, version_entry in sorted(entry.versions.items()):
            print(f"    {version}  (last accessed {version_entry.last_accessed_on})")
    return 0


def _print_report(report: EvictionReport) -> None:
    print(
        f"Removed {len(report.removed_rulesets)} ruleset(s) and {len(report.removed_versions)} version(s), "
        f"freed {report.bytes_freed} bytes."
    )
    for registry_key in report.failed_registries:
        print(f"Skipped registry {registry_key} (see log)", file=sys.stderr)
