"""Tests for TTL and size eviction, stats and registry descriptions."""

from __future__ import annotations

import json
import os
from dataclasses import replace
from datetime import timedelta
from pathlib import Path

import pytest
from conftest import FrozenClock

from armcache.cache.eviction import (
    cleanup_by_size,
    cleanup_by_ttl,
    cleanup_cache,
    clear_cache,
    describe_registry,
    get_cache_stats,
)
from armcache.cache.keys import ruleset_key
from armcache.cache.lock import RegistryLock
from armcache.cache.settings import load_cache_settings, save_cache_settings
from armcache.cache.store import GitCacheManager, RulesetCacheManager
from armcache.constants.registry import RegistryKind
from armcache.exceptions import IndexNotFoundError

REPO_URL = "https://github.com/user/repo"
BUCKET = "s3://rules-bucket"
PAYLOAD = {"rules/a.md": b"a" * 1000}


def _index(manager: GitCacheManager | RulesetCacheManager, locator: str) -> dict:
    path = manager.layout.index_path(manager.registry_key(locator))
    return json.loads(path.read_text(encoding="utf-8"))


def _set_mtime(path: Path, epoch: int) -> None:
    os.utime(path, (epoch, epoch))


def test_ttl_cleanup_removes_only_expired_version(cache_root: Path, clock: FrozenClock) -> None:
    manager = GitCacheManager(cache_root, clock=clock)
    manager.store(REPO_URL, ["*.md"], "1.0.0", PAYLOAD, ruleset_name="my-rules")
    clock.advance(hours=2)
    manager.store(REPO_URL, ["*.md"], "2.0.0", PAYLOAD, ruleset_name="my-rules")
    clock.advance(hours=1)

    report = cleanup_by_ttl(cache_root, timedelta(hours=2, minutes=30), clock=clock)

    assert len(report.removed_versions) == 1
    assert report.removed_versions[0].endswith("/1.0.0")
    assert report.removed_rulesets == []
    assert report.bytes_freed == 1000
    assert manager.get(REPO_URL, ["*.md"], "1.0.0") is None
    cached = manager.get(REPO_URL, ["*.md"], "2.0.0")
    assert cached is not None
    assert cached.files == PAYLOAD


def test_ttl_cleanup_is_idempotent(cache_root: Path, clock: FrozenClock) -> None:
    manager = GitCacheManager(cache_root, clock=clock)
    manager.store(REPO_URL, ["*.md"], "1.0.0", PAYLOAD)
    clock.advance(hours=2)
    manager.store(REPO_URL, ["*.md"], "2.0.0", PAYLOAD)
    clock.advance(hours=1)

    first = cleanup_by_ttl(cache_root, timedelta(hours=2, minutes=30), clock=clock)
    index_after_first = _index(manager, REPO_URL)
    second = cleanup_by_ttl(cache_root, timedelta(hours=2, minutes=30), clock=clock)

    assert first.changed
    assert not second.changed
    assert _index(manager, REPO_URL) == index_after_first


def test_ttl_cleanup_drops_expired_ruleset_and_orphaned_mappings(cache_root: Path, clock: FrozenClock) -> None:
    manager = RulesetCacheManager(cache_root, RegistryKind.S3, clock=clock)
    manager.store(BUCKET, "old-rules", "1.0.0", PAYLOAD)
    manager.store(BUCKET, "new-rules", "1.0.0", PAYLOAD)
    reg_key = manager.registry_key(BUCKET)
    index_path = manager.layout.index_path(reg_key)
    index = json.loads(index_path.read_text(encoding="utf-8"))
    index["rulesets"][ruleset_key("old-rules")]["last_accessed_on"] = "garbage"
    index_path.write_text(json.dumps(index), encoding="utf-8")

    report = cleanup_by_ttl(cache_root, timedelta(hours=1), clock=clock)

    assert report.removed_rulesets == [f"{reg_key}/{ruleset_key('old-rules')}"]
    assert not manager.layout.ruleset_dir(reg_key, ruleset_key("old-rules")).exists()
    assert set(_index(manager, BUCKET)["rulesets"]) == {ruleset_key("new-rules")}
    names = [item.ruleset_name for item in manager.ruleset_mapper.list_mappings_by_registry(reg_key)]
    assert names == ["new-rules"]
    assert manager.registry_mapper.get_mapping(reg_key) is not None


def test_ttl_cleanup_removes_registry_mapping_when_registry_empties(cache_root: Path, clock: FrozenClock) -> None:
    manager = RulesetCacheManager(cache_root, RegistryKind.S3, clock=clock)
    manager.store(BUCKET, "my-rules", "1.0.0", PAYLOAD)
    clock.advance(days=3)

    cleanup_by_ttl(cache_root, timedelta(days=1), clock=clock)

    reg_key = manager.registry_key(BUCKET)
    assert _index(manager, BUCKET)["rulesets"] == {}
    assert manager.registry_mapper.get_mapping(reg_key) is None
    assert manager.ruleset_mapper.list_mappings_by_registry(reg_key) == []


def test_ttl_cleanup_skips_corrupt_registry_and_continues(cache_root: Path, clock: FrozenClock) -> None:
    manager = RulesetCacheManager(cache_root, RegistryKind.S3, clock=clock)
    manager.store(BUCKET, "my-rules", "1.0.0", PAYLOAD)
    manager.store("s3://broken-bucket", "my-rules", "1.0.0", PAYLOAD)
    broken_key = manager.registry_key("s3://broken-bucket")
    manager.layout.index_path(broken_key).write_text("{oops", encoding="utf-8")
    clock.advance(days=2)

    report = cleanup_by_ttl(cache_root, timedelta(days=1), clock=clock)

    assert report.failed_registries == [broken_key]
    assert _index(manager, BUCKET)["rulesets"] == {}


def test_ttl_cleanup_skips_locked_registry(cache_root: Path, clock: FrozenClock) -> None:
    manager = RulesetCacheManager(cache_root, RegistryKind.S3, clock=clock)
    manager.store(BUCKET, "my-rules", "1.0.0", PAYLOAD)
    clock.advance(days=2)
    reg_key = manager.registry_key(BUCKET)

    with RegistryLock(manager.layout, reg_key, clock=clock).hold("install"):
        report = cleanup_by_ttl(cache_root, timedelta(days=1), clock=clock, lock_timeout=0.2)

    assert report.failed_registries == [reg_key]
    assert manager.get_path(BUCKET, "my-rules", "1.0.0").exists()


def test_ttl_cleanup_with_non_positive_ttl_is_a_no_op(cache_root: Path, clock: FrozenClock) -> None:
    manager = GitCacheManager(cache_root, clock=clock)
    manager.store(REPO_URL, [], "abc", PAYLOAD)
    clock.advance(days=30)

    assert not cleanup_by_ttl(cache_root, timedelta(0), clock=clock).changed
    assert manager.get_path(REPO_URL, [], "abc").exists()


def test_size_cleanup_is_a_no_op_under_budget(cache_root: Path, clock: FrozenClock) -> None:
    manager = GitCacheManager(cache_root, clock=clock)
    manager.store(REPO_URL, [], "abc", PAYLOAD)
    before = get_cache_stats(cache_root).total_size_bytes

    report = cleanup_by_size(cache_root, before)

    assert not report.changed
    assert get_cache_stats(cache_root).total_size_bytes == before


def test_size_cleanup_removes_oldest_versions_first(cache_root: Path, clock: FrozenClock) -> None:
    manager = RulesetCacheManager(cache_root, RegistryKind.HTTPS, clock=clock)
    locator = "https://example.com/registry"
    paths = {
        version: manager.store(locator, "my-rules", version, PAYLOAD) for version in ("1.0.0", "2.0.0", "3.0.0")
    }
    _set_mtime(paths["2.0.0"], 1_000)
    _set_mtime(paths["1.0.0"], 2_000)
    _set_mtime(paths["3.0.0"], 3_000)
    budget = get_cache_stats(cache_root).total_size_bytes - 1

    report = cleanup_by_size(cache_root, budget, clock=clock)

    assert [item.rsplit("/", 1)[-1] for item in report.removed_versions] == ["2.0.0"]
    assert not paths["2.0.0"].exists()
    assert paths["1.0.0"].exists()
    assert paths["3.0.0"].exists()
    assert get_cache_stats(cache_root).total_size_bytes <= budget
    assert set(_index(manager, locator)["rulesets"][ruleset_key("my-rules")]["versions"]) == {"1.0.0", "3.0.0"}


def test_size_cleanup_prunes_emptied_rulesets(cache_root: Path, clock: FrozenClock) -> None:
    manager = RulesetCacheManager(cache_root, RegistryKind.S3, clock=clock)
    solo = manager.store(BUCKET, "solo", "1.0.0", PAYLOAD)
    kept = manager.store(BUCKET, "kept", "1.0.0", PAYLOAD)
    _set_mtime(solo, 1_000)
    _set_mtime(kept, 2_000)
    reg_key = manager.registry_key(BUCKET)

    report = cleanup_by_size(cache_root, get_cache_stats(cache_root).total_size_bytes - 1, clock=clock)

    assert report.removed_rulesets == [f"{reg_key}/{ruleset_key('solo')}"]
    assert not solo.parent.exists()
    assert set(_index(manager, BUCKET)["rulesets"]) == {ruleset_key("kept")}
    assert [item.ruleset_name for item in manager.ruleset_mapper.list_mappings_by_registry(reg_key)] == ["kept"]


def test_size_cleanup_counts_freed_bytes_when_index_is_corrupt(cache_root: Path, clock: FrozenClock) -> None:
    manager = RulesetCacheManager(cache_root, RegistryKind.S3, clock=clock)
    broken = manager.store("s3://broken-bucket", "my-rules", "1.0.0", PAYLOAD)
    healthy = manager.store(BUCKET, "my-rules", "1.0.0", PAYLOAD)
    manager.layout.index_path(manager.registry_key("s3://broken-bucket")).write_text("{oops", encoding="utf-8")
    _set_mtime(broken, 1_000)
    _set_mtime(healthy, 2_000)
    budget = get_cache_stats(cache_root).total_size_bytes - 500

    report = cleanup_by_size(cache_root, budget, clock=clock)

    assert not broken.exists()
    assert healthy.exists()
    assert report.bytes_freed == 1000
    assert len(report.removed_versions) == 1
    assert report.failed_registries == []
    assert get_cache_stats(cache_root).total_size_bytes <= budget


def test_size_cleanup_to_zero_removes_everything(cache_root: Path, clock: FrozenClock) -> None:
    manager = GitCacheManager(cache_root, clock=clock)
    manager.store(REPO_URL, ["a"], "c1", PAYLOAD)
    manager.store(REPO_URL, ["b"], "c2", PAYLOAD)

    report = cleanup_by_size(cache_root, 0, clock=clock)

    assert len(report.removed_versions) == 2
    assert _index(manager, REPO_URL)["rulesets"] == {}
    assert manager.registry_mapper.list_mappings() == []


def test_get_cache_stats(cache_root: Path, clock: FrozenClock) -> None:
    empty = get_cache_stats(cache_root)
    assert empty.total_size_bytes == 0
    assert empty.registry_count == 0

    GitCacheManager(cache_root, clock=clock).store(REPO_URL, [], "abc", PAYLOAD)
    RulesetCacheManager(cache_root, RegistryKind.S3, clock=clock).store(BUCKET, "r", "1", PAYLOAD)
    stats = get_cache_stats(cache_root)

    assert stats.registry_count == 2
    assert stats.total_size_bytes > 2000
    assert stats.to_dict() == {
        "total_size_bytes": stats.total_size_bytes,
        "total_size_mb": stats.total_size_bytes / (1024 * 1024),
        "registry_count": 2,
    }


def test_cleanup_cache_respects_disabled_flag(cache_root: Path, clock: FrozenClock) -> None:
    manager = GitCacheManager(cache_root, clock=clock)
    manager.store(REPO_URL, [], "abc", PAYLOAD)
    settings = load_cache_settings(cache_root, clock=clock)
    save_cache_settings(cache_root, replace(settings, cleanup_enabled=False))
    clock.advance(days=365)

    assert cleanup_cache(cache_root, clock=clock) is None
    assert manager.get_path(REPO_URL, [], "abc").exists()


def test_cleanup_cache_runs_configured_sweeps(cache_root: Path, clock: FrozenClock) -> None:
    manager = GitCacheManager(cache_root, clock=clock)
    manager.store(REPO_URL, [], "abc", PAYLOAD)
    load_cache_settings(cache_root, clock=clock)
    clock.advance(hours=25)

    report = cleanup_cache(cache_root, clock=clock)

    assert report is not None
    assert report.changed
    assert not manager.get_path(REPO_URL, [], "abc").exists()
    assert load_cache_settings(cache_root).last_updated_on == "2025-03-02T13:00:00Z"


def test_describe_registry_joins_index_and_mappings(cache_root: Path, clock: FrozenClock) -> None:
    manager = RulesetCacheManager(cache_root, RegistryKind.S3, clock=clock)
    manager.store(BUCKET, "my-rules", "1.0.0", PAYLOAD)
    reg_key = manager.registry_key(BUCKET)

    description = describe_registry(cache_root, reg_key)

    assert description.registry_key == reg_key
    assert description.mapping is not None
    assert description.mapping.registry_url == BUCKET
    assert [item.ruleset_name for item in description.ruleset_mappings] == ["my-rules"]
    assert description.index.normalized_registry_url == "rules-bucket"
    assert description.size_bytes >= 1000


def test_describe_unknown_registry(cache_root: Path) -> None:
    with pytest.raises(IndexNotFoundError):
        describe_registry(cache_root, "0" * 64)


def test_clear_cache_removes_registries_and_mappings(cache_root: Path, clock: FrozenClock) -> None:
    git = GitCacheManager(cache_root, clock=clock)
    git.store(REPO_URL, ["*.md"], "abc", PAYLOAD)
    s3 = RulesetCacheManager(cache_root, RegistryKind.S3, clock=clock)
    s3.store(BUCKET, "my-rules", "1.0.0", PAYLOAD)
    load_cache_settings(cache_root, clock=clock)

    report = clear_cache(cache_root, clock=clock)

    assert sorted(report.removed_registries) == sorted([git.registry_key(REPO_URL), s3.registry_key(BUCKET)])
    assert report.bytes_freed >= 2000
    assert report.failed_registries == []
    assert get_cache_stats(cache_root).registry_count == 0
    assert not (cache_root / "registry-map.json").exists()
    assert not (cache_root / "ruleset-map.json").exists()
    assert (cache_root / "config.json").exists()


def test_clear_cache_keeps_locked_registry_and_its_mappings(cache_root: Path, clock: FrozenClock) -> None:
    manager = RulesetCacheManager(cache_root, RegistryKind.S3, clock=clock)
    manager.store(BUCKET, "my-rules", "1.0.0", PAYLOAD)
    manager.store("s3://other-bucket", "my-rules", "1.0.0", PAYLOAD)
    locked_key = manager.registry_key(BUCKET)

    with RegistryLock(manager.layout, locked_key, clock=clock).hold("install"):
        report = clear_cache(cache_root, clock=clock, lock_timeout=0.2)

    assert report.failed_registries == [locked_key]
    assert report.removed_registries == [manager.registry_key("s3://other-bucket")]
    assert manager.get_path(BUCKET, "my-rules", "1.0.0").exists()
    assert [item.cache_key for item in manager.registry_mapper.list_mappings()] == [locked_key]
    assert {item.registry_cache_key for item in manager.ruleset_mapper.list_mappings()} == {locked_key}
