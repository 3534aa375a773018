"""Tests for the registry and ruleset reverse mapping documents."""

from __future__ import annotations

import json
import threading
from pathlib import Path

from conftest import FrozenClock

from armcache.cache.keys import registry_key, ruleset_key, sha256_hex
from armcache.cache.layout import CacheLayout
from armcache.cache.mapping import RegistryMapper, RulesetMapper

REG_KEY = registry_key("git", "https://github.com/user/repo")
OTHER_REG_KEY = registry_key("s3", "bucket/rules")
RULESET_KEY = ruleset_key("my-rules")


def _read(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


def test_registry_add_mapping_persists_document(cache_root: Path, clock: FrozenClock) -> None:
    mapper = RegistryMapper(CacheLayout(cache_root), clock=clock)

    mapper.add_mapping(REG_KEY, "git", "git@github.com:user/repo.git", "https://github.com/user/repo")

    document = _read(cache_root / "registry-map.json")
    assert document["version"] == "1.0"
    assert document["mappings"] == [
        {
            "cache_key": REG_KEY,
            "registry_type": "git",
            "registry_url": "git@github.com:user/repo.git",
            "normalized_url": "https://github.com/user/repo",
            "created_at": "2025-03-01T12:00:00Z",
            "last_accessed": "2025-03-01T12:00:00Z",
        }
    ]
    assert not [item for item in cache_root.iterdir() if item.name.endswith(".tmp")]


def test_add_mapping_upsert_preserves_created_at(cache_root: Path, clock: FrozenClock) -> None:
    mapper = RegistryMapper(CacheLayout(cache_root), clock=clock)
    mapper.add_mapping(REG_KEY, "git", "old-url", "https://github.com/user/repo")
    clock.advance(hours=3)

    mapper.add_mapping(REG_KEY, "git", "new-url", "https://github.com/user/repo")

    mappings = mapper.list_mappings()
    assert len(mappings) == 1
    assert mappings[0].registry_url == "new-url"
    assert mappings[0].created_at == "2025-03-01T12:00:00Z"
    assert mappings[0].last_accessed == "2025-03-01T15:00:00Z"


def test_registry_lookups(cache_root: Path, clock: FrozenClock) -> None:
    mapper = RegistryMapper(CacheLayout(cache_root), clock=clock)
    mapper.add_mapping(REG_KEY, "git", "git@github.com:user/repo", "https://github.com/user/repo")
    mapper.add_mapping(OTHER_REG_KEY, "s3", "s3://bucket/rules", "bucket/rules")

    assert mapper.find_mapping_by_url("s3", "bucket/rules").cache_key == OTHER_REG_KEY
    assert mapper.find_mapping_by_url("https", "bucket/rules") is None
    assert mapper.get_mapping(REG_KEY).registry_type == "git"
    assert mapper.get_mapping("f" * 64) is None


def test_update_last_accessed_and_remove(cache_root: Path, clock: FrozenClock) -> None:
    mapper = RegistryMapper(CacheLayout(cache_root), clock=clock)
    mapper.add_mapping(REG_KEY, "git", "url", "url")
    clock.advance(minutes=30)

    assert mapper.update_last_accessed(REG_KEY) is True
    assert mapper.get_mapping(REG_KEY).last_accessed == "2025-03-01T12:30:00Z"
    assert mapper.update_last_accessed("f" * 64) is False

    assert mapper.remove_mapping(REG_KEY) is True
    assert mapper.remove_mapping(REG_KEY) is False
    assert mapper.list_mappings() == []


def test_ruleset_mapping_lookup_ignores_pattern_order(cache_root: Path, clock: FrozenClock) -> None:
    mapper = RulesetMapper(CacheLayout(cache_root), clock=clock)
    mapper.add_mapping(RULESET_KEY, REG_KEY, "my-rules", ["b/*.md", " a/*.md"])

    found = mapper.find_mapping_by_ruleset(REG_KEY, "my-rules", ["a/*.md", "b/*.md"])

    assert found is not None
    assert found.normalized_patterns == "a/*.md,b/*.md"
    assert found.patterns == ["b/*.md", " a/*.md"]
    assert mapper.find_mapping_by_ruleset(REG_KEY, "my-rules", ["a/*.md"]) is None


def test_ruleset_mappings_are_scoped_per_registry(cache_root: Path, clock: FrozenClock) -> None:
    mapper = RulesetMapper(CacheLayout(cache_root), clock=clock)
    mapper.add_mapping(RULESET_KEY, REG_KEY, "my-rules")
    mapper.add_mapping(RULESET_KEY, OTHER_REG_KEY, "my-rules")

    assert len(mapper.list_mappings()) == 2
    assert [item.registry_cache_key for item in mapper.list_mappings_by_registry(REG_KEY)] == [REG_KEY]

    assert mapper.remove_registry_mappings(REG_KEY) == 1
    assert [item.registry_cache_key for item in mapper.list_mappings()] == [OTHER_REG_KEY]


def test_validate_and_recover_backs_up_corrupt_document(cache_root: Path) -> None:
    cache_root.mkdir()
    map_path = cache_root / "registry-map.json"
    map_path.write_text('{"version": "1.0", "mappings": [', encoding="utf-8")
    mapper = RegistryMapper(CacheLayout(cache_root))

    outcome = mapper.validate_and_recover()

    assert outcome.recovered
    assert outcome.backup_path is not None
    assert outcome.backup_path.name.startswith("registry-map.json.corrupted.")
    assert outcome.backup_path.read_text(encoding="utf-8") == '{"version": "1.0", "mappings": ['
    assert _read(map_path) == {"version": "1.0", "mappings": []}


def test_validate_and_recover_drops_only_invalid_records(cache_root: Path) -> None:
    cache_root.mkdir()
    valid = {
        "cache_key": REG_KEY,
        "registry_type": "git",
        "registry_url": "https://github.com/user/repo",
        "normalized_url": "https://github.com/user/repo",
        "created_at": "2025-03-01T12:00:00Z",
        "last_accessed": "2025-03-01T12:00:00Z",
    }
    short_key = {**valid, "cache_key": "abc"}
    upper_key = {**valid, "cache_key": REG_KEY.upper()}
    bad_type = {**valid, "registry_type": "ftp"}
    no_url = {**valid, "registry_url": ""}
    map_path = cache_root / "registry-map.json"
    map_path.write_text(
        json.dumps({"version": "1.0", "mappings": [valid, short_key, upper_key, bad_type, no_url, "junk"]}),
        encoding="utf-8",
    )
    mapper = RegistryMapper(CacheLayout(cache_root))

    outcome = mapper.validate_and_recover()

    assert not outcome.recovered
    assert outcome.dropped_records == 5
    assert _read(map_path)["mappings"] == [valid]


def test_validate_and_recover_leaves_clean_document_untouched(cache_root: Path, clock: FrozenClock) -> None:
    mapper = RulesetMapper(CacheLayout(cache_root), clock=clock)
    mapper.add_mapping(RULESET_KEY, REG_KEY, "my-rules")
    before = mapper.path.stat().st_mtime_ns

    outcome = mapper.validate_and_recover()

    assert outcome.dropped_records == 0
    assert not outcome.recovered
    assert mapper.path.stat().st_mtime_ns == before


def test_reads_of_corrupt_document_return_empty(cache_root: Path) -> None:
    cache_root.mkdir()
    (cache_root / "ruleset-map.json").write_text("not json", encoding="utf-8")
    mapper = RulesetMapper(CacheLayout(cache_root))

    assert mapper.list_mappings() == []
    assert mapper.get_mapping(RULESET_KEY) is None


def test_writes_recover_corrupt_document_first(cache_root: Path) -> None:
    cache_root.mkdir()
    (cache_root / "ruleset-map.json").write_text("not json", encoding="utf-8")
    mapper = RulesetMapper(CacheLayout(cache_root))

    mapper.add_mapping(RULESET_KEY, REG_KEY, "my-rules")

    assert [item.cache_key for item in mapper.list_mappings()] == [RULESET_KEY]
    backups = [item for item in cache_root.iterdir() if ".corrupted." in item.name]
    assert len(backups) == 1
    assert backups[0].read_text(encoding="utf-8") == "not json"


def test_missing_document_reads_as_empty(cache_root: Path) -> None:
    assert RegistryMapper(CacheLayout(cache_root)).list_mappings() == []


def test_separate_mapper_instances_do_not_lose_concurrent_updates(cache_root: Path, clock: FrozenClock) -> None:
    layout = CacheLayout(cache_root)
    keys = [sha256_hex(f"registry-{number}") for number in range(8)]

    def add(key: str) -> None:
        RegistryMapper(layout, clock=clock).add_mapping(key, "s3", f"s3://{key[:8]}", key[:8])

    threads = [threading.Thread(target=add, args=(key,)) for key in keys]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(item.cache_key for item in RegistryMapper(layout).list_mappings()) == sorted(keys)
    assert RegistryMapper(layout)._mutex is RegistryMapper(layout, clock=clock)._mutex
    assert RegistryMapper(layout)._mutex is not RulesetMapper(layout)._mutex
