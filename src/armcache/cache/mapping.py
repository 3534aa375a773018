"""Reverse-lookup documents mapping cache keys back to their origin.

``registry-map.json`` and ``ruleset-map.json`` are conveniences for
diagnostics; the registry indexes stay authoritative. Both documents share
one protocol:

* every write goes to a temp file in the same directory and is renamed over
  the destination, so readers never see a partial document;
* read-modify-write sequences run under a dedicated lock file so that
  processes working on different registries do not lose each other's updates;
* a document that cannot be parsed is renamed aside with a unix-timestamp
  suffix and replaced by an empty one instead of failing the caller.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from armcache.cache.keys import join_patterns
from armcache.cache.layout import CacheLayout
from armcache.cache.lock import RegistryLock
from armcache.constants.cache import (
    CORRUPT_BACKUP_INFIX,
    MAP_FILE_VERSION,
    MAP_TEMP_PREFIX,
    MAP_TEMP_SUFFIX,
)
from armcache.constants.config import DEFAULT_LOCK_TIMEOUT_SECONDS
from armcache.exceptions import CacheCorruptError, CacheIOError
from armcache.io import load_json_file, write_json_atomic
from armcache.types import Clock, MappingRecovery, RegistryMapping, RulesetMapping
from armcache.utils import format_timestamp, utc_now

logger = logging.getLogger(__name__)

REGISTRY_MAP_LOCK_NAME: str = "registry-map"
RULESET_MAP_LOCK_NAME: str = "ruleset-map"

_DOCUMENT_MUTEXES: dict[Path, threading.RLock] = {}
_DOCUMENT_MUTEXES_GUARD = threading.Lock()


def _document_mutex(path: Path) -> threading.RLock:
    """Return the in-process mutex shared by every store of the document at ``path``."""
    key = path.absolute()
    with _DOCUMENT_MUTEXES_GUARD:
        mutex = _DOCUMENT_MUTEXES.get(key)
        if mutex is None:
            mutex = _DOCUMENT_MUTEXES[key] = threading.RLock()
        return mutex


class _MappingStore[RecordT: (RegistryMapping, RulesetMapping)]:
    """Shared load/save/recover machinery for one mapping document."""

    def __init__(
        self,
        path: Path,
        *,
        parse: Callable[[dict[str, object]], RecordT],
        lock: RegistryLock,
        clock: Clock,
    ) -> None:
        self.path = path
        self._parse = parse
        self._lock = lock
        self._clock = clock
        self._mutex = _document_mutex(path)

    def list_mappings(self) -> list[RecordT]:
        """Return every record; an unreadable document reads as empty."""
        with self._mutex:
            try:
                records, _ = self._load()
            except CacheCorruptError as exc:
                logger.warning("Ignoring unreadable mapping document %s: %s", self.path, exc)
                return []
        return records

    def get_mapping(self, cache_key: str) -> RecordT | None:
        return next((record for record in self.list_mappings() if record.cache_key == cache_key), None)

    def update_last_accessed(self, cache_key: str) -> bool:
        """Bump ``last_accessed`` for ``cache_key``; False if no such record."""
        return self._touch_where(lambda record: record.cache_key == cache_key)

    def remove_mapping(self, cache_key: str) -> bool:
        """Drop the record(s) for ``cache_key``; False if there were none."""
        return self._remove_where(lambda record: record.cache_key == cache_key) > 0

    def clear(self) -> bool:
        """Delete the whole document; False if there was none."""
        with self._mutex, self._lock.hold(f"clear {self.path.name}"):
            try:
                self.path.unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                raise CacheIOError(f"Failed to remove {self.path}: {exc}") from exc
        return True

    def validate_and_recover(self) -> MappingRecovery:
        """Repair the document in place.

        An unparseable document is moved to ``<name>.corrupted.<unix-ts>`` and
        replaced by an empty one. Otherwise structurally invalid records are
        dropped, and the document is rewritten only if any were.
        """
        with self._mutex, self._lock.hold(f"validate {self.path.name}"):
            try:
                records, raw_count = self._load()
            except CacheCorruptError as exc:
                return MappingRecovery(backup_path=self._recover(exc))

            valid = [record for record in records if record.is_valid()]
            dropped = raw_count - len(valid)
            if dropped:
                self._save(valid)
                logger.info("Dropped %d invalid record(s) from %s", dropped, self.path.name)
            return MappingRecovery(dropped_records=dropped)

    def _identity(self, record: RecordT) -> tuple[str, ...]:
        return (record.cache_key,)

    def _upsert(self, record: RecordT) -> RecordT:
        """Insert ``record`` or replace the one with the same identity, keeping its ``created_at``."""
        identity = self._identity(record)

        def mutate(records: list[RecordT]) -> bool:
            for position, existing in enumerate(records):
                if self._identity(existing) == identity:
                    record.created_at = existing.created_at
                    records[position] = record
                    return True
            records.append(record)
            return True

        self._update(mutate)
        return record

    def _touch_where(self, predicate: Callable[[RecordT], bool]) -> bool:
        stamp = format_timestamp(self._clock())

        def mutate(records: list[RecordT]) -> bool:
            touched = False
            for record in records:
                if predicate(record):
                    record.last_accessed = stamp
                    touched = True
            return touched

        return self._update(mutate)

    def _remove_where(self, predicate: Callable[[RecordT], bool]) -> int:
        removed = 0

        def mutate(records: list[RecordT]) -> bool:
            nonlocal removed
            kept = [record for record in records if not predicate(record)]
            removed = len(records) - len(kept)
            records[:] = kept
            return removed > 0

        self._update(mutate)
        return removed

    def _update(self, mutate: Callable[[list[RecordT]], bool]) -> bool:
        with self._mutex, self._lock.hold(f"update {self.path.name}"):
            try:
                records, _ = self._load()
            except CacheCorruptError as exc:
                self._recover(exc)
                records = []
            changed = mutate(records)
            if changed:
                self._save(records)
            return changed

    def _load(self) -> tuple[list[RecordT], int]:
        """Return parsed records and the number of raw entries in the document."""
        try:
            raw = load_json_file(self.path)
        except FileNotFoundError:
            return [], 0
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise CacheCorruptError(f"Failed to parse {self.path}: {exc}") from exc
        except OSError as exc:
            raise CacheIOError(f"Failed to read {self.path}: {exc}") from exc

        if not isinstance(raw, dict):
            raise CacheCorruptError(f"{self.path} must contain a JSON object")
        raw_mappings = raw.get("mappings", [])
        if raw_mappings is None:
            raw_mappings = []
        if not isinstance(raw_mappings, list):
            raise CacheCorruptError(f"{self.path} 'mappings' must be a list")

        records = [self._parse(item) for item in raw_mappings if isinstance(item, dict)]
        return records, len(raw_mappings)

    def _save(self, records: list[RecordT]) -> None:
        payload = {
            "version": MAP_FILE_VERSION,
            "mappings": [record.to_dict() for record in records],
        }
        try:
            write_json_atomic(
                path=self.path,
                payload=payload,
                temp_prefix=MAP_TEMP_PREFIX,
                temp_suffix=MAP_TEMP_SUFFIX,
            )
        except OSError as exc:
            raise CacheIOError(f"Failed to write {self.path}: {exc}") from exc

    def _recover(self, cause: Exception) -> Path:
        backup = self._backup_path()
        try:
            self.path.rename(backup)
        except OSError as exc:
            raise CacheIOError(f"Failed to back up corrupt {self.path}: {exc}") from exc
        logger.warning("Mapping document %s was corrupt (%s); preserved as %s", self.path.name, cause, backup.name)
        self._save([])
        return backup

    def _backup_path(self) -> Path:
        base = f"{self.path.name}{CORRUPT_BACKUP_INFIX}{int(time.time())}"
        candidate = self.path.with_name(base)
        attempt = 1
        while candidate.exists():
            candidate = self.path.with_name(f"{base}-{attempt}")
            attempt += 1
        return candidate


class RegistryMapper(_MappingStore[RegistryMapping]):
    """Reverse lookup from registry key to registry locator."""

    def __init__(
        self,
        layout: CacheLayout,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(
            layout.registry_map_path,
            parse=RegistryMapping.from_dict,
            lock=RegistryLock(layout, REGISTRY_MAP_LOCK_NAME, timeout=lock_timeout, clock=clock),
            clock=clock,
        )

    def add_mapping(
        self,
        cache_key: str,
        registry_type: str,
        registry_url: str,
        normalized_url: str,
    ) -> RegistryMapping:
        stamp = format_timestamp(self._clock())
        return self._upsert(
            RegistryMapping(
                cache_key=cache_key,
                registry_type=registry_type,
                registry_url=registry_url,
                normalized_url=normalized_url,
                created_at=stamp,
                last_accessed=stamp,
            )
        )

    def find_mapping_by_url(self, registry_type: str, normalized_url: str) -> RegistryMapping | None:
        for record in self.list_mappings():
            if record.registry_type == registry_type and record.normalized_url == normalized_url:
                return record
        return None


class RulesetMapper(_MappingStore[RulesetMapping]):
    """Reverse lookup from ruleset (or pattern-set) key to ruleset name and patterns."""

    def __init__(
        self,
        layout: CacheLayout,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(
            layout.ruleset_map_path,
            parse=RulesetMapping.from_dict,
            lock=RegistryLock(layout, RULESET_MAP_LOCK_NAME, timeout=lock_timeout, clock=clock),
            clock=clock,
        )

    def add_mapping(
        self,
        cache_key: str,
        registry_cache_key: str,
        ruleset_name: str,
        patterns: Iterable[str] = (),
    ) -> RulesetMapping:
        pattern_list = list(patterns)
        stamp = format_timestamp(self._clock())
        return self._upsert(
            RulesetMapping(
                cache_key=cache_key,
                registry_cache_key=registry_cache_key,
                ruleset_name=ruleset_name,
                normalized_patterns=join_patterns(pattern_list),
                created_at=stamp,
                last_accessed=stamp,
                patterns=pattern_list,
            )
        )

    def find_mapping_by_ruleset(
        self,
        registry_cache_key: str,
        ruleset_name: str,
        patterns: Iterable[str] = (),
    ) -> RulesetMapping | None:
        normalized = join_patterns(patterns)
        for record in self.list_mappings():
            if (
                record.registry_cache_key == registry_cache_key
                and record.ruleset_name == ruleset_name
                and record.normalized_patterns == normalized
            ):
                return record
        return None

    def list_mappings_by_registry(self, registry_cache_key: str) -> list[RulesetMapping]:
        return [record for record in self.list_mappings() if record.registry_cache_key == registry_cache_key]

    def touch_ruleset(self, registry_cache_key: str, cache_key: str) -> bool:
        """Bump ``last_accessed`` for one ruleset of one registry."""
        return self._touch_where(
            lambda record: record.cache_key == cache_key and record.registry_cache_key == registry_cache_key
        )

    def remove_registry_mappings(self, registry_cache_key: str, cache_keys: Iterable[str] | None = None) -> int:
        """Drop the ruleset records of a registry, optionally only those in ``cache_keys``."""
        doomed = None if cache_keys is None else set(cache_keys)
        return self._remove_where(
            lambda record: record.registry_cache_key == registry_cache_key
            and (doomed is None or record.cache_key in doomed)
        )

    def _identity(self, record: RulesetMapping) -> tuple[str, ...]:
        return (record.cache_key, record.registry_cache_key)
