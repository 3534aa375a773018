"""Registry index records persisted as ``registries/{key}/index.json``."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from armcache.exceptions import CacheCorruptError
from armcache.types.common import JsonObject
from armcache.utils import format_timestamp


@dataclass
class VersionCacheEntry:
    """Timestamps for one cached version; payload bytes live on disk."""

    created_on: str
    last_updated_on: str
    last_accessed_on: str

    @classmethod
    def new(cls, now: datetime) -> VersionCacheEntry:
        stamp = format_timestamp(now)
        return cls(created_on=stamp, last_updated_on=stamp, last_accessed_on=stamp)

    def touch(self, now: datetime) -> None:
        self.last_accessed_on = format_timestamp(now)

    def to_dict(self) -> JsonObject:
        return {
            "created_on": self.created_on,
            "last_updated_on": self.last_updated_on,
            "last_accessed_on": self.last_accessed_on,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> VersionCacheEntry:
        return cls(
            created_on=_string(raw.get("created_on")),
            last_updated_on=_string(raw.get("last_updated_on")),
            last_accessed_on=_string(raw.get("last_accessed_on")),
        )


@dataclass
class RulesetCacheEntry:
    """One ruleset (or Git pattern set) and the versions cached for it.

    Git registries record the pattern list, other registries the ruleset
    name. Either is kept only for display; the dictionary key in the owning
    index is the authoritative ruleset key.
    """

    created_on: str
    last_updated_on: str
    last_accessed_on: str
    normalized_ruleset_name: str = ""
    normalized_ruleset_patterns: list[str] = field(default_factory=list)
    versions: dict[str, VersionCacheEntry] = field(default_factory=dict)

    @classmethod
    def new(cls, now: datetime, *, name: str = "", patterns: list[str] | None = None) -> RulesetCacheEntry:
        stamp = format_timestamp(now)
        return cls(
            created_on=stamp,
            last_updated_on=stamp,
            last_accessed_on=stamp,
            normalized_ruleset_name=name,
            normalized_ruleset_patterns=list(patterns or []),
        )

    def touch(self, now: datetime) -> None:
        self.last_accessed_on = format_timestamp(now)

    def to_dict(self) -> JsonObject:
        payload: JsonObject = {}
        if self.normalized_ruleset_patterns:
            payload["normalized_ruleset_patterns"] = list(self.normalized_ruleset_patterns)
        if self.normalized_ruleset_name:
            payload["normalized_ruleset_name"] = self.normalized_ruleset_name
        payload["created_on"] = self.created_on
        payload["last_updated_on"] = self.last_updated_on
        payload["last_accessed_on"] = self.last_accessed_on
        payload["versions"] = {version: entry.to_dict() for version, entry in self.versions.items()}
        return payload

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> RulesetCacheEntry:
        raw_patterns = raw.get("normalized_ruleset_patterns")
        patterns = [item for item in raw_patterns if isinstance(item, str)] if isinstance(raw_patterns, list) else []
        raw_versions = raw.get("versions")
        versions: dict[str, VersionCacheEntry] = {}
        if isinstance(raw_versions, dict):
            for version, value in raw_versions.items():
                if isinstance(version, str) and isinstance(value, dict):
                    versions[version] = VersionCacheEntry.from_dict(value)
        return cls(
            created_on=_string(raw.get("created_on")),
            last_updated_on=_string(raw.get("last_updated_on")),
            last_accessed_on=_string(raw.get("last_accessed_on")),
            normalized_ruleset_name=_string(raw.get("normalized_ruleset_name")),
            normalized_ruleset_patterns=patterns,
            versions=versions,
        )


@dataclass
class RegistryIndex:
    """Per-registry record of every cached ruleset and version."""

    created_on: str
    last_updated_on: str
    last_accessed_on: str
    normalized_registry_url: str
    normalized_registry_type: str
    rulesets: dict[str, RulesetCacheEntry] = field(default_factory=dict)

    @classmethod
    def new(cls, now: datetime, *, normalized_url: str, registry_type: str) -> RegistryIndex:
        stamp = format_timestamp(now)
        return cls(
            created_on=stamp,
            last_updated_on=stamp,
            last_accessed_on=stamp,
            normalized_registry_url=normalized_url,
            normalized_registry_type=registry_type,
        )

    def touch(self, now: datetime) -> None:
        self.last_accessed_on = format_timestamp(now)

    def to_dict(self) -> JsonObject:
        return {
            "created_on": self.created_on,
            "last_updated_on": self.last_updated_on,
            "last_accessed_on": self.last_accessed_on,
            "normalized_registry_url": self.normalized_registry_url,
            "normalized_registry_type": self.normalized_registry_type,
            "rulesets": {key: entry.to_dict() for key, entry in self.rulesets.items()},
        }

    @classmethod
    def from_dict(cls, raw: object) -> RegistryIndex:
        """Build an index from decoded JSON, rejecting non-object documents."""
        if not isinstance(raw, dict):
            raise CacheCorruptError("registry index must be a JSON object")
        raw_rulesets = raw.get("rulesets")
        if raw_rulesets is not None and not isinstance(raw_rulesets, dict):
            raise CacheCorruptError("registry index 'rulesets' must be a JSON object")

        rulesets: dict[str, RulesetCacheEntry] = {}
        for key, value in (raw_rulesets or {}).items():
            if isinstance(key, str) and isinstance(value, dict):
                rulesets[key] = RulesetCacheEntry.from_dict(value)

        return cls(
            created_on=_string(raw.get("created_on")),
            last_updated_on=_string(raw.get("last_updated_on")),
            last_accessed_on=_string(raw.get("last_accessed_on")),
            normalized_registry_url=_string(raw.get("normalized_registry_url")),
            normalized_registry_type=_string(raw.get("normalized_registry_type")),
            rulesets=rulesets,
        )


def _string(value: object) -> str:
    return value if isinstance(value, str) else ""
