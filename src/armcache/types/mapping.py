"""Reverse-lookup records stored in ``registry-map.json`` and ``ruleset-map.json``."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from armcache.constants.registry import VALID_REGISTRY_TYPES
from armcache.types.common import JsonObject

_CACHE_KEY_PATTERN = re.compile(r"[0-9a-f]{64}")


def is_cache_key(value: str) -> bool:
    """Return True for a 64-character lowercase hex digest."""
    return bool(_CACHE_KEY_PATTERN.fullmatch(value))


@dataclass
class RegistryMapping:
    """Maps a registry key back to the locator it was derived from."""

    cache_key: str
    registry_type: str
    registry_url: str
    normalized_url: str
    created_at: str
    last_accessed: str

    def is_valid(self) -> bool:
        if not self.cache_key or not self.registry_type or not self.registry_url:
            return False
        if not is_cache_key(self.cache_key):
            return False
        return self.registry_type in VALID_REGISTRY_TYPES

    def to_dict(self) -> JsonObject:
        return {
            "cache_key": self.cache_key,
            "registry_type": self.registry_type,
            "registry_url": self.registry_url,
            "normalized_url": self.normalized_url,
            "created_at": self.created_at,
            "last_accessed": self.last_accessed,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> RegistryMapping:
        return cls(
            cache_key=_string(raw.get("cache_key")),
            registry_type=_string(raw.get("registry_type")),
            registry_url=_string(raw.get("registry_url")),
            normalized_url=_string(raw.get("normalized_url")),
            created_at=_string(raw.get("created_at")),
            last_accessed=_string(raw.get("last_accessed")),
        )


@dataclass
class RulesetMapping:
    """Maps a ruleset (or pattern-set) key back to its registry, name, and patterns."""

    cache_key: str
    registry_cache_key: str
    ruleset_name: str
    normalized_patterns: str
    created_at: str
    last_accessed: str
    patterns: list[str] = field(default_factory=list)

    def is_valid(self) -> bool:
        if not self.cache_key or not self.registry_cache_key:
            return False
        return is_cache_key(self.cache_key) and is_cache_key(self.registry_cache_key)

    def to_dict(self) -> JsonObject:
        return {
            "cache_key": self.cache_key,
            "registry_cache_key": self.registry_cache_key,
            "ruleset_name": self.ruleset_name,
            "patterns": list(self.patterns),
            "normalized_patterns": self.normalized_patterns,
            "created_at": self.created_at,
            "last_accessed": self.last_accessed,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> RulesetMapping:
        raw_patterns = raw.get("patterns")
        patterns = [item for item in raw_patterns if isinstance(item, str)] if isinstance(raw_patterns, list) else []
        return cls(
            cache_key=_string(raw.get("cache_key")),
            registry_cache_key=_string(raw.get("registry_cache_key")),
            ruleset_name=_string(raw.get("ruleset_name")),
            normalized_patterns=_string(raw.get("normalized_patterns")),
            created_at=_string(raw.get("created_at")),
            last_accessed=_string(raw.get("last_accessed")),
            patterns=patterns,
        )


def _string(value: object) -> str:
    return value if isinstance(value, str) else ""
