"""Deterministic SHA-256 cache keys.

Keys depend only on their logical inputs; there is no salt or
machine-local state, so the same registry, ruleset, or pattern set maps to
the same directory name across processes and hosts.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

from armcache.cache.normalize import normalize_locator
from armcache.constants.cache import EMPTY_PATTERNS_SENTINEL


def sha256_hex(value: str) -> str:
    """Return the lowercase hex SHA-256 digest of ``value``."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def registry_key(registry_type: str, raw_locator: str) -> str:
    """Key a registry by its type and normalized locator."""
    return sha256_hex(f"{registry_type}:{normalize_locator(registry_type, raw_locator)}")


def normalize_patterns(patterns: Iterable[str]) -> list[str]:
    """Trim and sort patterns so selection order never changes the key."""
    return sorted(pattern.strip() for pattern in patterns)


def join_patterns(patterns: Iterable[str]) -> str:
    """Comma-joined normalized patterns, or an empty string for no patterns."""
    return ",".join(normalize_patterns(patterns))


def patterns_key(patterns: Iterable[str]) -> str:
    """Key a Git file-selection pattern set."""
    normalized = normalize_patterns(patterns)
    if not normalized:
        return sha256_hex(EMPTY_PATTERNS_SENTINEL)
    return sha256_hex(",".join(normalized))


def ruleset_key(name: str) -> str:
    """Key a named ruleset from a non-Git registry."""
    return sha256_hex(name.strip())
