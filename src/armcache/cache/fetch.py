"""Cache-miss-then-fetch orchestration over caller-supplied collaborators."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import Protocol

from armcache.cache.store import CacheManager
from armcache.types import CachedFiles

logger = logging.getLogger(__name__)

type Selector = str | Sequence[str]


class VersionResolver(Protocol):
    """Turns a version constraint into the concrete version the cache is keyed by."""

    def list_versions(self) -> list[str]: ...

    def resolve_version(self, constraint: str) -> str: ...


class ByteSource(Protocol):
    """Fetches the files of one ruleset version from the registry itself."""

    def fetch(self, locator: str, selector: Selector, version: str) -> Mapping[str, bytes]: ...


def fetch_with_cache(
    manager: CacheManager,
    source: ByteSource,
    locator: str,
    selector: Selector,
    version: str,
    ttl: timedelta,
    *,
    ruleset_name: str = "",
) -> CachedFiles:
    """Serve a version from the cache while it is fresh, otherwise fetch and store it."""
    if manager.is_valid(locator, ttl):
        cached = manager.get(locator, selector, version)  # type: ignore[arg-type]
        if cached is not None:
            return cached
    else:
        logger.debug("Registry %s is stale or unknown; fetching %s", locator, version)

    files = dict(source.fetch(locator, selector, version))
    path = manager.store(locator, selector, version, files, ruleset_name=ruleset_name)  # type: ignore[arg-type]
    return CachedFiles(path=path, files=files, access_recorded=True)


def resolve_and_fetch(
    manager: CacheManager,
    resolver: VersionResolver,
    source: ByteSource,
    locator: str,
    selector: Selector,
    constraint: str,
    ttl: timedelta,
    *,
    ruleset_name: str = "",
) -> tuple[str, CachedFiles]:
    """Resolve ``constraint`` first, then go through :func:`fetch_with_cache`."""
    version = resolver.resolve_version(constraint)
    return version, fetch_with_cache(manager, source, locator, selector, version, ttl, ruleset_name=ruleset_name)
