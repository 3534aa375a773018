"""Registry cache engine for versioned ruleset bundles."""

from __future__ import annotations

from typing import Any

__version__ = "0.1.0"

__all__ = ["__version__", "build_cache_manager", "initialize_cache"]


def __getattr__(name: str) -> Any:
    """Lazily expose the cache facade so ``import armcache`` stays cheap for the CLI."""
    if name == "build_cache_manager":
        from armcache.cache.store import build_cache_manager

        return build_cache_manager
    if name == "initialize_cache":
        from armcache.cache.settings import initialize_cache

        return initialize_cache
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
