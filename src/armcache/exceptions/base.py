"""Root exception for the cache engine."""

from __future__ import annotations


class ArmCacheError(Exception):
    """Base class for all errors raised by armcache."""
