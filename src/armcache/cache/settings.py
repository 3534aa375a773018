"""Global cache settings (``<root>/config.json``) and cache-root initialisation."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from armcache.cache.layout import CacheLayout
from armcache.constants.cache import CONFIG_TEMP_PREFIX, CONFIG_TEMP_SUFFIX
from armcache.exceptions import CacheCorruptError, CacheIOError
from armcache.io import load_json_file, write_json_atomic
from armcache.types import CacheSettings, Clock
from armcache.utils import utc_now

logger = logging.getLogger(__name__)


def load_cache_settings(root: Path, *, clock: Clock = utc_now) -> CacheSettings:
    """Load ``config.json``, writing the defaults first when it does not exist.

    Raises:
        CacheCorruptError: the file exists but is not a valid settings document.
        CacheIOError: the file could not be read or created.
    """
    config_path = CacheLayout(root).config_path
    try:
        raw = load_json_file(config_path)
    except FileNotFoundError:
        settings = CacheSettings.defaults(clock())
        save_cache_settings(root, settings)
        logger.debug("Created default cache settings at %s", config_path)
        return settings
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise CacheCorruptError(f"Failed to parse cache config {config_path}: {exc}") from exc
    except OSError as exc:
        raise CacheIOError(f"Failed to read cache config {config_path}: {exc}") from exc

    return CacheSettings.from_dict(raw)


def save_cache_settings(root: Path, settings: CacheSettings) -> None:
    config_path = CacheLayout(root).config_path
    try:
        write_json_atomic(
            path=config_path,
            payload=settings.to_dict(),
            temp_prefix=CONFIG_TEMP_PREFIX,
            temp_suffix=CONFIG_TEMP_SUFFIX,
        )
    except OSError as exc:
        raise CacheIOError(f"Failed to write cache config {config_path}: {exc}") from exc


def initialize_cache(root: Path, *, clock: Clock = utc_now) -> CacheSettings:
    """Create the ``locks/`` and ``registries/`` directories and ensure ``config.json`` exists."""
    layout = CacheLayout(root)
    for directory in (layout.locks_dir, layout.registries_dir):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheIOError(f"Failed to create cache directory {directory}: {exc}") from exc
    return load_cache_settings(root, clock=clock)
