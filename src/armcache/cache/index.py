"""Load and save per-registry ``index.json`` documents.

Index writes are plain overwrites. A torn write is only ever observed as a
missing or corrupt index, which readers treat as a stale cache; payload
files remain verifiable by presence.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from armcache.constants.cache import INDEX_FILENAME
from armcache.exceptions import CacheCorruptError, CacheIOError, IndexNotFoundError
from armcache.io import load_json_file, write_json
from armcache.types import RegistryIndex

logger = logging.getLogger(__name__)


def load_registry_index(registry_dir: Path) -> RegistryIndex:
    """Load the index of a registry directory.

    Raises:
        IndexNotFoundError: the registry has no index yet.
        CacheCorruptError: the index exists but is not a valid document.
        CacheIOError: the index could not be read.
    """
    index_path = registry_dir / INDEX_FILENAME
    try:
        raw = load_json_file(index_path)
    except FileNotFoundError as exc:
        raise IndexNotFoundError(f"Registry index not found: {index_path}") from exc
    except json.JSONDecodeError as exc:
        raise CacheCorruptError(f"Failed to parse registry index {index_path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise CacheCorruptError(f"Registry index {index_path} is not UTF-8: {exc}") from exc
    except OSError as exc:
        raise CacheIOError(f"Failed to read registry index {index_path}: {exc}") from exc

    return RegistryIndex.from_dict(raw)


def save_registry_index(registry_dir: Path, index: RegistryIndex) -> None:
    """Write the index of a registry directory, creating the directory if needed."""
    index_path = registry_dir / INDEX_FILENAME
    try:
        write_json(index_path, index.to_dict())
    except OSError as exc:
        raise CacheIOError(f"Failed to write registry index {index_path}: {exc}") from exc
    logger.debug("Saved registry index %s (%d rulesets)", index_path, len(index.rulesets))
