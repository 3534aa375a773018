"""Filesystem layout of a cache root."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from armcache.constants.cache import (
    CONFIG_FILENAME,
    INDEX_FILENAME,
    LOCK_SUFFIX,
    LOCKS_DIRNAME,
    REGISTRIES_DIRNAME,
    REGISTRY_MAP_FILENAME,
    REPOSITORY_DIRNAME,
    RULESET_MAP_FILENAME,
    RULESETS_DIRNAME,
)


@dataclass(frozen=True)
class CacheLayout:
    """Path arithmetic for ``<root>/registries/{registry}/rulesets/{ruleset}/{version}``."""

    root: Path

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILENAME

    @property
    def registry_map_path(self) -> Path:
        return self.root / REGISTRY_MAP_FILENAME

    @property
    def ruleset_map_path(self) -> Path:
        return self.root / RULESET_MAP_FILENAME

    @property
    def locks_dir(self) -> Path:
        return self.root / LOCKS_DIRNAME

    @property
    def registries_dir(self) -> Path:
        return self.root / REGISTRIES_DIRNAME

    def lock_path(self, registry_key: str) -> Path:
        return self.locks_dir / f"{registry_key}{LOCK_SUFFIX}"

    def registry_dir(self, registry_key: str) -> Path:
        return self.registries_dir / registry_key

    def index_path(self, registry_key: str) -> Path:
        return self.registry_dir(registry_key) / INDEX_FILENAME

    def repository_dir(self, registry_key: str) -> Path:
        return self.registry_dir(registry_key) / REPOSITORY_DIRNAME

    def rulesets_dir(self, registry_key: str) -> Path:
        return self.registry_dir(registry_key) / RULESETS_DIRNAME

    def ruleset_dir(self, registry_key: str, ruleset_key: str) -> Path:
        return self.rulesets_dir(registry_key) / ruleset_key

    def version_dir(self, registry_key: str, ruleset_key: str, version: str) -> Path:
        return self.ruleset_dir(registry_key, ruleset_key) / version

    def registry_keys(self) -> list[str]:
        """Return the keys of every registry directory currently on disk."""
        try:
            entries = sorted(self.registries_dir.iterdir())
        except FileNotFoundError:
            return []
        return [entry.name for entry in entries if entry.is_dir()]
