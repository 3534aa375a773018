"""Result records returned by cache reads and maintenance sweeps."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from armcache.types.index import RegistryIndex
from armcache.types.mapping import RegistryMapping, RulesetMapping


@dataclass(frozen=True)
class CachedFiles:
    """Files read from a cached version directory.

    ``access_recorded`` is False when the best-effort refresh of the
    registry index access timestamps could not be persisted. The files are
    still complete and usable in that case.
    """

    path: Path
    files: dict[str, bytes]
    access_recorded: bool


@dataclass
class EvictionReport:
    """What a TTL, size or clear sweep removed."""

    removed_registries: list[str] = field(default_factory=list)
    removed_rulesets: list[str] = field(default_factory=list)
    removed_versions: list[str] = field(default_factory=list)
    failed_registries: list[str] = field(default_factory=list)
    bytes_freed: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.removed_registries or self.removed_rulesets or self.removed_versions)

    def merge(self, other: EvictionReport) -> None:
        self.removed_registries.extend(other.removed_registries)
        self.removed_rulesets.extend(other.removed_rulesets)
        self.removed_versions.extend(other.removed_versions)
        self.failed_registries.extend(other.failed_registries)
        self.bytes_freed += other.bytes_freed


@dataclass(frozen=True)
class CacheStats:
    """Aggregate size and registry count for a cache root."""

    total_size_bytes: int
    registry_count: int

    @property
    def total_size_mb(self) -> float:
        return self.total_size_bytes / (1024 * 1024)

    def to_dict(self) -> dict[str, int | float]:
        return {
            "total_size_bytes": self.total_size_bytes,
            "total_size_mb": self.total_size_mb,
            "registry_count": self.registry_count,
        }


@dataclass(frozen=True)
class MappingRecovery:
    """Outcome of validating a mapping document."""

    backup_path: Path | None = None
    dropped_records: int = 0

    @property
    def recovered(self) -> bool:
        return self.backup_path is not None


@dataclass(frozen=True)
class RegistryDescription:
    """A registry index joined with its reverse mappings, for diagnostics."""

    registry_key: str
    index: RegistryIndex
    mapping: RegistryMapping | None
    ruleset_mappings: list[RulesetMapping]
    size_bytes: int
