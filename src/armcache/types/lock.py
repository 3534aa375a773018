"""Lock file payload."""

from __future__ import annotations

from dataclasses import dataclass

from armcache.types.common import JsonObject


@dataclass(frozen=True)
class LockInfo:
    """Holder details written into ``locks/{registryKey}.lock``."""

    pid: int
    hostname: str
    created_at: str
    operation: str

    def to_dict(self) -> JsonObject:
        return {
            "pid": self.pid,
            "hostname": self.hostname,
            "created_at": self.created_at,
            "operation": self.operation,
        }

    @classmethod
    def from_dict(cls, raw: object) -> LockInfo | None:
        """Return a LockInfo, or None when the payload is not a lock record."""
        if not isinstance(raw, dict):
            return None
        pid = raw.get("pid")
        if isinstance(pid, bool) or not isinstance(pid, int):
            return None
        hostname = raw.get("hostname")
        created_at = raw.get("created_at")
        operation = raw.get("operation")
        return cls(
            pid=pid,
            hostname=hostname if isinstance(hostname, str) else "",
            created_at=created_at if isinstance(created_at, str) else "",
            operation=operation if isinstance(operation, str) else "",
        )
