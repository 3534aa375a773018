"""Advisory per-registry lock files.

A lock is the file ``locks/{registryKey}.lock`` holding a JSON
:class:`~armcache.types.LockInfo`. It is cooperative: every process
sharing the cache root must take the lock before mutating a registry index
or a mapping document. Payload writes are not covered.

States: *unheld* (no file), *held* (file with a fresh, parseable record),
*stale* (record older than :data:`STALE_LOCK_THRESHOLD` or unparseable).
An acquirer removes a stale lock once before it starts polling.
"""

from __future__ import annotations

import json
import logging
import os
import socket
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from armcache.cache.layout import CacheLayout
from armcache.constants.cache import (
    LOCK_POLL_INTERVAL_SECONDS,
    LOCK_SUFFIX,
    LOCK_TEMP_PREFIX,
    LOCK_TEMP_SUFFIX,
    STALE_LOCK_THRESHOLD,
)
from armcache.constants.config import DEFAULT_LOCK_TIMEOUT_SECONDS
from armcache.exceptions import CacheIOError, LockTimeoutError
from armcache.io import create_json_exclusive, load_json_file
from armcache.types import Clock, LockInfo
from armcache.utils import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class RegistryLock:
    """Single-holder lock handle for one registry key."""

    def __init__(
        self,
        layout: CacheLayout,
        registry_key: str,
        *,
        timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        poll_interval: float = LOCK_POLL_INTERVAL_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self.lock_path = layout.lock_path(registry_key)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._clock = clock
        self._info: LockInfo | None = None

    @property
    def acquired(self) -> bool:
        return self._info is not None

    @property
    def info(self) -> LockInfo | None:
        return self._info

    def acquire(self, operation: str, timeout: float | None = None) -> LockInfo:
        """Block until the lock is ours or ``timeout`` seconds elapse.

        Raises:
            LockTimeoutError: another holder kept the lock for the whole window.
            CacheIOError: the lock directory or file could not be written.
        """
        if self._info is not None:
            return self._info

        wait = self.timeout if timeout is None else timeout
        self._remove_if_stale()
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheIOError(f"Failed to create lock directory {self.lock_path.parent}: {exc}") from exc

        deadline = time.monotonic() + wait
        while True:
            info = self._try_acquire(operation)
            if info is not None:
                self._info = info
                logger.debug("Acquired lock %s for %s", self.lock_path.name, operation)
                return info
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LockTimeoutError(f"Failed to acquire lock {self.lock_path} within {wait:.1f}s for {operation}")
            time.sleep(min(self.poll_interval, remaining))

    def release(self) -> None:
        """Release the lock if this handle holds it; releasing twice is a no-op."""
        info = self._info
        if info is None:
            return
        self._info = None

        current = read_lock_info(self.lock_path)
        if current is not None and current != info:
            logger.warning("Lock %s was taken over by pid %s; leaving it in place", self.lock_path.name, current.pid)
            return
        try:
            self.lock_path.unlink(missing_ok=True)
        except OSError as exc:
            raise CacheIOError(f"Failed to release lock {self.lock_path}: {exc}") from exc
        logger.debug("Released lock %s", self.lock_path.name)

    @contextmanager
    def hold(self, operation: str, timeout: float | None = None) -> Iterator[LockInfo]:
        """Hold the lock for the duration of a ``with`` block."""
        info = self.acquire(operation, timeout)
        try:
            yield info
        finally:
            self.release()

    def _try_acquire(self, operation: str) -> LockInfo | None:
        info = LockInfo(
            pid=os.getpid(),
            hostname=socket.gethostname(),
            created_at=format_timestamp(self._clock()),
            operation=operation,
        )
        try:
            created = create_json_exclusive(
                path=self.lock_path,
                payload=info.to_dict(),
                temp_prefix=LOCK_TEMP_PREFIX,
                temp_suffix=LOCK_TEMP_SUFFIX,
            )
        except OSError as exc:
            raise CacheIOError(f"Failed to create lock file {self.lock_path}: {exc}") from exc
        return info if created else None

    def _remove_if_stale(self) -> None:
        try:
            removed = remove_stale_lock(self.lock_path, now=self._clock())
        except OSError as exc:
            raise CacheIOError(f"Failed to clean up stale lock {self.lock_path}: {exc}") from exc
        if removed:
            logger.warning("Removed stale lock %s", self.lock_path.name)


def read_lock_info(lock_path: Path) -> LockInfo | None:
    """Return the record in a lock file, or None if it is missing or unreadable."""
    try:
        return LockInfo.from_dict(load_json_file(lock_path))
    except (OSError, ValueError):
        return None


def is_stale(info: LockInfo | None, now: datetime) -> bool:
    """A lock is stale when its record is unparseable or older than the threshold."""
    if info is None:
        return True
    created_at = parse_timestamp(info.created_at)
    if created_at is None:
        return True
    return now - created_at > STALE_LOCK_THRESHOLD


def remove_stale_lock(lock_path: Path, *, now: datetime) -> bool:
    """Remove ``lock_path`` if it is stale. Returns True when a file was removed.

    The candidate is first renamed aside so that a fresh lock published by
    another process in the meantime is never deleted: if the renamed file
    turns out to be fresh it is linked back into place.
    """
    if not _lock_file_is_stale(lock_path, now):
        return False

    quarantine = lock_path.with_name(f"{lock_path.name}.{uuid.uuid4().hex}.stale")
    try:
        os.rename(lock_path, quarantine)
    except FileNotFoundError:
        return False

    try:
        if _lock_file_is_stale(quarantine, now):
            return True
        try:
            os.link(quarantine, lock_path)
        except FileExistsError:
            logger.warning(
                "Lock %s was replaced while a fresh record was set aside; two holders may overlap",
                lock_path.name,
            )
        return False
    finally:
        quarantine.unlink(missing_ok=True)


def cleanup_stale_locks(root: Path, *, clock: Clock = utc_now) -> list[str]:
    """Remove every stale lock under ``<root>/locks/``; return the removed file names."""
    try:
        entries = sorted(CacheLayout(root).locks_dir.iterdir())
    except FileNotFoundError:
        return []

    removed: list[str] = []
    now = clock()
    for entry in entries:
        if not entry.name.endswith(LOCK_SUFFIX) or not entry.is_file():
            continue
        try:
            if remove_stale_lock(entry, now=now):
                removed.append(entry.name)
        except OSError as exc:
            logger.warning("Skipping lock %s: %s", entry.name, exc)
    if removed:
        logger.info("Removed %d stale lock(s)", len(removed))
    return removed


def _lock_file_is_stale(lock_path: Path, now: datetime) -> bool:
    try:
        raw = load_json_file(lock_path)
    except FileNotFoundError:
        return False
    except (json.JSONDecodeError, UnicodeDecodeError):
        return True
    return is_stale(LockInfo.from_dict(raw), now)
