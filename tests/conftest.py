"""Shared pytest fixtures for cache tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest


class FrozenClock:
    """Deterministic stand-in for ``utc_now`` that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC))


@pytest.fixture()
def cache_root(tmp_path: Path) -> Path:
    """Return a not-yet-created cache root inside the test's temp dir."""
    return tmp_path / "cache"
