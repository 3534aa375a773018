"""Filesystem helpers for sizing and removing cache trees."""

from __future__ import annotations

import os
import shutil
from pathlib import Path


def directory_size(path: Path) -> int:
    """Return the total size in bytes of regular files below ``path``.

    Entries that vanish or cannot be stat'ed mid-walk are skipped.
    """
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for filename in filenames:
            try:
                total += (Path(dirpath) / filename).stat().st_size
            except OSError:
                continue
    return total


def remove_tree(path: Path) -> None:
    """Delete a directory tree, treating an already-missing tree as success."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return


def iter_files(root: Path) -> list[Path]:
    """Return every regular file below ``root`` in sorted order."""
    return sorted(path for path in root.rglob("*") if path.is_file())
