"""Tests for JSON IO helpers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from armcache.io import create_json_exclusive, directory_size, remove_tree, write_json_atomic


def _leftovers(directory: Path, prefix: str, suffix: str) -> list[Path]:
    return [item for item in directory.iterdir() if item.name.startswith(prefix) and item.name.endswith(suffix)]


def test_write_json_atomic_cleans_temp_file_on_error(tmp_path: Path) -> None:
    out_path = tmp_path / "config.json"

    with pytest.raises(TypeError):
        write_json_atomic(path=out_path, payload={"bad": object()}, temp_prefix=".tmp-", temp_suffix=".json")

    assert not _leftovers(tmp_path, ".tmp-", ".json")
    assert not out_path.exists()


def test_write_json_atomic_replaces_existing(tmp_path: Path) -> None:
    out_path = tmp_path / "nested" / "config.json"

    write_json_atomic(path=out_path, payload={"a": 1}, temp_prefix=".tmp-", temp_suffix=".json")
    write_json_atomic(path=out_path, payload={"a": 2}, temp_prefix=".tmp-", temp_suffix=".json")

    assert json.loads(out_path.read_text(encoding="utf-8")) == {"a": 2}
    assert not _leftovers(out_path.parent, ".tmp-", ".json")


def test_create_json_exclusive_never_overwrites(tmp_path: Path) -> None:
    lock_path = tmp_path / "locks" / "abc.lock"

    first = create_json_exclusive(path=lock_path, payload={"pid": 1}, temp_prefix=".lock-", temp_suffix=".tmp")
    second = create_json_exclusive(path=lock_path, payload={"pid": 2}, temp_prefix=".lock-", temp_suffix=".tmp")

    assert first is True
    assert second is False
    assert json.loads(lock_path.read_text(encoding="utf-8")) == {"pid": 1}
    assert not _leftovers(lock_path.parent, ".lock-", ".tmp")


def test_directory_size_and_remove_tree(tmp_path: Path) -> None:
    tree = tmp_path / "tree"
    (tree / "a").mkdir(parents=True)
    (tree / "a" / "one.md").write_bytes(b"12345")
    (tree / "two.md").write_bytes(b"123")

    assert directory_size(tree) == 8
    assert directory_size(tmp_path / "missing") == 0

    remove_tree(tree)
    remove_tree(tree)

    assert not tree.exists()
