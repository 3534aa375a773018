"""Shared file I/O helpers."""

from .files import directory_size, iter_files, remove_tree
from .json_io import create_json_exclusive, load_json_file, write_json, write_json_atomic

__all__ = [
    "create_json_exclusive",
    "directory_size",
    "iter_files",
    "load_json_file",
    "remove_tree",
    "write_json",
    "write_json_atomic",
]
