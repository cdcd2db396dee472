"""Filesystem helpers used during discovery."""

import os
from collections.abc import Callable, Sequence

IGNORED_DIRS = frozenset({"__pycache__", "node_modules", "venv", "build", "dist"})


def find_files(root: str, predicate: Callable[[str], bool]) -> Sequence[str]:
    """Return files under root accepted by predicate, skipping hidden directories."""
    found: list[str] = []
    for dir_path, dir_names, file_names in os.walk(root):
        dir_names[:] = sorted(
            name
            for name in dir_names
            if not name.startswith(".") and name not in IGNORED_DIRS
        )
        for file_name in sorted(file_names):
            path = os.path.join(dir_path, file_name)
            if predicate(path):
                found.append(path)
    return found
