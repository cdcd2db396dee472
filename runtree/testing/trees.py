"""Helpers for building position trees in tests."""

import os

from runtree.models.position import Position
from runtree.models.tree import Tree


def dir_tree(path: str, *children: Tree) -> Tree:
    position = Position(id=path, type="dir", name=os.path.basename(path), path=path)
    return Tree.build(position, children)


def file_tree(path: str, *children: Tree) -> Tree:
    position = Position(id=path, type="file", name=os.path.basename(path), path=path)
    return Tree.build(position, children)


def namespace_tree(parent_id: str, name: str, file_path: str, *children: Tree) -> Tree:
    position = Position(
        id=f"{parent_id}::{name}", type="namespace", name=name, path=file_path
    )
    return Tree.build(position, children)


def case_tree(
    parent_id: str, name: str, file_path: str | None = None, start: int | None = None
) -> Tree:
    """Build a single test position below parent_id (a file or namespace id)."""
    position = Position(
        id=f"{parent_id}::{name}",
        type="test",
        name=name,
        path=file_path or parent_id.split("::", 1)[0],
        range=(start, start + 1) if start is not None else None,
    )
    return Tree.build(position)
