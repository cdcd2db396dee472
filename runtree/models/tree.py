"""Position tree stored as an arena of nodes addressed by position id."""

import os
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from runtree.models.position import Position


@dataclass(frozen=True, kw_only=True)
class _Arena:
    """Shared node storage. Parents are lookups, not ownership edges."""

    positions: Mapping[str, Position]
    children: Mapping[str, tuple[str, ...]]
    parents: Mapping[str, str | None]
    root: str


@dataclass(frozen=True)
class Tree:
    """View of a single node in a position arena.

    Arenas are never mutated; operations that change shape return a new tree.
    """

    key: str
    arena: _Arena = field(repr=False, compare=False)

    @classmethod
    def build(cls, position: Position, children: Sequence["Tree"] = ()) -> "Tree":
        """Create a tree rooted at position with the given child subtrees."""
        positions: dict[str, Position] = {position.id: position}
        child_ids: dict[str, tuple[str, ...]] = {}
        parents: dict[str, str | None] = {position.id: None}

        for child in children:
            for node in child.iter_nodes():
                positions[node.key] = node.data()
                child_ids[node.key] = child.arena.children.get(node.key, ())
                parents[node.key] = child.arena.parents[node.key]
            parents[child.key] = position.id

        child_ids[position.id] = tuple(child.key for child in children)
        arena = _Arena(
            positions=positions, children=child_ids, parents=parents, root=position.id
        )
        return cls(position.id, arena)

    @classmethod
    def from_files(cls, root: str, files: Iterable[str]) -> "Tree":
        """Build a directory tree holding unparsed file nodes.

        File nodes have no children; their contents are discovered lazily.
        """
        root = root.rstrip(os.sep) or os.sep
        positions: dict[str, Position] = {root: _dir_position(root)}
        children: dict[str, list[str]] = {root: []}
        parents: dict[str, str | None] = {root: None}

        for file_path in sorted(files):
            relative = os.path.relpath(file_path, root)
            if relative.startswith(os.pardir):
                continue
            parent = root
            for part in relative.split(os.sep)[:-1]:
                dir_path = os.path.join(parent, part)
                if dir_path not in positions:
                    positions[dir_path] = _dir_position(dir_path)
                    children[dir_path] = []
                    children[parent].append(dir_path)
                    parents[dir_path] = parent
                parent = dir_path
            positions[file_path] = Position(
                id=file_path,
                type="file",
                name=os.path.basename(file_path),
                path=file_path,
            )
            children[parent].append(file_path)
            parents[file_path] = parent

        arena = _Arena(
            positions=positions,
            children={key: tuple(value) for key, value in children.items()},
            parents=parents,
            root=root,
        )
        return cls(root, arena)

    def data(self) -> Position:
        return self.arena.positions[self.key]

    def children(self) -> list["Tree"]:
        return [Tree(key, self.arena) for key in self.arena.children.get(self.key, ())]

    def parent(self) -> "Tree | None":
        parent = self.arena.parents.get(self.key)
        return Tree(parent, self.arena) if parent is not None else None

    def root(self) -> "Tree":
        return Tree(self.arena.root, self.arena)

    def iter_nodes(self) -> Iterator["Tree"]:
        """Yield this node and its descendants in source (pre-)order."""
        stack = [self.key]
        while stack:
            key = stack.pop()
            yield Tree(key, self.arena)
            stack.extend(reversed(self.arena.children.get(key, ())))

    def iter(self) -> Iterator[Position]:
        for node in self.iter_nodes():
            yield node.data()

    def iter_parents(self) -> Iterator["Tree"]:
        parent = self.parent()
        while parent is not None:
            yield parent
            parent = parent.parent()

    def get_key(self, key: str) -> "Tree | None":
        """Return the node for key if it lies within this subtree."""
        if key not in self.arena.positions:
            return None
        node: Tree | None = Tree(key, self.arena)
        while node is not None:
            if node.key == self.key:
                return Tree(key, self.arena)
            node = node.parent()
        return None

    def contains(self, position: Position) -> bool:
        return self.get_key(position.id) is not None

    def replace(self, subtree: "Tree") -> "Tree":
        """Return a new tree with the node at subtree's key swapped for subtree.

        The returned view is positioned at the arena root.
        """
        if subtree.key not in self.arena.positions:
            raise KeyError(subtree.key)
        parent = self.arena.parents[subtree.key]
        return self._with_subtree(parent, subtree)

    def graft(self, parent_key: str, subtree: "Tree") -> "Tree":
        """Return a new tree with subtree appended under parent_key."""
        if parent_key not in self.arena.positions:
            raise KeyError(parent_key)
        return self._with_subtree(parent_key, subtree)

    def to_dict(self) -> dict[str, Any]:
        position = self.data()
        return {
            **position.model_dump(mode="json"),
            "children": [child.to_dict() for child in self.children()],
        }

    def _with_subtree(self, parent_key: str | None, subtree: "Tree") -> "Tree":
        removed: set[str] = set()
        if subtree.key in self.arena.positions:
            removed = {node.key for node in Tree(subtree.key, self.arena).iter_nodes()}

        positions = {
            key: pos for key, pos in self.arena.positions.items() if key not in removed
        }
        children = {
            key: ids for key, ids in self.arena.children.items() if key not in removed
        }
        parents = {
            key: par for key, par in self.arena.parents.items() if key not in removed
        }

        for node in subtree.iter_nodes():
            positions[node.key] = node.data()
            children[node.key] = subtree.arena.children.get(node.key, ())
            parents[node.key] = subtree.arena.parents[node.key]
        parents[subtree.key] = parent_key

        root = self.arena.root
        if parent_key is None:
            root = subtree.key
        elif subtree.key not in children[parent_key]:
            children[parent_key] = (*children[parent_key], subtree.key)

        arena = _Arena(
            positions=positions, children=children, parents=parents, root=root
        )
        return Tree(root, arena)


def _dir_position(path: str) -> Position:
    return Position(
        id=path, type="dir", name=os.path.basename(path) or path, path=path
    )
