"""In-memory per-adapter store of trees, results and running positions."""

import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from runtree.events import EventBus
from runtree.models.result import Result, ResultMap
from runtree.models.tree import Tree

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class StateStore:
    """Holds the latest tree, results and running marks of every adapter.

    Every mutation replaces or merges whole mappings; nothing hands out a
    mutable view of the stored state.
    """

    events: EventBus = field(default_factory=EventBus)
    _trees: dict[str, Tree] = field(default_factory=dict)
    _results: dict[str, dict[str, Result]] = field(default_factory=dict)
    _running: dict[str, dict[str, str]] = field(default_factory=dict)
    _focused: dict[str, str] = field(default_factory=dict)

    def positions(
        self, adapter_id: str | None, position_id: str | None = None
    ) -> Tree | None:
        """Return the adapter's tree, or the node for position_id within it."""
        if adapter_id is None or (tree := self._trees.get(adapter_id)) is None:
            return None
        if position_id is None:
            return tree
        return tree.get_key(position_id)

    def results(self, adapter_id: str | None) -> ResultMap:
        return dict(self._results.get(adapter_id or "", {}))

    def running(self, adapter_id: str | None) -> Mapping[str, str]:
        """Map of running position id to the root id of the run executing it."""
        return dict(self._running.get(adapter_id or "", {}))

    def focused(self, adapter_id: str) -> str | None:
        return self._focused.get(adapter_id)

    def update_positions(self, adapter_id: str, tree: Tree) -> None:
        existing = self._trees.get(adapter_id)
        self._trees[adapter_id] = _merge_tree(existing, tree)
        log.debug("Updated positions for %s at %s", adapter_id, tree.key)
        self.events.emit("discovered", adapter_id, tree)

    def update_results(self, adapter_id: str, results: ResultMap) -> None:
        tree = self._trees.get(adapter_id)
        accepted = {
            pos_id: result
            for pos_id, result in results.items()
            if tree is None or pos_id in tree.arena.positions
        }
        if dropped := len(results) - len(accepted):
            log.debug("Dropped %d result(s) for unknown positions", dropped)

        self._results[adapter_id] = {**self._results.get(adapter_id, {}), **accepted}

        running = self._running.get(adapter_id, {})
        self._running[adapter_id] = {
            pos_id: root for pos_id, root in running.items() if pos_id not in accepted
        }
        self.events.emit("results", adapter_id, accepted)

    def update_running(
        self, adapter_id: str, root_id: str, position_ids: Iterable[str]
    ) -> None:
        """Replace the positions marked as running under root_id with ids."""
        ids = list(position_ids)
        running = self._running.get(adapter_id, {})
        self._running[adapter_id] = {
            **{pos_id: root for pos_id, root in running.items() if root != root_id},
            **{pos_id: root_id for pos_id in ids},
        }
        self.events.emit("started", adapter_id, root_id, ids)

    def clear_running(self, adapter_id: str, root_id: str) -> None:
        running = self._running.get(adapter_id, {})
        self._running[adapter_id] = {
            pos_id: root for pos_id, root in running.items() if root != root_id
        }

    def update_focused(self, adapter_id: str, path: str) -> None:
        self._focused[adapter_id] = path
        self.events.emit("focused", adapter_id, path)


def _merge_tree(existing: Tree | None, tree: Tree) -> Tree:
    """Place a freshly discovered tree into the adapter's current tree."""
    if existing is None:
        return _detach(tree)
    if tree.data().type == "dir":
        tree = _keep_parsed_files(existing, _detach(tree))
    if existing.get_key(tree.key) is not None:
        return existing.replace(_detach(tree))
    if tree.get_key(existing.key) is not None:
        return _detach(tree)

    parent_dir = os.path.dirname(tree.data().path)
    if existing.get_key(parent_dir) is not None:
        return existing.graft(parent_dir, _detach(tree))
    return _detach(tree)


def _keep_parsed_files(existing: Tree, tree: Tree) -> Tree:
    """Carry parsed file subtrees over into a rescanned directory tree."""
    for node in list(tree.iter_nodes()):
        if node.data().type != "file" or node.children():
            continue
        cached = existing.get_key(node.key)
        if cached is not None and cached.children():
            tree = tree.replace(_detach(cached))
    return tree


def _detach(tree: Tree) -> Tree:
    if tree.key == tree.arena.root:
        return tree
    return Tree.build(tree.data(), tree.children())
