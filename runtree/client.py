"""Client tying adapters, state, processes and run orchestration together."""

import asyncio
import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TextIO

from runtree.adapters.base import Adapter
from runtree.adapters.loading import adapters_with_root_dir, get_file_adapter
from runtree.aggregation import collect_results
from runtree.config import ClientConfig
from runtree.events import EventBus
from runtree.files import find_files
from runtree.models.result import ResultMap
from runtree.models.spec import RunArgs
from runtree.models.tree import Tree
from runtree.orchestrator import ResultCollisionError, RunOrchestrator
from runtree.processes import ProcessTracker
from runtree.registry import AdapterRegistry
from runtree.state import StateStore

log = logging.getLogger(__name__)

type RootAdapterLookup = Callable[[str], Sequence[Adapter]]


@dataclass(kw_only=True)
class Client:
    """Entry point for discovering, running and inspecting tests.

    Embedders drive it through the run/stop/attach operations and keep it up to
    date by calling the `on_*` hooks when files or the working directory change.
    """

    config: ClientConfig
    events: EventBus
    state: StateStore
    processes: ProcessTracker
    registry: AdapterRegistry
    orchestrator: RunOrchestrator
    find_root_adapters: RootAdapterLookup
    cwd: str
    _started: bool = False
    _files_read: set[str] = field(default_factory=set)

    @classmethod
    def create(
        cls,
        config: ClientConfig | None = None,
        *,
        events: EventBus | None = None,
        state: StateStore | None = None,
        processes: ProcessTracker | None = None,
        find_root_adapters: RootAdapterLookup | None = None,
        find_file_adapter: Callable[[str], Adapter | None] | None = None,
    ) -> "Client":
        """Create a client, loading adapters from entry points unless given."""
        config = config or ClientConfig()
        events = events or EventBus()
        state = state or StateStore(events=events)
        processes = processes or ProcessTracker()
        adapter_configs = config.adapters

        registry = AdapterRegistry(
            state=state,
            find_file_adapter=find_file_adapter
            or (lambda path: get_file_adapter(path, adapter_configs)),
        )
        orchestrator = RunOrchestrator(
            state=state, processes=processes, strategies=config.strategies
        )
        return cls(
            config=config,
            events=events,
            state=state,
            processes=processes,
            registry=registry,
            orchestrator=orchestrator,
            find_root_adapters=find_root_adapters
            or (lambda cwd: adapters_with_root_dir(cwd, adapter_configs)),
            cwd=str(config.cwd or Path.cwd()),
        )

    @property
    def listeners(self) -> EventBus:
        return self.events

    async def run_tree(self, tree: Tree, args: RunArgs | None = None) -> None:
        """Run tree and store its results.

        Errors never propagate; outcomes are observed through the state store.
        """
        args = args or RunArgs()
        position = tree.data()
        resolved = self.registry.resolve(position.id, args.adapter)
        if resolved is None:
            log.error("Adapter not found for position %s", position.id)
            return

        adapter_id, adapter = resolved
        args = replace(args, strategy=args.strategy or self.config.default_strategy)
        try:
            await self.orchestrator.run(adapter_id, adapter, tree, args)
        except ResultCollisionError:
            log.exception("Run of %s aborted, no results were stored", position.id)

    def stop(self, position: Tree) -> bool:
        """Stop the run executing position or one of its ancestors."""
        for node in (position, *position.iter_parents()):
            for adapter_id in self.get_adapters():
                root_id = self.state.running(adapter_id).get(node.key)
                if root_id is None:
                    continue
                self._stop_run(adapter_id, root_id)
                return True

        log.warning("No running process found for %s", position.key)
        return False

    def attach(self, position: Tree, sink: TextIO | None = None) -> bool:
        """Attach to the process running position or its closest running ancestor."""
        for node in (position, *position.iter_parents()):
            if self.processes.attach(node.key, sink):
                log.debug("Attached to process for position %s", node.data().name)
                return True
        return False

    async def get_nearest(
        self, file_path: str, row: int
    ) -> tuple[Tree | None, str | None]:
        """Return the last position in file_path that starts at or before row."""
        positions, adapter_id = await self._get_position(file_path)
        if positions is None:
            return None, None

        nearest = None
        for node in positions.iter_nodes():
            position_range = node.data().range
            if position_range is None or position_range[0] > row:
                break
            nearest = node
        return nearest, adapter_id

    def get_adapters(self) -> Sequence[str]:
        return self.registry.names()

    async def get_position(
        self,
        position_id: str | None,
        *,
        refresh: bool = True,
        adapter: str | None = None,
    ) -> Tree | None:
        """Return the cached tree for position_id, discovering it lazily.

        Files that were found as part of a directory scan are parsed on their
        first access only; an empty file is never parsed twice.
        """
        positions, _ = await self._get_position(
            position_id, refresh=refresh, adapter=adapter
        )
        return positions

    def get_results(self, adapter_id: str) -> ResultMap:
        return self.state.results(adapter_id)

    def is_running(self, position_id: str, adapter: str | None = None) -> str | None:
        """Return the root id of the run executing position_id, if any."""
        adapter_ids = [adapter] if adapter else self.get_adapters()
        for adapter_id in adapter_ids:
            if (root_id := self.state.running(adapter_id).get(position_id)) is not None:
                return root_id
        return None

    def is_test_file(self, file_path: str) -> bool:
        return self.registry.resolve(file_path) is not None

    async def update_positions(self, path: str, adapter: str | None = None) -> None:
        """Rediscover positions under path and store them."""
        resolved = self.registry.resolve(path, adapter)
        if resolved is None:
            return
        adapter_id, found = resolved
        if not self._started:
            await self.start()

        try:
            if os.path.isdir(path):
                files = await asyncio.to_thread(find_files, path, found.is_test_file)
                positions = Tree.from_files(path, files)
            else:
                positions = await found.discover_positions(path)
        except Exception:
            log.info("Couldn't find positions in path %s", path, exc_info=True)
            return

        if positions is None:
            log.info("No positions found in path %s", path)
            return

        existing = await self.get_position(path, refresh=False, adapter=adapter_id)
        propagate = (
            positions.data().type == "file"
            and existing is not None
            and not existing.children()
        )
        self.state.update_positions(adapter_id, positions)
        if propagate:
            self._propagate_results_to_new_positions(adapter_id, positions)

    async def start(self) -> None:
        self._started = True
        await self._update_adapters()

    async def on_file_changed(self, path: str) -> None:
        await self.update_positions(path)

    async def on_directory_changed(self, cwd: str | None = None) -> None:
        if cwd is not None:
            self.cwd = cwd
        await self._update_adapters()

    async def on_file_closed(self, path: str) -> None:
        await self.update_positions(os.path.dirname(path))

    def on_file_focused(self, path: str) -> None:
        resolved = self.registry.resolve(path)
        if resolved is None:
            return
        self.state.update_focused(resolved[0], path)

    async def _get_position(
        self,
        position_id: str | None,
        *,
        refresh: bool = True,
        adapter: str | None = None,
    ) -> tuple[Tree | None, str | None]:
        if not self._started:
            await self.start()
        if position_id and len(position_id) > 1:
            position_id = position_id.rstrip(os.sep)

        resolved = self.registry.resolve(position_id, adapter)
        adapter_id = resolved[0] if resolved else None
        positions = self.state.positions(adapter_id, position_id)

        if refresh and position_id is not None:
            if (
                positions is not None
                and position_id not in self._files_read
                and positions.data().type == "file"
                and not positions.children()
            ):
                self._files_read.add(position_id)
                await self.update_positions(position_id, adapter=adapter_id)
                positions = self.state.positions(adapter_id, position_id)

            if positions is None and Path(position_id).exists():
                await self.update_positions(position_id, adapter=adapter_id)
                positions = self.state.positions(adapter_id, position_id)

        return positions, adapter_id

    def _stop_run(self, adapter_id: str, root_id: str) -> None:
        tree = self.state.positions(adapter_id, root_id)
        ids = [pos.id for pos in tree.iter()] if tree is not None else [root_id]
        for pos_id in ids:
            if self.processes.is_running(pos_id):
                self.processes.stop(pos_id)

    def _propagate_results_to_new_positions(
        self, adapter_id: str, tree: Tree
    ) -> None:
        results = self.state.results(adapter_id)
        new_results = {
            pos.id: results[pos.id] for pos in tree.iter() if pos.id in results
        }
        run_root = self.is_running(tree.key, adapter_id)
        still_running = collect_results(
            tree, new_results, running=run_root is not None
        )
        if run_root is not None and still_running:
            held = [
                pos_id
                for pos_id, root in self.state.running(adapter_id).items()
                if root == run_root and pos_id not in still_running
            ]
            self.state.update_running(adapter_id, run_root, [*held, *still_running])
        if new_results:
            self.state.update_results(adapter_id, new_results)

    async def _update_adapters(self) -> None:
        self.registry.extend(self.find_root_adapters(self.cwd))
        for adapter in self.registry.adapters:
            root = adapter.root(self.cwd)
            if not root and (existing := self.state.positions(adapter.name)):
                root = existing.data().path
            await self.update_positions(root or self.cwd, adapter=adapter.name)

