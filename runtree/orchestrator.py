"""Run orchestration: direct runs, recursive decomposition and result merging."""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from runtree.adapters.base import Adapter
from runtree.aggregation import collect_results
from runtree.models.position import PositionType
from runtree.models.result import Result, ResultMap
from runtree.models.spec import RunArgs, RunSpec, SpecArgs
from runtree.models.tree import Tree
from runtree.processes import DEFAULT_STRATEGY, ProcessTracker
from runtree.state import StateStore

log = logging.getLogger(__name__)

# Position type a subtree of the given type is split into when the adapter
# cannot run it directly.
SPLIT_TYPES: Mapping[PositionType, PositionType] = {"dir": "file", "file": "test"}


class ResultCollisionError(KeyError):
    """Raised when decomposed runs report results for the same position."""


@dataclass(frozen=True, kw_only=True)
class RunOrchestrator:
    """Runs position subtrees through an adapter and stores aggregated results."""

    state: StateStore
    processes: ProcessTracker
    strategies: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    async def run(
        self, adapter_id: str, adapter: Adapter, tree: Tree, args: RunArgs
    ) -> None:
        """Run tree and write its aggregated results to the state store.

        Args:
            adapter_id: Identifier the adapter is registered under
            adapter: Adapter owning the tree
            tree: Subtree to run
            args: Run arguments (strategy and adapter specific options)

        """
        position = tree.data()
        self.state.update_running(adapter_id, position.id, [p.id for p in tree.iter()])

        try:
            results = dict(await self.run_subtree(tree, args, adapter))
            if position.type != "test":
                running = self.state.running(adapter_id).get(position.id) == position.id
                still_running = collect_results(tree, results, running=running)
                if still_running:
                    self.state.update_running(adapter_id, position.id, still_running)
            if position.type in ("test", "namespace"):
                # Adapters may report a result for the containing file as well
                results.pop(position.path, None)
            self.state.update_results(adapter_id, results)
        finally:
            self.state.clear_running(adapter_id, position.id)

    async def run_subtree(
        self, tree: Tree, args: RunArgs, adapter: Adapter
    ) -> ResultMap:
        """Run tree directly, or split it into smaller runs the adapter supports."""
        position = tree.data()
        strategy = args.strategy or DEFAULT_STRATEGY

        # Give other flows a chance to run before the adapter is consulted
        await asyncio.sleep(0)
        try:
            spec = await adapter.build_spec(
                SpecArgs(tree=tree, strategy=strategy, extra=args.extra)
            )
        except Exception:
            log.exception(
                "Adapter %s failed to build a spec for %s", adapter.name, position.id
            )
            return _failed(tree, output=None)

        if spec is None:
            return await self._run_split(tree, args, adapter)

        spec = RunSpec(
            command=spec.command,
            cwd=spec.cwd,
            env=spec.env,
            context=spec.context,
            strategy={**spec.strategy, **self.strategies.get(strategy, {})},
        )
        output: str | None = None
        try:
            process_result = await self.processes.run(position.id, spec, args)
            output = process_result.output
            results = dict(await adapter.results(spec, process_result, tree))
        except Exception:
            log.exception("Running %s with %s failed", position.id, adapter.name)
            return _failed(tree, output=output)

        if not results:
            if tree.children():
                log.warning(
                    "Results returned were empty, setting all positions to failed"
                )
                return _failed(tree, output=process_result.output)
            return {position.id: Result(status="skipped", output=process_result.output)}

        return {
            pos_id: (
                result
                if result.output is not None
                else Result(
                    status=result.status,
                    output=process_result.output,
                    errors=result.errors,
                )
            )
            for pos_id, result in results.items()
        }

    async def _run_split(
        self, tree: Tree, args: RunArgs, adapter: Adapter
    ) -> ResultMap:
        position = tree.data()
        split_type = SPLIT_TYPES.get(position.type)
        if split_type is None:
            log.warning(
                "Adapter %s cannot run %s %s and it cannot be split further",
                adapter.name,
                position.type,
                position.id,
            )
            return {}

        log.warning(
            "Adapter %s doesn't support running %s positions, attempting %s positions",
            adapter.name,
            position.type,
            split_type,
        )
        nodes = [node for node in tree.iter_nodes() if node.data().type == split_type]
        tasks = [self.run_subtree(node, args, adapter) for node in nodes]
        return merge_results(
            dict(zip([node.key for node in nodes], await asyncio.gather(*tasks)))
        )


def merge_results(results_by_root: Mapping[str, ResultMap]) -> ResultMap:
    """Merge results of split runs keyed by the root each run was started for.

    Raises:
        ResultCollisionError: If two runs reported a result for the same position

    """
    merged: dict[str, Result] = {}
    owners: dict[str, str] = {}
    for root_id, results in results_by_root.items():
        for pos_id, result in results.items():
            if pos_id in merged:
                raise ResultCollisionError(
                    f"Position {pos_id} reported by runs for both "
                    f"{owners[pos_id]} and {root_id}"
                )
            merged[pos_id] = result
            owners[pos_id] = root_id
    return merged


def _failed(tree: Tree, output: str | None) -> ResultMap:
    return {pos.id: Result(status="failed", output=output) for pos in tree.iter()}
