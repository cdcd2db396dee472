"""CLI entry point for discovering and running tests."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from runtree.adapters.loading import load_adapter_manifest
from runtree.client import Client
from runtree.config import ClientConfig, load_config, parse_config
from runtree.models.result import Result, ResultMap
from runtree.models.spec import RunArgs
from runtree.models.tree import Tree

STATUS_SYMBOLS = {
    "passed": "✅",
    "failed": "❌",
    "skipped": "⏭️",
}


def log_results_summary(
    log: logging.Logger, tree: Tree, results: Mapping[str, Result]
) -> None:
    """Log a formatted summary of test results with their errors."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for position in tree.iter():
        if position.type != "test" or position.id not in results:
            continue
        result = results[position.id]
        symbol = STATUS_SYMBOLS.get(result.status, "?")
        log.info("%s %s: %s", symbol, position.id, result.status)
        for error in result.errors:
            if error.line is not None:
                log.info("  Line %d: %s", error.line + 1, error.message)
            else:
                log.info("  Error: %s", error.message)
        if result.status == "failed" and result.output:
            log.info("  Output: %s", result.output)


def format_output(tree: Tree, results: ResultMap) -> dict[str, Any]:
    """Format results of tree for JSON output."""
    all_results: list[dict[str, Any]] = []
    for position in tree.iter():
        if (result := results.get(position.id)) is None:
            continue
        all_results.append(
            {
                "id": position.id,
                "type": position.type,
                "status": result.status,
                "errors": [
                    {"message": error.message, "line": error.line}
                    for error in result.errors
                ],
                "output": result.output,
            }
        )

    tests = [r for r in all_results if r["type"] == "test"]
    return {
        "total": len(tests),
        "passed": sum(1 for r in tests if r["status"] == "passed"),
        "failed": sum(1 for r in tests if r["status"] == "failed"),
        "skipped": sum(1 for r in tests if r["status"] == "skipped"),
        "results": all_results,
    }


async def load_tree(client: Client, path: str, adapter: str | None) -> Tree | None:
    """Discover path, parsing every test file below it."""
    tree = await client.get_position(path, adapter=adapter)
    if tree is None:
        return None

    files = [pos.id for pos in tree.iter() if pos.type == "file"]
    await asyncio.gather(*(client.get_position(f, adapter=adapter) for f in files))
    return await client.get_position(path, refresh=False, adapter=adapter)


async def run(
    path: Path,
    config: ClientConfig,
    adapter: str | None = None,
    strategy: str | None = None,
) -> int:
    """Run tests under path and return exit code."""
    log = logging.getLogger("runtree")
    client = create_client(config, path, adapter)

    log.info("Discovering tests in %s", path)
    tree = await load_tree(client, str(path.resolve()), adapter)
    if tree is None:
        log.info("No tests found in %s", path)
        print(json.dumps({"total": 0, "results": []}))
        return 0

    log.info("Running %s", tree.key)
    await client.run_tree(tree, RunArgs(adapter=adapter, strategy=strategy))
    await client.events.drain()

    results: dict[str, Result] = {}
    for adapter_id in client.get_adapters():
        results.update(client.get_results(adapter_id))

    log_results_summary(log, tree, results)

    output = format_output(tree, results)
    print(json.dumps(output, indent=2))

    return 1 if output["failed"] else 0


async def discover(
    path: Path, config: ClientConfig, adapter: str | None = None
) -> int:
    """Print the positions found under path and return exit code."""
    client = create_client(config, path, adapter)
    tree = await load_tree(client, str(path.resolve()), adapter)
    if tree is None:
        logging.getLogger("runtree").info("No tests found in %s", path)
        return 1

    print(json.dumps(tree.to_dict(), indent=2))
    return 0


def create_client(config: ClientConfig, path: Path, adapter: str | None) -> Client:
    """Create a client rooted at path, registering an explicitly chosen adapter."""
    if config.cwd is None:
        cwd = path.resolve() if path.is_dir() else path.resolve().parent
        config = config.model_copy(update={"cwd": cwd})

    client = Client.create(config)
    if adapter is not None:
        manifest = load_adapter_manifest(adapter)
        client.registry.register(manifest.create(config.adapters.get(adapter)))
    return client


async def resolve_config(raw: str | None) -> ClientConfig:
    """Load configuration from a YAML file path or an inline JSON object."""
    if not raw:
        return ClientConfig()
    if raw.lstrip().startswith("{"):
        return parse_config(raw)
    return await load_config(Path(raw))


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Discover and run tests")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML config file or an inline JSON object",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run tests under a path")
    run_parser.add_argument("path", type=Path, help="File or directory to run")
    run_parser.add_argument("--adapter", default=None, help="Adapter key (pytest)")
    run_parser.add_argument(
        "--strategy", default=None, help="Execution strategy (integrated)"
    )

    discover_parser = subparsers.add_parser("discover", help="List positions")
    discover_parser.add_argument("path", type=Path, help="File or directory to scan")
    discover_parser.add_argument("--adapter", default=None, help="Adapter key")

    args = parser.parse_args()

    config = asyncio.run(resolve_config(args.config))

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.command == "run":
        coro = run(args.path, config, adapter=args.adapter, strategy=args.strategy)
    else:
        coro = discover(args.path, config, adapter=args.adapter)
    sys.exit(asyncio.run(coro))


if __name__ == "__main__":  # pragma: no cover
    main()
