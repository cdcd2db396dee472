"""Loading of adapters from entry points."""

import logging
from collections.abc import Mapping, Sequence
from importlib.metadata import entry_points
from typing import Any

from runtree.adapters.base import Adapter
from runtree.adapters.manifest import AdapterManifest

log = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "runtree.adapters"

type AdapterConfigs = Mapping[str, Mapping[str, Any]]


class AdapterNotFoundError(Exception):
    """Raised when an adapter is not found."""


def load_adapter_manifest(key: str) -> AdapterManifest[Any]:
    """Load an adapter manifest by key.

    Args:
        key: The adapter key as registered in pyproject.toml (e.g., "pytest")

    Returns:
        The adapter manifest instance

    Raises:
        AdapterNotFoundError: If no adapter with the given key is found

    """
    entries = entry_points(group=ENTRY_POINT_GROUP)

    for entry in entries:
        if entry.name == key:
            manifest: AdapterManifest[Any] = entry.load()
            return manifest

    available = [e.name for e in entries]
    raise AdapterNotFoundError(
        f"Adapter '{key}' not found. Available adapters: {available}"
    )


def load_adapters(configs: AdapterConfigs | None = None) -> Sequence[Adapter]:
    """Instantiate every installed adapter, in entry-point order."""
    configs = configs or {}
    adapters: list[Adapter] = []
    for entry in entry_points(group=ENTRY_POINT_GROUP):
        manifest: AdapterManifest[Any] = entry.load()
        adapters.append(manifest.create(configs.get(entry.name)))
    return adapters


def adapters_with_root_dir(
    cwd: str, configs: AdapterConfigs | None = None
) -> Sequence[Adapter]:
    """Return adapters that detect a project root for cwd."""
    return [adapter for adapter in load_adapters(configs) if adapter.root(cwd)]


def get_file_adapter(
    file_path: str, configs: AdapterConfigs | None = None
) -> Adapter | None:
    """Return the first installed adapter that accepts file_path as a test file."""
    for adapter in load_adapters(configs):
        if adapter.is_test_file(file_path):
            log.debug("Found adapter %s for %s", adapter.name, file_path)
            return adapter
    return None
