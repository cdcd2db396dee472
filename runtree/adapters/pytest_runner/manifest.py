"""Pytest adapter manifest."""

from runtree.adapters.manifest import AdapterManifest
from runtree.adapters.pytest_runner.adapter import PytestAdapter
from runtree.adapters.pytest_runner.config import PytestConfig

pytest_manifest = AdapterManifest(
    config_cls=PytestConfig,
    adapter_factory=PytestAdapter.from_config,
)
