"""Pytest adapter module."""

from runtree.adapters.pytest_runner.adapter import PytestAdapter
from runtree.adapters.pytest_runner.config import PytestConfig
from runtree.adapters.pytest_runner.manifest import pytest_manifest

__all__ = ["PytestAdapter", "PytestConfig", "pytest_manifest"]
