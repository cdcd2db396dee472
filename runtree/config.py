"""Client configuration and its loader."""

import asyncio
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError

from runtree.models.base import Model
from runtree.processes import DEFAULT_STRATEGY


class ClientConfig(Model):
    """Configuration of a client."""

    cwd: Path | None = Field(
        default=None, description="Directory used to detect adapter roots"
    )
    default_strategy: str = Field(
        default=DEFAULT_STRATEGY, description="Strategy used when a run names none"
    )
    strategies: Mapping[str, Mapping[str, Any]] = Field(
        default_factory=dict,
        description="Options per strategy, merged over adapter spec options",
    )
    adapters: Mapping[str, Mapping[str, Any]] = Field(
        default_factory=dict, description="Raw configuration per adapter key"
    )
    log_level: str = Field(default="INFO", description="Root log level for the CLI")


async def load_config(path: Path) -> ClientConfig:
    """Load and validate a YAML configuration file.

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the file is empty, not valid YAML or fails validation

    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    content = await asyncio.to_thread(path.read_text)

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        raise ValueError(f"Empty config file: {path}")

    return _validate(data, str(path))


def parse_config(raw: str) -> ClientConfig:
    """Parse configuration given inline as a JSON object."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON config: {e}") from e
    return _validate(data, "inline config")


def _validate(data: Any, source: str) -> ClientConfig:
    try:
        return ClientConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid config schema in {source}: {e}") from e
