"""Models exchanged between the client, adapters and the process tracker."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from runtree.models.tree import Tree


@dataclass(frozen=True, kw_only=True)
class RunArgs:
    """Arguments of a run request."""

    adapter: str | None = None
    strategy: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class SpecArgs:
    """Arguments handed to an adapter when building a run specification."""

    tree: Tree
    strategy: str
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class RunSpec:
    """Command an adapter wants executed for a subtree.

    `context` is opaque to the client and handed back to the adapter when
    results are parsed.
    """

    command: Sequence[str]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    context: Mapping[str, Any] = field(default_factory=dict)
    strategy: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class ProcessResult:
    """Outcome of a finished process."""

    code: int
    output: str
