"""Abstract base class for test framework adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from runtree.models.result import ResultMap
from runtree.models.spec import ProcessResult, RunSpec, SpecArgs
from runtree.models.tree import Tree


@dataclass(frozen=True, kw_only=True)
class Adapter(ABC):
    """Abstract base for test framework adapters.

    An adapter knows how to find the tests of one framework, how to run any
    subtree it supports and how to turn the outcome of that run into results.
    """

    name: str

    @abstractmethod
    def is_test_file(self, file_path: str) -> bool:
        """Return whether file_path holds tests for this framework."""

    @abstractmethod
    def root(self, cwd: str) -> str | None:
        """Detect the project root for cwd, or None if this adapter does not apply."""

    @abstractmethod
    async def discover_positions(self, file_path: str) -> Tree | None:
        """Parse a test file into a position tree.

        Args:
            file_path: Absolute path of a file accepted by is_test_file

        Returns:
            Tree rooted at a file position, or None when nothing was found

        """

    @abstractmethod
    async def build_spec(self, args: SpecArgs) -> RunSpec | None:
        """Build a specification to run args.tree.

        Returns:
            Specification, or None if this subtree cannot be run directly

        """

    @abstractmethod
    async def results(
        self, spec: RunSpec, result: ProcessResult, tree: Tree
    ) -> ResultMap:
        """Parse the outcome of a run into results keyed by position id.

        An empty mapping is allowed; the client applies its own fallback.
        """
