"""Models for test execution results."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

type ResultStatus = Literal["passed", "failed", "skipped"]


@dataclass(frozen=True, kw_only=True)
class ResultError:
    """A single error reported for a position."""

    message: str
    line: int | None = None


@dataclass(frozen=True, kw_only=True)
class Result:
    """Outcome of a position.

    `output` is a path to a file holding captured output, shared by every
    result of the same process unless the adapter reports per-test output.
    """

    status: ResultStatus
    output: str | None = None
    errors: tuple[ResultError, ...] = ()


type ResultMap = Mapping[str, Result]
