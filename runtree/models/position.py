"""Models for positions discovered by adapters."""

from typing import Literal

from pydantic import Field

from runtree.models.base import Model

type PositionType = Literal["dir", "file", "namespace", "test"]


class Position(Model):
    """A runnable location in the test hierarchy.

    Directory and file ids are absolute paths. Namespace and test ids extend the
    id of the file that contains them, so every id is unique across adapters.
    """

    id: str = Field(..., description="Globally unique, path-like identifier")
    type: PositionType = Field(..., description="Granularity of the position")
    name: str = Field(..., description="Display name")
    path: str = Field(..., description="Filesystem path of the owning dir/file")
    range: tuple[int, int] | None = Field(
        default=None, description="Zero-indexed (start_row, end_row) in the file"
    )
