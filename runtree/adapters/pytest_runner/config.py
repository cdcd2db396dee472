"""Configuration for pytest adapter."""

import sys
from collections.abc import Sequence

from pydantic import BaseModel, Field


class PytestConfig(BaseModel):
    """Configuration for pytest adapter."""

    python: str = Field(default_factory=lambda: sys.executable)
    args: Sequence[str] = ()
    file_patterns: Sequence[str] = ("test_*.py", "*_test.py")
    # Disable to run directories file by file
    run_directories: bool = True
