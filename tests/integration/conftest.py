"""Fixtures for integration tests."""

from pathlib import Path

import pytest

SAMPLE_TESTS = """\
import pytest


def test_pass():
    assert 1 + 1 == 2


def test_fail():
    assert 1 + 1 == 3


@pytest.mark.skip(reason="not today")
def test_skip():
    pass


class TestGroup:
    def test_inner(self):
        pass

    @pytest.mark.parametrize("value", [1, 2])
    def test_param(self, value):
        assert value == 1
"""


@pytest.fixture(name="pytest_project")
def sample_pytest_project(tmp_path: Path) -> Path:
    """Create a project with one pytest module under tests/."""
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'sample'\n")
    tests_dir = tmp_path / "tests"
    tests_dir.mkdir()
    (tests_dir / "test_sample.py").write_text(SAMPLE_TESTS)
    (tests_dir / "helpers.py").write_text("VALUE = 1\n")
    return tmp_path


@pytest.fixture
def sample_file(pytest_project: Path) -> str:
    return str(pytest_project / "tests" / "test_sample.py")
