"""Pytest adapter implementation."""

import ast
import asyncio
import logging
import os
import re
import tempfile
import xml.etree.ElementTree as ET
from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path

from runtree.adapters.base import Adapter
from runtree.adapters.pytest_runner.config import PytestConfig
from runtree.models.position import Position
from runtree.models.result import Result, ResultError, ResultMap, ResultStatus
from runtree.models.spec import ProcessResult, RunSpec, SpecArgs
from runtree.models.tree import Tree

log = logging.getLogger(__name__)

ROOT_MARKERS = ("pyproject.toml", "setup.cfg", "setup.py", "pytest.ini", "tox.ini")

type Candidates = Mapping[str, Sequence[tuple[tuple[str, ...], str]]]

STATUS_PRECEDENCE: Mapping[ResultStatus, int] = {
    "skipped": 0,
    "passed": 1,
    "failed": 2,
}


@dataclass(frozen=True, kw_only=True)
class PytestAdapter(Adapter):
    """Adapter running Python tests with pytest."""

    name: str = "pytest"
    config: PytestConfig

    @classmethod
    def from_config(cls, config: PytestConfig) -> "PytestAdapter":
        return cls(config=config)

    def is_test_file(self, file_path: str) -> bool:
        file_name = os.path.basename(file_path)
        return file_name.endswith(".py") and any(
            fnmatch(file_name, pattern) for pattern in self.config.file_patterns
        )

    def root(self, cwd: str) -> str | None:
        start = Path(cwd)
        for directory in (start, *start.parents):
            if any((directory / marker).exists() for marker in ROOT_MARKERS):
                return str(directory)
        return None

    async def discover_positions(self, file_path: str) -> Tree | None:
        """Parse test classes and functions out of file_path."""
        source = await asyncio.to_thread(Path(file_path).read_text)
        module = ast.parse(source, filename=file_path)
        file_position = Position(
            id=file_path,
            type="file",
            name=os.path.basename(file_path),
            path=file_path,
            range=(0, max(len(source.splitlines()) - 1, 0)),
        )
        return Tree.build(file_position, _collect(module.body, file_path, file_path))

    async def build_spec(self, args: SpecArgs) -> RunSpec | None:
        position = args.tree.data()
        if position.type == "dir" and not self.config.run_directories:
            return None

        fd, junit_path = tempfile.mkstemp(prefix="runtree-junit-", suffix=".xml")
        os.close(fd)
        start = position.path
        if position.type != "dir":
            start = os.path.dirname(position.path)
        command = [
            self.config.python,
            "-m",
            "pytest",
            *self.config.args,
            *args.extra.get("pytest_args", ()),
            f"--junitxml={junit_path}",
            position.id,
        ]
        return RunSpec(
            command=command,
            cwd=self.root(start) or start,
            context={"junit_path": junit_path},
        )

    async def results(
        self, spec: RunSpec, result: ProcessResult, tree: Tree
    ) -> ResultMap:
        """Map JUnit test cases back onto test positions of tree."""
        junit_path = Path(spec.context["junit_path"])
        try:
            content = await asyncio.to_thread(junit_path.read_text)
        except FileNotFoundError:
            log.warning("No JUnit report found at %s", junit_path)
            return {}
        finally:
            junit_path.unlink(missing_ok=True)

        if not content.strip():
            return {}
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            log.warning("Invalid JUnit report for %s: %s", tree.key, e)
            return {}

        candidates = _test_candidates(tree)
        results: dict[str, Result] = {}
        for testcase in root.iter("testcase"):
            pos_id = _match(testcase, candidates)
            if pos_id is None:
                log.debug("Unmatched test case %s", testcase.get("name"))
                continue
            case_result = _case_result(testcase, tree.get_key(pos_id))
            if (previous := results.get(pos_id)) is not None:
                case_result = _combine(previous, case_result)
            results[pos_id] = case_result
        return results


def _collect(body: Sequence[ast.stmt], file_path: str, parent_id: str) -> list[Tree]:
    trees: list[Tree] = []
    for node in body:
        if isinstance(node, ast.ClassDef) and node.name.startswith("Test"):
            class_id = f"{parent_id}::{node.name}"
            children = _collect(node.body, file_path, class_id)
            if children:
                position = _position(node, class_id, "namespace", file_path)
                trees.append(Tree.build(position, children))
        elif isinstance(
            node, (ast.FunctionDef, ast.AsyncFunctionDef)
        ) and node.name.startswith("test"):
            position = _position(node, f"{parent_id}::{node.name}", "test", file_path)
            trees.append(Tree.build(position))
    return trees


def _position(
    node: ast.ClassDef | ast.FunctionDef | ast.AsyncFunctionDef,
    position_id: str,
    position_type: str,
    file_path: str,
) -> Position:
    start = min([node.lineno, *(d.lineno for d in node.decorator_list)])
    end = node.end_lineno or node.lineno
    return Position.model_validate(
        {
            "id": position_id,
            "type": position_type,
            "name": node.name,
            "path": file_path,
            "range": (start - 1, end - 1),
        }
    )


def _test_candidates(tree: Tree) -> Candidates:
    """Map test names to (class chain, position id) pairs."""
    candidates: dict[str, list[tuple[tuple[str, ...], str]]] = defaultdict(list)
    for node in tree.iter_nodes():
        position = node.data()
        if position.type != "test":
            continue
        chain = tuple(
            parent.data().name
            for parent in reversed(list(node.iter_parents()))
            if parent.data().type == "namespace"
        )
        candidates[position.name].append((chain, position.id))
    return candidates


def _match(
    testcase: ET.Element,
    candidates: Candidates,
) -> str | None:
    name = testcase.get("name", "").split("[", 1)[0]
    classname = tuple(testcase.get("classname", "").split("."))
    best: tuple[int, str] | None = None
    for chain, pos_id in candidates.get(name, ()):
        if chain and classname[-len(chain) :] != chain:
            continue
        if best is None or len(chain) > best[0]:
            best = (len(chain), pos_id)
    return best[1] if best else None


def _case_result(testcase: ET.Element, node: Tree | None) -> Result:
    failure = testcase.find("failure")
    if failure is None:
        failure = testcase.find("error")

    if failure is not None:
        file_name = os.path.basename(node.data().path) if node else ""
        return Result(
            status="failed",
            errors=(
                ResultError(
                    message=failure.get("message") or (failure.text or "").strip(),
                    line=_error_line(failure.text or "", file_name),
                ),
            ),
        )
    if testcase.find("skipped") is not None:
        return Result(status="skipped")
    return Result(status="passed")


def _error_line(text: str, file_name: str) -> int | None:
    if not file_name:
        return None
    matches = re.findall(rf"{re.escape(file_name)}:(\d+):", text)
    return int(matches[-1]) - 1 if matches else None


def _combine(first: Result, second: Result) -> Result:
    status = max(first.status, second.status, key=STATUS_PRECEDENCE.__getitem__)
    return Result(
        status=status, output=first.output, errors=first.errors + second.errors
    )
