"""Integration tests for the process tracker using real subprocesses."""

import asyncio
import io
import logging
import os
import signal
import sys
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from runtree.models.spec import ProcessResult, RunArgs, RunSpec
from runtree.processes import ProcessTracker


def python_spec(code: str, **kwargs: Any) -> RunSpec:
    return RunSpec(command=[sys.executable, "-c", code], **kwargs)


@pytest.fixture
def tracker() -> ProcessTracker:
    return ProcessTracker()


@pytest.fixture
def outputs() -> Iterator[list[ProcessResult]]:
    """Collect process results and remove their output files afterwards."""
    collected: list[ProcessResult] = []
    yield collected
    for result in collected:
        Path(result.output).unlink(missing_ok=True)


async def wait_until_running(tracker: ProcessTracker, root_id: str) -> None:
    async with asyncio.timeout(10):
        while not tracker.is_running(root_id):
            await asyncio.sleep(0.01)


def process_exists(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


@pytest.fixture
def temp_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point temporary output files at tmp_path."""
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    return tmp_path


class TestRun:
    """Tests for run."""

    async def test_captures_output_and_exit_code(
        self, tracker: ProcessTracker, outputs: list[ProcessResult]
    ) -> None:
        spec = python_spec(
            "import sys; print('to stdout'); print('to stderr', file=sys.stderr); "
            "sys.exit(3)"
        )

        result = await tracker.run("/repo/test_a.py", spec)
        outputs.append(result)

        assert result.code == 3
        content = Path(result.output).read_text()
        assert "to stdout" in content
        assert "to stderr" in content
        assert not tracker.is_running("/repo/test_a.py")

    async def test_applies_cwd_and_env(
        self, tracker: ProcessTracker, outputs: list[ProcessResult], tmp_path: Path
    ) -> None:
        spec = python_spec(
            "import os; print(os.getcwd()); print(os.environ['RUNTREE_SAMPLE'])",
            cwd=str(tmp_path),
            env={"RUNTREE_SAMPLE": "sample-value"},
        )

        result = await tracker.run("/repo", spec, RunArgs(strategy="integrated"))
        outputs.append(result)

        assert result.code == 0
        lines = Path(result.output).read_text().splitlines()
        assert Path(lines[0]).resolve() == tmp_path.resolve()
        assert lines[1] == "sample-value"

    async def test_timeout_terminates_process(
        self,
        tracker: ProcessTracker,
        outputs: list[ProcessResult],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        spec = python_spec("import time; time.sleep(30)", strategy={"timeout": 0.5})

        with caplog.at_level(logging.WARNING):
            result = await tracker.run("/repo", spec)
        outputs.append(result)

        assert result.code != 0
        assert "exceeded" in caplog.text

    async def test_timeout_kills_process_ignoring_sigterm(
        self, outputs: list[ProcessResult], caplog: pytest.LogCaptureFixture
    ) -> None:
        tracker = ProcessTracker(terminate_grace=0.2)
        spec = python_spec(
            "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); "
            "time.sleep(30)",
            strategy={"timeout": 1},
        )

        with caplog.at_level(logging.WARNING):
            result = await asyncio.wait_for(tracker.run("/repo", spec), timeout=10)
        outputs.append(result)

        assert result.code == -signal.SIGKILL
        assert "ignored SIGTERM" in caplog.text

    async def test_missing_command_leaves_no_output(
        self, tracker: ProcessTracker, temp_dir: Path
    ) -> None:
        spec = RunSpec(command=[str(temp_dir / "missing-command")])

        with pytest.raises(FileNotFoundError):
            await tracker.run("/repo", spec)

        assert list(temp_dir.glob("runtree-*.log")) == []
        assert not tracker.is_running("/repo")

    async def test_unknown_strategy_falls_back(
        self,
        tracker: ProcessTracker,
        outputs: list[ProcessResult],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING):
            result = await tracker.run(
                "/repo", python_spec("pass"), RunArgs(strategy="remote")
            )
        outputs.append(result)

        assert result.code == 0
        assert "Unknown strategy remote" in caplog.text


async def test_stop_terminates_running_process(
    tracker: ProcessTracker, outputs: list[ProcessResult]
) -> None:
    task = asyncio.create_task(
        tracker.run("/repo", python_spec("import time; time.sleep(30)"))
    )
    await wait_until_running(tracker, "/repo")

    tracker.stop("/repo")
    result = await asyncio.wait_for(task, timeout=10)
    outputs.append(result)

    assert result.code != 0
    assert not tracker.is_running("/repo")


def test_stop_without_process_warns(
    tracker: ProcessTracker, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING):
        tracker.stop("/repo")

    assert "No process running for /repo" in caplog.text


async def test_attach_replays_and_streams_output(
    tracker: ProcessTracker, outputs: list[ProcessResult]
) -> None:
    """Output written before and after attaching reaches the sink."""
    spec = python_spec(
        "import time; print('before', flush=True); time.sleep(1); print('after')"
    )
    task = asyncio.create_task(tracker.run("/repo/test_a.py", spec))
    await wait_until_running(tracker, "/repo/test_a.py")
    await asyncio.sleep(0.3)
    sink = io.StringIO()

    assert tracker.attach("/repo/test_a.py", sink) is True
    result = await asyncio.wait_for(task, timeout=10)
    outputs.append(result)

    assert "before" in sink.getvalue()
    assert "after" in sink.getvalue()


def test_attach_without_process(tracker: ProcessTracker) -> None:
    assert tracker.attach("/repo", io.StringIO()) is False


async def test_cancelled_run_kills_process(
    tracker: ProcessTracker, temp_dir: Path
) -> None:
    """Cancelling the awaiting task does not leave the process behind."""
    pid_file = temp_dir / "child.pid"
    spec = python_spec(
        "import os, pathlib, time; "
        f"pathlib.Path({str(pid_file)!r}).write_text(str(os.getpid())); "
        "time.sleep(30)"
    )
    task = asyncio.create_task(tracker.run("/repo", spec))
    async with asyncio.timeout(10):
        while not pid_file.exists() or not pid_file.read_text():
            await asyncio.sleep(0.01)
    pid = int(pid_file.read_text())

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not tracker.is_running("/repo")
    async with asyncio.timeout(10):
        while process_exists(pid):
            await asyncio.sleep(0.01)
    assert list(temp_dir.glob("runtree-*.log")) == []
