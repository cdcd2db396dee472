"""Execution of run specifications as external processes."""

import asyncio
import logging
import os
import signal
import sys
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, TextIO

from runtree.models.spec import ProcessResult, RunArgs, RunSpec

log = logging.getLogger(__name__)

DEFAULT_STRATEGY = "integrated"
STRATEGIES = frozenset({DEFAULT_STRATEGY})


@dataclass(kw_only=True)
class _TrackedProcess:
    process: asyncio.subprocess.Process
    output_path: str
    sinks: list[TextIO] = field(default_factory=list)


@dataclass(kw_only=True)
class ProcessTracker:
    """Runs specifications and keeps track of them by run root id.

    Output of each process (stdout and stderr combined) is written to a
    temporary file whose path is returned as the process output. Processes
    that outlive their timeout get SIGTERM, then SIGKILL once terminate_grace
    seconds have passed.
    """

    terminate_grace: float = 5.0
    _processes: dict[str, _TrackedProcess] = field(default_factory=dict)

    async def run(
        self, root_id: str, spec: RunSpec, args: RunArgs | None = None
    ) -> ProcessResult:
        """Run spec and wait for the process to exit.

        Args:
            root_id: Id of the position the run was requested for
            spec: Specification built by the adapter
            args: Run arguments; only the strategy name is used

        Returns:
            Exit code and path of the captured output

        """
        strategy = (args.strategy if args else None) or DEFAULT_STRATEGY
        if strategy not in STRATEGIES:
            log.warning("Unknown strategy %s, using %s", strategy, DEFAULT_STRATEGY)
        timeout = _timeout(spec.strategy)

        fd, output_path = tempfile.mkstemp(prefix="runtree-", suffix=".log")
        log.info("Running %s: %s", root_id, " ".join(spec.command))
        with open(fd, "wb") as output:
            try:
                process = await asyncio.create_subprocess_exec(
                    *spec.command,
                    cwd=spec.cwd,
                    env={**os.environ, **spec.env},
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                    start_new_session=True,
                )
            except BaseException:
                os.unlink(output_path)
                raise
            tracked = _TrackedProcess(process=process, output_path=output_path)
            self._processes[root_id] = tracked

            try:
                await asyncio.wait_for(self._pump(tracked, output), timeout)
            except TimeoutError:
                log.warning(
                    "Process for %s exceeded %ss, terminating", root_id, timeout
                )
                await self._shutdown(process)
            finally:
                self._processes.pop(root_id, None)
                if process.returncode is None:
                    log.info("Run of %s was interrupted, killing process", root_id)
                    _terminate(process, kill=True)
                    os.unlink(output_path)

        code = process.returncode if process.returncode is not None else -1
        log.info("Process for %s exited with code %d", root_id, code)
        return ProcessResult(code=code, output=output_path)

    def attach(self, position_id: str, sink: TextIO | None = None) -> bool:
        """Stream output of the process running under position_id into sink.

        Output captured before attaching is replayed first.

        Returns:
            False if no process is running under position_id

        """
        tracked = self._processes.get(position_id)
        if tracked is None:
            return False

        sink = sink or sys.stdout
        sink.write(Path(tracked.output_path).read_text(errors="replace"))
        sink.flush()
        tracked.sinks.append(sink)
        return True

    def is_running(self, root_id: str) -> bool:
        return root_id in self._processes

    def stop(self, root_id: str) -> None:
        """Terminate the process tree started for root_id."""
        tracked = self._processes.get(root_id)
        if tracked is None:
            log.warning("No process running for %s", root_id)
            return
        log.info("Stopping process for %s", root_id)
        _terminate(tracked.process)

    async def _shutdown(self, process: asyncio.subprocess.Process) -> None:
        _terminate(process)
        try:
            await asyncio.wait_for(process.wait(), self.terminate_grace)
        except TimeoutError:
            log.warning("Process %d ignored SIGTERM, killing it", process.pid)
            _terminate(process, kill=True)
            await process.wait()

    async def _pump(self, tracked: _TrackedProcess, output: BinaryIO) -> None:
        stream = tracked.process.stdout
        assert stream is not None
        while chunk := await stream.read(4096):
            output.write(chunk)
            output.flush()
            text = chunk.decode(errors="replace")
            for sink in tracked.sinks:
                sink.write(text)
                sink.flush()
        await tracked.process.wait()


def _timeout(options: Mapping[str, Any]) -> float | None:
    timeout = options.get("timeout")
    return float(timeout) if timeout is not None else None


def _terminate(process: asyncio.subprocess.Process, *, kill: bool = False) -> None:
    try:
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signal.SIGKILL if kill else signal.SIGTERM)
        elif kill:  # pragma: no cover
            process.kill()
        else:  # pragma: no cover
            process.terminate()
    except ProcessLookupError:
        log.debug("Process %d already exited", process.pid)
