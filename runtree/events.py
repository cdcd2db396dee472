"""Fire-and-forget event bus for client lifecycle notifications."""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

log = logging.getLogger(__name__)

type Event = Literal["started", "results", "discovered", "focused"]
type Listener = Callable[..., Any]


@dataclass(kw_only=True)
class EventBus:
    """Publishes events to registered listeners without waiting on them.

    Coroutine listeners are scheduled as tasks on the running loop. Exceptions
    raised by listeners are logged and never reach the emitter.
    """

    listeners: dict[str, list[Listener]] = field(
        default_factory=lambda: defaultdict(list)
    )
    _tasks: set[asyncio.Task[Any]] = field(default_factory=set, repr=False)

    def register(self, event: Event, listener: Listener) -> None:
        self.listeners[event].append(listener)

    def unregister(self, event: Event, listener: Listener) -> None:
        if listener in self.listeners.get(event, []):
            self.listeners[event].remove(listener)

    def emit(self, event: Event, *args: Any) -> None:
        for listener in list(self.listeners.get(event, [])):
            try:
                outcome = listener(*args)
            except Exception:
                log.exception("Listener %r failed for event %s", listener, event)
                continue

            if inspect.isawaitable(outcome):
                try:
                    asyncio.get_running_loop()
                except RuntimeError:
                    log.warning(
                        "No running event loop, dropping %r for event %s",
                        listener,
                        event,
                    )
                    if inspect.iscoroutine(outcome):
                        outcome.close()
                    continue
                task = asyncio.ensure_future(outcome)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

    async def drain(self) -> None:
        """Wait for scheduled listener tasks. Only needed by embedders and tests."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and (error := task.exception()) is not None:
            log.error("Async listener failed: %s", error, exc_info=error)
