"""Tests for the event bus."""

import logging
from typing import Any

import pytest

from runtree.events import EventBus


def test_sync_listeners_receive_arguments() -> None:
    bus = EventBus()
    received: list[tuple[Any, ...]] = []
    bus.register("results", lambda *args: received.append(args))

    bus.emit("results", "pytest", {"id": "result"})

    assert received == [("pytest", {"id": "result"})]


def test_unregistered_listener_is_not_called() -> None:
    bus = EventBus()
    received: list[str] = []

    def listener(adapter_id: str, path: str) -> None:
        received.append(path)

    bus.register("focused", listener)
    bus.unregister("focused", listener)
    bus.unregister("focused", listener)
    bus.emit("focused", "pytest", "/repo/test_a.py")

    assert received == []


def test_failing_listener_does_not_stop_others(
    caplog: pytest.LogCaptureFixture,
) -> None:
    bus = EventBus()
    received: list[str] = []

    def broken(adapter_id: str, path: str) -> None:
        raise RuntimeError("listener broke")

    bus.register("focused", broken)
    bus.register("focused", lambda adapter_id, path: received.append(path))

    with caplog.at_level(logging.ERROR):
        bus.emit("focused", "pytest", "/repo/test_a.py")

    assert received == ["/repo/test_a.py"]
    assert "listener broke" in caplog.text


async def test_async_listeners_are_scheduled() -> None:
    """Emitting returns before coroutine listeners have run."""
    bus = EventBus()
    received: list[str] = []

    async def listener(adapter_id: str, path: str) -> None:
        received.append(path)

    bus.register("focused", listener)
    bus.emit("focused", "pytest", "/repo/test_a.py")

    assert received == []
    await bus.drain()
    assert received == ["/repo/test_a.py"]


async def test_async_listener_errors_are_logged(
    caplog: pytest.LogCaptureFixture,
) -> None:
    bus = EventBus()

    async def listener(adapter_id: str, path: str) -> None:
        raise ValueError("async listener broke")

    bus.register("focused", listener)

    with caplog.at_level(logging.ERROR):
        bus.emit("focused", "pytest", "/repo/test_a.py")
        await bus.drain()

    assert "async listener broke" in caplog.text


def test_async_listener_without_loop_is_dropped(
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Emitting from synchronous code outside a loop never raises."""
    bus = EventBus()
    received: list[str] = []

    async def listener(adapter_id: str, path: str) -> None:
        received.append(path)

    bus.register("focused", listener)
    bus.register("focused", lambda adapter_id, path: received.append(path))

    with caplog.at_level(logging.WARNING):
        bus.emit("focused", "pytest", "/repo/test_a.py")

    assert received == ["/repo/test_a.py"]
    assert "No running event loop" in caplog.text
