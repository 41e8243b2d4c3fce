import asyncio
from unittest.mock import patch

import pytest

from astute.memory.coordinator import MemoryCoordinator


@pytest.mark.asyncio
async def test_request_while_running_queues_one_follow_up_run() -> None:
    coordinator = MemoryCoordinator()
    release = asyncio.Event()
    order = []

    async def _work(name: str) -> None:
        order.append(f"{name}-start")
        if name == "first":
            await release.wait()
        order.append(f"{name}-end")

    first = coordinator.start_background("c1", lambda: _work("first"))
    second = coordinator.start_background("c1", lambda: _work("second"))
    third = coordinator.start_background("c1", lambda: _work("third"))

    assert second is first and third is first
    assert coordinator.is_running("c1")

    release.set()
    await first

    # Runs never overlap and queued requests collapse into the latest one.
    assert order == ["first-start", "first-end", "third-start", "third-end"]
    assert not coordinator.is_running("c1")
    assert "c1" not in coordinator.tasks
    assert "c1" not in coordinator.pending


@pytest.mark.asyncio
async def test_follow_up_runs_after_failed_run() -> None:
    coordinator = MemoryCoordinator()
    release = asyncio.Event()
    runs = []

    async def _failing() -> None:
        await release.wait()
        raise RuntimeError("provider down")

    async def _ok() -> None:
        runs.append("ok")

    with patch("astute.memory.coordinator.logger") as mock_logger:
        task = coordinator.start_background("c1", _failing)
        coordinator.start_background("c1", _ok)
        release.set()
        await task

    mock_logger.exception.assert_called_once()
    assert runs == ["ok"]


@pytest.mark.asyncio
async def test_wait_idle_covers_queued_follow_up() -> None:
    coordinator = MemoryCoordinator()
    done = []

    async def _work(name: str) -> None:
        await asyncio.sleep(0.01)
        done.append(name)

    coordinator.start_background("c1", lambda: _work("a"))
    coordinator.start_background("c1", lambda: _work("b"))

    assert await coordinator.wait_idle("c1", timeout=1.0) is True
    assert done == ["a", "b"]


@pytest.mark.asyncio
async def test_different_conversations_run_independently() -> None:
    coordinator = MemoryCoordinator()
    done = []

    async def _work(name: str) -> None:
        done.append(name)

    a = coordinator.start_background("a", lambda: _work("a"))
    b = coordinator.start_background("b", lambda: _work("b"))
    await asyncio.gather(a, b)

    assert sorted(done) == ["a", "b"]


@pytest.mark.asyncio
async def test_background_failure_is_logged_and_cleared() -> None:
    coordinator = MemoryCoordinator()

    async def _boom() -> None:
        raise RuntimeError("provider down")

    with patch("astute.memory.coordinator.logger") as mock_logger:
        task = coordinator.start_background("c1", _boom)
        await task

    mock_logger.exception.assert_called_once()
    assert not coordinator.is_running("c1")
    # A new run can be scheduled after a failure.
    assert coordinator.start_background("c1", _boom_noop) is not None
    await coordinator.drain()


async def _boom_noop() -> None:
    return None


@pytest.mark.asyncio
async def test_wait_idle_returns_true_when_nothing_running() -> None:
    assert await MemoryCoordinator().wait_idle("missing", timeout=0.01) is True


@pytest.mark.asyncio
async def test_wait_idle_waits_for_completion() -> None:
    coordinator = MemoryCoordinator()
    finished = []

    async def _work() -> None:
        await asyncio.sleep(0.01)
        finished.append(True)

    coordinator.start_background("c1", _work)

    assert await coordinator.wait_idle("c1", timeout=1.0) is True
    assert finished == [True]


@pytest.mark.asyncio
async def test_wait_idle_timeout_does_not_cancel_task() -> None:
    coordinator = MemoryCoordinator()
    release = asyncio.Event()

    async def _work() -> None:
        await release.wait()

    task = coordinator.start_background("c1", _work)

    assert await coordinator.wait_idle("c1", timeout=0.01) is False
    assert not task.cancelled()

    release.set()
    await task
    assert task.done() and not task.cancelled()


@pytest.mark.asyncio
async def test_drain_waits_for_all_tasks() -> None:
    coordinator = MemoryCoordinator()
    done = []

    async def _work(i: int) -> None:
        await asyncio.sleep(0.01)
        done.append(i)

    for i in range(3):
        coordinator.start_background(f"c{i}", lambda i=i: _work(i))

    await coordinator.drain()

    assert sorted(done) == [0, 1, 2]


@pytest.mark.asyncio
async def test_prune_lock_batch_cleans_unlocked_entries() -> None:
    coordinator = MemoryCoordinator()
    held = coordinator.get_lock("held")
    await held.acquire()
    for i in range(101):
        coordinator.get_lock(f"idle-{i}")

    coordinator.prune_lock("idle-0", coordinator.locks["idle-0"])

    assert list(coordinator.locks) == ["held"]
    held.release()
