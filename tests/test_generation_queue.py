"""Tests for the FIFO website generation queue."""

import asyncio
import logging

import pytest

from app.services.generation_queue import GenerationQueue, QueueItem


def _item(user_id, log, *, gate=None, fail=False):
    async def execute():
        log.append(f"start:{user_id}")
        if gate is not None:
            await gate.wait()
        if fail:
            raise RuntimeError(f"boom {user_id}")
        log.append(f"end:{user_id}")

    return QueueItem(user_id=user_id, username=f"user-{user_id}", execute=execute)


@pytest.mark.asyncio
async def test_items_run_in_fifo_order_one_at_a_time():
    queue = GenerationQueue()
    log = []

    positions = [await queue.enqueue(_item(uid, log)) for uid in ("a", "b", "c")]
    await queue.drain()

    assert positions == [1, 2, 3]
    assert log == ["start:a", "end:a", "start:b", "end:b", "start:c", "end:c"]
    assert queue.processing is False
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_failure_is_logged_and_loop_continues(caplog):
    queue = GenerationQueue()
    log = []

    with caplog.at_level(logging.ERROR, logger="app.services.generation_queue"):
        await queue.enqueue(_item("a", log, fail=True))
        await queue.enqueue(_item("b", log))
        await queue.drain()

    assert log == ["start:a", "start:b", "end:b"]
    assert any("user-a (a) failed after" in r.getMessage() for r in caplog.records)
    assert any("boom a" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_status_and_membership_while_running():
    queue = GenerationQueue()
    log = []
    gate = asyncio.Event()

    await queue.enqueue(_item("a", log, gate=gate))
    await queue.enqueue(_item("b", log))
    await queue.enqueue(_item("c", log))
    # let the loop pick up the first item
    await asyncio.sleep(0)

    status = queue.get_status()
    assert status.active == "user-a"
    assert [(e.position, e.username) for e in status.queue] == [(1, "user-b"), (2, "user-c")]

    assert queue.has_user_in_queue("a") is True
    assert queue.has_user_in_queue("c") is True
    assert queue.has_user_in_queue("z") is False
    assert queue.position_of("a") == 0
    assert queue.position_of("c") == 2
    assert queue.position_of("z") is None

    gate.set()
    await queue.drain()
    assert queue.get_status().active is None
    assert queue.get_status().queue == []
    assert queue.has_user_in_queue("a") is False


@pytest.mark.asyncio
async def test_enqueue_after_drain_restarts_loop():
    queue = GenerationQueue()
    log = []

    await queue.enqueue(_item("a", log))
    await queue.drain()
    await queue.enqueue(_item("b", log))
    await queue.drain()

    assert log == ["start:a", "end:a", "start:b", "end:b"]


@pytest.mark.asyncio
async def test_reset_cancels_pending_work():
    queue = GenerationQueue()
    log = []
    gate = asyncio.Event()

    await queue.enqueue(_item("a", log, gate=gate))
    await queue.enqueue(_item("b", log))
    await asyncio.sleep(0)

    await queue.reset()

    assert len(queue) == 0
    assert queue.processing is False
    assert queue.get_status().active is None
    assert "start:b" not in log


@pytest.mark.asyncio
async def test_concurrent_enqueues_run_once_each_in_order():
    queue = GenerationQueue()
    running = 0
    peak = 0
    ran = []

    def _counting(user_id):
        async def execute():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            # Yield so any second consumer would get a chance to overlap
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            ran.append(user_id)
            running -= 1

        return QueueItem(user_id=user_id, username=f"user-{user_id}", execute=execute)

    user_ids = [f"u{i}" for i in range(20)]
    positions = await asyncio.gather(*(queue.enqueue(_counting(uid)) for uid in user_ids))
    await queue.drain()

    assert sorted(positions) == list(range(1, 21))
    assert ran == user_ids
    assert peak == 1
    assert queue.processing is False
