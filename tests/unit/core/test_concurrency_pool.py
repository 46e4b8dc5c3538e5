"""Unit tests for the FIFO inference slot pool."""

import asyncio

import pytest

from legal_intel.core.concurrency import ConcurrencyPool


def test_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        ConcurrencyPool(0)


@pytest.mark.asyncio
async def test_never_exceeds_limit():
    pool = ConcurrencyPool(2)
    peak = 0

    async def work():
        nonlocal peak
        async with pool.slot():
            peak = max(peak, pool.active_count)
            await asyncio.sleep(0.01)

    await asyncio.gather(*(work() for _ in range(8)))

    assert peak == 2
    assert pool.active_count == 0
    assert pool.queue_length == 0


@pytest.mark.asyncio
async def test_waiters_are_served_in_arrival_order():
    pool = ConcurrencyPool(1)
    order = []
    await pool.acquire()

    async def waiter(n):
        async with pool.slot():
            order.append(n)

    tasks = [asyncio.create_task(waiter(n)) for n in range(4)]
    await asyncio.sleep(0)
    assert pool.queue_length == 4

    pool.release()
    await asyncio.gather(*tasks)

    assert order == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_cancelled_waiter_gives_up_its_place():
    pool = ConcurrencyPool(1)
    await pool.acquire()

    cancelled = asyncio.create_task(pool.acquire())
    await asyncio.sleep(0)
    cancelled.cancel()
    with pytest.raises(asyncio.CancelledError):
        await cancelled

    assert pool.queue_length == 0
    pool.release()
    assert pool.active_count == 0


def test_release_without_acquire_raises():
    pool = ConcurrencyPool(1)
    with pytest.raises(RuntimeError):
        pool.release()
