"""Tests for the bounded FIFO worker pool."""

import asyncio

import pytest

from faultline.core.errors import EvaluationCancelled, InvalidConfigError, PoolShutdownError
from faultline.execution.pool import WorkerPool


class TestConstruction:
    def test_default_capacity(self):
        assert WorkerPool().capacity == 100

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_invalid_capacity(self, capacity):
        with pytest.raises(InvalidConfigError):
            WorkerPool(capacity)


class TestSlots:
    @pytest.mark.asyncio
    async def test_acquire_and_release(self, pool):
        await pool.acquire()
        assert pool.active == 1
        pool.release()
        assert pool.active == 0
        assert pool.submitted == 1

    @pytest.mark.asyncio
    async def test_over_release_rejected(self, pool):
        with pytest.raises(RuntimeError):
            pool.release()

    @pytest.mark.asyncio
    async def test_concurrency_never_exceeds_capacity(self):
        """Holders never outnumber the slots."""
        pool = WorkerPool(3)
        holding = 0
        peak = 0

        async def work():
            nonlocal holding, peak
            async with pool.slot():
                holding += 1
                peak = max(peak, holding)
                await asyncio.sleep(0.001)
                holding -= 1

        await asyncio.gather(*(work() for _ in range(20)))
        assert peak == 3
        assert pool.peak_active == 3
        assert pool.active == 0
        assert pool.submitted == 20

    @pytest.mark.asyncio
    async def test_fifo_order(self):
        """Queued acquirers start in submission order."""
        pool = WorkerPool(1)
        order = []

        async def work(i):
            async with pool.slot():
                order.append(i)
                await asyncio.sleep(0)

        await pool.acquire()
        tasks = [asyncio.create_task(work(i)) for i in range(5)]
        await asyncio.sleep(0)
        assert pool.queued == 5
        pool.release()
        await asyncio.gather(*tasks)
        assert order == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_cancelled_waiter_is_forgotten(self):
        pool = WorkerPool(1)
        await pool.acquire()
        waiter = asyncio.create_task(pool.acquire())
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert pool.queued == 0
        pool.release()
        assert pool.active == 0


class TestDiscardAndShutdown:
    @pytest.mark.asyncio
    async def test_discard_pending(self):
        pool = WorkerPool(1)
        await pool.acquire()
        waiters = [asyncio.create_task(pool.acquire()) for _ in range(3)]
        await asyncio.sleep(0)

        assert pool.discard_pending() == 3
        results = await asyncio.gather(*waiters, return_exceptions=True)
        assert all(isinstance(r, EvaluationCancelled) for r in results)
        assert pool.discarded == 3
        assert pool.active == 1
        pool.release()
        assert pool.active == 0

    @pytest.mark.asyncio
    async def test_shutdown_rejects_new_work(self, pool):
        pool.shutdown()
        assert pool.closed
        with pytest.raises(PoolShutdownError):
            await pool.acquire()

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, pool):
        pool.shutdown()
        pool.shutdown()
        assert pool.closed

    @pytest.mark.asyncio
    async def test_context_manager_shuts_down(self):
        async with WorkerPool(2) as pool:
            async with pool.slot():
                assert pool.active == 1
        assert pool.closed
