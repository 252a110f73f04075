"""Worker Pool — bounded, FIFO execution slots for asyncio tasks.

WHY
───
Naive Fibonacci fans out exponentially.  Without a bound every branch
would start at once; the pool caps how many task bodies execute at the
same time and queues the rest in submission order.

ARCHITECTURE
────────────
::

    WorkerPool(capacity=4)
      ├── .acquire()          ─ take a slot or queue (FIFO)
      ├── .release()          ─ hand the slot to the oldest waiter
      ├── .slot()             ─ async context manager around both
      ├── .discard_pending()  ─ fail every queued waiter (cancellation)
      └── .shutdown()         ─ reject further submissions

    Slot hand-over on release:

        waiters: [w1, w2, w3]      active == capacity
        release()  ──▶  w1 resumes holding the freed slot
                        active unchanged, never exceeds capacity

Unlike ``asyncio.Semaphore`` the pool hands a released slot directly to
the oldest waiter, so the bound stays exact and ordering stays FIFO even
when a newcomer arrives between a release and the waiter resuming.

The pool belongs to the event loop it is first used on.  All counters
are updated from that loop only, which keeps them consistent without
locks.

Related modules:
    evaluator.py — submits branch tasks through :meth:`WorkerPool.slot`
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType

from faultline.core.errors import EvaluationCancelled, InvalidConfigError, PoolShutdownError
from faultline.core.logging import get_logger

logger = get_logger(__name__)


class WorkerPool:
    """Fixed number of execution slots with FIFO queuing.

    Parameters
    ----------
    capacity : int
        Maximum simultaneously held slots (default 100).
    name : str
        Label used in logs and errors.
    """

    def __init__(self, capacity: int = 100, *, name: str = "workers") -> None:
        if capacity < 1:
            raise InvalidConfigError("capacity", capacity, "capacity must be at least 1")
        self._capacity = capacity
        self._name = name
        self._active = 0
        self._peak_active = 0
        self._submitted = 0
        self._discarded = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._closed = False

    # ── Slot accounting ──────────────────────────────────────────────

    async def acquire(self) -> None:
        """Take a slot, waiting in FIFO order when the pool is full.

        Raises:
            PoolShutdownError: the pool was shut down before or while waiting.
            EvaluationCancelled: the waiter was discarded before it started.
        """
        if self._closed:
            raise PoolShutdownError(self._name)
        self._submitted += 1

        if self._active < self._capacity and not self._waiters:
            self._take()
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            # Slot may already have been handed to us.
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                self.release()
            else:
                self._forget(waiter)
            raise

    def release(self) -> None:
        """Give a slot back, handing it to the oldest live waiter if any."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        if self._active <= 0:
            raise RuntimeError(f"worker pool {self._name!r} released more slots than it handed out")
        self._active -= 1

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one slot for the duration of the block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def _take(self) -> None:
        self._active += 1
        if self._active > self._peak_active:
            self._peak_active = self._active

    def _forget(self, waiter: asyncio.Future[None]) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    # ── Cancellation / teardown ──────────────────────────────────────

    def discard_pending(self, reason: str = "evaluation cancelled") -> int:
        """Fail every queued waiter so it never starts. Returns the count."""
        discarded = 0
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(EvaluationCancelled(reason))
                discarded += 1
        self._discarded += discarded
        if discarded:
            logger.info("pool.discarded", pool=self._name, discarded=discarded)
        return discarded

    def shutdown(self) -> None:
        """Reject further submissions and discard everything still queued."""
        if self._closed:
            return
        self._closed = True
        discarded = self.discard_pending(reason=f"worker pool {self._name!r} shut down")
        logger.info(
            "pool.shutdown",
            pool=self._name,
            active=self._active,
            discarded=discarded,
            submitted=self._submitted,
            peak_active=self._peak_active,
        )

    async def __aenter__(self) -> WorkerPool:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.shutdown()

    # ── Inspection ───────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._name

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def active(self) -> int:
        """Slots currently held."""
        return self._active

    @property
    def peak_active(self) -> int:
        """Highest number of slots ever held at once."""
        return self._peak_active

    @property
    def queued(self) -> int:
        """Waiters still queued for a slot."""
        return sum(1 for w in self._waiters if not w.done())

    @property
    def submitted(self) -> int:
        """Number of acquire() calls accepted."""
        return self._submitted

    @property
    def discarded(self) -> int:
        """Waiters failed by discard_pending()/shutdown()."""
        return self._discarded

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        return (
            f"WorkerPool(name={self._name!r}, capacity={self._capacity}, "
            f"active={self._active}, queued={self.queued})"
        )
