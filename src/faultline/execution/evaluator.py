"""Bounded Async Task Evaluator — naive Fibonacci as structured concurrency.

WHY
───
``fib(n) = fib(n-1) + fib(n-2)`` is the smallest computation with the
shape of real fan-out work: two independent subtasks, composed once both
finish, with failures from either side having to reach the caller intact.
The evaluator runs every branch as its own asyncio task on a bounded
:class:`~faultline.execution.pool.WorkerPool`.

ARCHITECTURE
────────────
::

    FibonacciEvaluator(pool, faults=..., pressure=..., recovery=...)
      ├── .evaluate(n)  ─ validate, decompose, compose → EvaluationResult
      └── .cancel()     ─ discard queued branches, report CANCELLED

    decompose(n)                         (holds no slot)
      ├── n < 2  → Ok(n) synchronously   (never submitted)
      └── n ≥ 2  → submit(n-1), submit(n-2) ─ both before awaiting either
                    └── wait for both ─ compose

    run(task)
      ├── pool slot ─ QUEUED → RUNNING
      │     └── body: buffer, pause, injected fault   (retry via recovery)
      ├── slot released
      └── decompose(task.index) ─ COMPLETED(value) | FAILED(error)

    compose(children)
      ├── all ok      → Ok(sum), cleanup diagnostics carried along
      └── any failed  → first-observed failure, later ones suppressed

A branch only holds a worker slot while its own body runs; while it waits
for its children it holds nothing, so even ``capacity=1`` cannot deadlock.

Related modules:
    pool.py      — FIFO slot accounting
    tasks.py     — per-task state machine
    faults.py    — fault injection and resource pressure
    recovery.py  — scoped recovery policies
"""

from __future__ import annotations

import asyncio
import itertools
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from faultline.core.errors import (
    EvaluationCancelled,
    FaultlineError,
    InvalidIndexError,
    PoolShutdownError,
    ResourceReleaseError,
    ResourceScope,
    Severity,
    attach_suppressed,
    classify,
    get_suppressed,
    recoverable_vs_fatal,
)
from faultline.core.logging import evaluation_context, get_logger, task_context
from faultline.core.result import Err, Ok, Result
from faultline.core.settings import get_settings
from faultline.execution.faults import FaultKind, FaultPlan, ResourcePressure
from faultline.execution.pool import WorkerPool
from faultline.execution.recovery import NoRecovery, RecoveryPolicy, ReleaseReserveAndRetry
from faultline.execution.tasks import Task, TaskState, child_path, utcnow

logger = get_logger(__name__)


def fib(n: int) -> int:
    """Reference Fibonacci, computed iteratively."""
    if n < 0:
        raise InvalidIndexError(n)
    a, b = 0, 1
    for _ in range(n):
        a, b = b, a + b
    return a


class EvaluationStatus(str, Enum):
    """Overall outcome of an evaluation."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class EvaluationResult:
    """Outcome of one ``evaluate(n)`` call: a value or a classified failure, never both."""

    n: int
    evaluation_id: str
    status: EvaluationStatus
    outcome: Result[int]
    started_at: datetime
    completed_at: datetime
    tasks: list[Task] = field(default_factory=list)
    diagnostics: list[BaseException] = field(default_factory=list)
    peak_active: int = 0

    @property
    def is_ok(self) -> bool:
        return isinstance(self.outcome, Ok)

    @property
    def value(self) -> int | None:
        if isinstance(self.outcome, Ok):
            return self.outcome.value
        return None

    @property
    def error(self) -> BaseException | None:
        if isinstance(self.outcome, Err):
            return self.outcome.error
        return None

    @property
    def suppressed(self) -> tuple[BaseException, ...]:
        """Cleanup failures recorded next to the primary outcome."""
        if isinstance(self.outcome, Err):
            return get_suppressed(self.outcome.error)
        return tuple(self.diagnostics)

    @property
    def submitted(self) -> int:
        """Branch tasks handed to the evaluator (base cases excluded)."""
        return len(self.tasks)

    @property
    def started(self) -> int:
        """Branch tasks that ever reached RUNNING."""
        return sum(1 for t in self.tasks if t.started_at is not None)

    @property
    def discarded(self) -> int:
        return sum(1 for t in self.tasks if t.state is TaskState.DISCARDED)

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    def unwrap(self) -> int:
        """The value, or raise the primary failure."""
        return self.outcome.unwrap()

    def to_dict(self) -> dict[str, Any]:
        """Serialise for logging / CLI output."""
        result: dict[str, Any] = {
            "evaluation_id": self.evaluation_id,
            "n": self.n,
            "status": self.status.value,
            "submitted": self.submitted,
            "started": self.started,
            "discarded": self.discarded,
            "peak_active": self.peak_active,
            "duration_seconds": self.duration_seconds,
        }
        result.update(self.outcome.to_dict())
        if self.suppressed:
            result["suppressed"] = [repr(s) for s in self.suppressed]
        return result


class FibonacciEvaluator:
    """Evaluates ``fib(n)`` by recursive, concurrently scheduled decomposition.

    The pool is injected and owned by the caller; the evaluator only shuts it
    down when an unrecoverable (Fatal) failure reaches the top level.

    Parameters
    ----------
    pool : WorkerPool
        Bounds how many branch bodies execute at once.
    faults : FaultPlan | None
        Deterministic fault injection keyed by branch path.
    pressure : ResourcePressure | None
        Per-task buffer allocation, ceiling and pause.
    recovery : RecoveryPolicy | None
        Scoped recovery applied to failures inside a task body.
    """

    def __init__(
        self,
        pool: WorkerPool,
        *,
        faults: FaultPlan | None = None,
        pressure: ResourcePressure | None = None,
        recovery: RecoveryPolicy | None = None,
    ) -> None:
        self._pool = pool
        self._faults = faults or FaultPlan()
        self._pressure = pressure or ResourcePressure()
        self._recovery = recovery or NoRecovery()
        self._cancelled = False
        self._tasks: list[Task] = []
        self._running: set[asyncio.Task[Task]] = set()
        self._sequence = itertools.count(1)
        self._evaluation_id: str | None = None

    # ── Control ──────────────────────────────────────────────────────

    def cancel(self) -> int:
        """Cooperatively cancel the running evaluation.

        Queued branches are discarded without starting; running bodies
        finish but their results are ignored.  Returns the number of queued
        branches discarded right away.
        """
        if self._cancelled:
            return 0
        self._cancelled = True
        discarded = self._pool.discard_pending()
        logger.info(
            "evaluator.cancel",
            evaluation_id=self._evaluation_id,
            discarded=discarded,
        )
        return discarded

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    # ── Evaluation ───────────────────────────────────────────────────

    async def evaluate(self, n: int) -> EvaluationResult:
        """Compute ``fib(n)``.

        Returns:
            :class:`EvaluationResult` whose status is COMPLETED, FAILED or
            CANCELLED.  Failures are returned, not raised.

        If the asyncio task awaiting this call is itself cancelled, the
        evaluation is cancelled as by :meth:`cancel`, every branch spawned so
        far is awaited to a terminal state, and ``CancelledError`` propagates.
        """
        evaluation_id = uuid.uuid4().hex[:12]
        self._evaluation_id = evaluation_id
        self._tasks = []
        self._sequence = itertools.count(1)
        started_at = utcnow()
        diagnostics: list[BaseException] = []

        with evaluation_context(evaluation_id):
            logger.info("evaluator.start", n=n, capacity=self._pool.capacity)

            if n < 0:
                outcome: Result[int] = Err(InvalidIndexError(n).with_context(evaluation_id=evaluation_id))
            else:
                try:
                    outcome, diagnostics = await self._decompose(n, path="", parent_id=None)
                except asyncio.CancelledError:
                    self.cancel()
                    await self._drain()
                    logger.info("evaluator.cancelled", n=n, submitted=len(self._tasks))
                    raise

            if self._cancelled:
                cancelled = EvaluationCancelled().with_context(evaluation_id=evaluation_id)
                if isinstance(outcome, Err) and not isinstance(outcome.error, EvaluationCancelled):
                    # Failures observed after cancellation are diagnostics only.
                    attach_suppressed(cancelled, outcome.error)
                outcome = Err(cancelled)
                status = EvaluationStatus.CANCELLED
            elif isinstance(outcome, Ok):
                status = EvaluationStatus.COMPLETED
            else:
                status = EvaluationStatus.FAILED

            result = EvaluationResult(
                n=n,
                evaluation_id=evaluation_id,
                status=status,
                outcome=outcome,
                started_at=started_at,
                completed_at=utcnow(),
                tasks=list(self._tasks),
                diagnostics=diagnostics if isinstance(outcome, Ok) else [],
                peak_active=self._pool.peak_active,
            )

            if isinstance(outcome, Err) and recoverable_vs_fatal(outcome.error) is Severity.FATAL:
                logger.error("evaluator.fatal", n=n, error=outcome.error)
                self._pool.shutdown()

            logger.info(
                "evaluator.complete",
                n=n,
                status=status.value,
                value=result.value,
                submitted=result.submitted,
                discarded=result.discarded,
                peak_active=result.peak_active,
                duration_seconds=result.duration_seconds,
            )
        return result

    async def _decompose(
        self, n: int, *, path: str, parent_id: str | None
    ) -> tuple[Result[int], list[BaseException]]:
        if n < 2:
            return Ok(n), []

        resolved: list[int] = []
        children: list[Task] = []
        running: list[asyncio.Task[Task]] = []
        for branch, index in enumerate((n - 1, n - 2)):
            if index < 2:
                resolved.append(index)
                continue
            submitted = self._submit(index, child_path(path, branch), parent_id)
            if isinstance(submitted, Task):
                children.append(submitted)
            else:
                running.append(submitted)

        if running:
            await asyncio.wait(running)
            children.extend(t.result() for t in running)
        return self._compose(resolved, children)

    def _submit(self, index: int, path: str, parent_id: str | None) -> Task | asyncio.Task[Task]:
        task = Task(index=index, path=path, parent_id=parent_id, sequence=self._sequence)
        task.enqueue()
        self._tasks.append(task)
        if self._cancelled:
            task.discard(EvaluationCancelled().with_context(task_id=task.task_id, index=index, path=path))
            return task
        running = asyncio.create_task(self._run(task), name=f"fib[{path}]")
        self._running.add(running)
        running.add_done_callback(self._running.discard)
        return running

    async def _drain(self) -> None:
        """Wait until every branch task spawned so far has finished."""
        while self._running:
            await asyncio.wait(list(self._running))

    def _compose(
        self, resolved: list[int], children: list[Task]
    ) -> tuple[Result[int], list[BaseException]]:
        failed = sorted(
            (c for c in children if c.state is not TaskState.COMPLETED),
            key=lambda c: c.finish_order or 0,
        )
        diagnostics = [d for c in children if c.state is TaskState.COMPLETED for d in c.suppressed]
        errors = [c.error for c in failed if c.error is not None]
        if errors:
            primary = errors[0]
            for other in errors[1:]:
                attach_suppressed(primary, other)
            for diagnostic in diagnostics:
                attach_suppressed(primary, diagnostic)
            return Err(primary), []
        return Ok(sum(resolved) + sum(c.value or 0 for c in children)), diagnostics

    # ── Branch tasks ─────────────────────────────────────────────────

    def _context(self, task: Task) -> dict[str, Any]:
        return {
            "evaluation_id": self._evaluation_id,
            "task_id": task.task_id,
            "index": task.index,
            "path": task.path,
        }

    async def _run(self, task: Task) -> Task:
        with task_context(task.path, task.index):
            return await self._run_in_slot(task)

    async def _run_in_slot(self, task: Task) -> Task:
        try:
            await self._pool.acquire()
        except (EvaluationCancelled, PoolShutdownError) as exc:
            task.discard(classify(exc, **self._context(task)))
            logger.debug("task.discarded", reason=exc.message)
            return task

        try:
            if self._cancelled:
                task.discard(EvaluationCancelled().with_context(**self._context(task)))
                return task
            task.start()
            body, release_errors = await self._run_body(task)
        finally:
            self._pool.release()

        try:
            if isinstance(body, Err):
                self._fail(task, body.error)
                return task
            if self._cancelled:
                error = EvaluationCancelled().with_context(**self._context(task))
                for release_error in release_errors:
                    attach_suppressed(error, release_error)
                task.fail(error)
                return task

            outcome, diagnostics = await self._decompose(task.index, path=task.path, parent_id=task.task_id)
            if isinstance(outcome, Ok):
                task.suppressed.extend(release_errors)
                task.suppressed.extend(diagnostics)
                task.complete(outcome.value)
            else:
                for release_error in release_errors:
                    attach_suppressed(outcome.error, release_error)
                task.fail(outcome.error)
        except Exception as exc:
            if task.is_terminal:
                raise
            self._fail(task, classify(exc, **self._context(task)))
        return task

    def _fail(self, task: Task, error: BaseException) -> None:
        task.fail(error)
        logger.warning("task.failed", error=error, severity=recoverable_vs_fatal(error).value)

    async def _run_body(self, task: Task) -> tuple[Result[None], list[ResourceReleaseError]]:
        attempt = 0
        while True:
            try:
                release_errors = await self._attempt(task)
                return Ok(None), release_errors
            except Exception as exc:
                error = classify(exc, **self._context(task))
            if not self._recovery.should_recover(error, attempt):
                return Err(error), []
            logger.warning("recovery.attempt", attempt=attempt + 1, kind=type(error).__name__)
            self._recovery.recover(error, attempt)
            attempt += 1
            task.recovery_attempts = attempt

    async def _attempt(self, task: Task) -> list[ResourceReleaseError]:
        fault = self._faults.get(task.path)
        fail_on_close = fault is not None and fault.kind is FaultKind.RELEASE
        with ResourceScope(raise_on_release=False) as scope:
            scope.enter(self._pressure.allocate(task.index, fail_on_close=fail_on_close))
            await self._pressure.pause()
            if fault is not None:
                await self._faults.trigger(fault)
        for error in scope.release_errors:
            error.with_context(**self._context(task))
        return scope.release_errors


# ── Entry points ─────────────────────────────────────────────────────────


async def evaluate_async(
    n: int,
    capacity: int | None = None,
    *,
    faults: FaultPlan | None = None,
    pressure: ResourcePressure | None = None,
    recovery: RecoveryPolicy | None = None,
) -> EvaluationResult:
    """Evaluate ``fib(n)`` on a pool created for, and shut down after, this call.

    Unset arguments default from :func:`~faultline.core.settings.get_settings`.
    """
    settings = get_settings()
    if pressure is None:
        pressure = ResourcePressure.from_settings(settings)
    if recovery is None:
        recovery = (
            ReleaseReserveAndRetry(pressure, max_attempts=settings.recovery_attempts)
            if settings.recovery_attempts
            else NoRecovery()
        )
    if capacity is None:
        capacity = settings.capacity
    async with WorkerPool(capacity, name=f"fib({n})") as pool:
        evaluator = FibonacciEvaluator(pool, faults=faults, pressure=pressure, recovery=recovery)
        return await evaluator.evaluate(n)


def evaluate(
    n: int,
    capacity: int | None = None,
    *,
    faults: FaultPlan | None = None,
    pressure: ResourcePressure | None = None,
    recovery: RecoveryPolicy | None = None,
) -> EvaluationResult:
    """Synchronous wrapper around :func:`evaluate_async`."""
    return asyncio.run(
        evaluate_async(n, capacity, faults=faults, pressure=pressure, recovery=recovery)
    )


__all__ = [
    "fib",
    "EvaluationStatus",
    "EvaluationResult",
    "FibonacciEvaluator",
    "evaluate_async",
    "evaluate",
]
