"""Task records and their lifecycle.

A :class:`Task` is one submitted branch of an evaluation.  Its state moves
through a small, strictly enforced graph::

    CREATED → QUEUED → RUNNING → COMPLETED | FAILED
                 └──→ DISCARDED            (cancelled before starting)

Terminal states are immutable: any transition out of COMPLETED, FAILED or
DISCARDED raises :class:`InvalidTransitionError`.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from faultline.core.errors import FaultlineError, get_suppressed
from faultline.core.result import Err, Ok, Result


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class InvalidTransitionError(ValueError):
    """Raised when an illegal task state transition is attempted."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid TaskState transition: {current} → {target}")


class TaskState(str, Enum):
    """Lifecycle state of a :class:`Task`."""

    CREATED = "created"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    DISCARDED = "discarded"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({TaskState.COMPLETED, TaskState.FAILED, TaskState.DISCARDED})

TASK_VALID_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    TaskState.CREATED: frozenset({TaskState.QUEUED}),
    TaskState.QUEUED: frozenset({TaskState.RUNNING, TaskState.DISCARDED}),
    TaskState.RUNNING: frozenset({TaskState.COMPLETED, TaskState.FAILED}),
    TaskState.COMPLETED: frozenset(),
    TaskState.FAILED: frozenset(),
    TaskState.DISCARDED: frozenset(),
}


def validate_task_transition(current: TaskState, target: TaskState) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal."""
    if target not in TASK_VALID_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)


@dataclass
class Task:
    """One asynchronous unit of work computing ``fib(index)``.

    Attributes:
        index: Fibonacci index this task computes
        path: Branch path from the root, ``"0"`` = n-1 branch, ``"1"`` = n-2
        parent_id: Task that spawned this one (None for root branches)
        outcome: ``Ok(value)`` or ``Err(failure)`` once terminal
        suppressed: Cleanup failures recorded next to a successful outcome
        finish_order: Position in the evaluation's terminal-state sequence
        sequence: Counter shared by the tasks of one evaluation; supplies
            ``finish_order``. Standalone tasks without one get no order.
        recovery_attempts: Times a recovery policy let the body run again
    """

    index: int
    path: str
    parent_id: str | None = None
    task_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: TaskState = TaskState.CREATED
    outcome: Result[int] | None = None
    suppressed: list[BaseException] = field(default_factory=list)
    queued_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    finish_order: int | None = None
    recovery_attempts: int = 0
    sequence: Iterator[int] | None = field(default=None, repr=False, compare=False)

    # ── Transitions ──────────────────────────────────────────────────

    def _transition(self, target: TaskState) -> None:
        validate_task_transition(self.state, target)
        self.state = target
        if target.is_terminal:
            self.finished_at = utcnow()
            if self.sequence is not None:
                self.finish_order = next(self.sequence)

    def enqueue(self) -> None:
        self._transition(TaskState.QUEUED)
        self.queued_at = utcnow()

    def start(self) -> None:
        self._transition(TaskState.RUNNING)
        self.started_at = utcnow()

    def complete(self, value: int) -> None:
        self._transition(TaskState.COMPLETED)
        self.outcome = Ok(value)

    def fail(self, error: BaseException) -> None:
        self._transition(TaskState.FAILED)
        self.outcome = Err(error)

    def discard(self, error: BaseException) -> None:
        """Mark a queued task as never started; ``error`` explains why."""
        self._transition(TaskState.DISCARDED)
        self.outcome = Err(error)

    # ── Inspection ───────────────────────────────────────────────────

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

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
    def duration_seconds(self) -> float | None:
        """Wall-clock duration from start to terminal state, if started."""
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialise for logging / CLI output."""
        result: dict[str, Any] = {
            "task_id": self.task_id,
            "index": self.index,
            "path": self.path,
            "state": self.state.value,
            "duration_seconds": self.duration_seconds,
        }
        if self.value is not None:
            result["value"] = self.value
        error = self.error
        if error is not None:
            result["error"] = error.to_dict() if isinstance(error, FaultlineError) else repr(error)
            diagnostics = get_suppressed(error)
        else:
            diagnostics = tuple(self.suppressed)
        if diagnostics:
            result["suppressed"] = [repr(s) for s in diagnostics]
        if self.recovery_attempts:
            result["recovery_attempts"] = self.recovery_attempts
        return result


def child_path(parent_path: str, branch: int) -> str:
    """Path of a child branch (0 = n-1, 1 = n-2)."""
    return f"{parent_path}.{branch}" if parent_path else str(branch)


__all__ = [
    "InvalidTransitionError",
    "TaskState",
    "TERMINAL_STATES",
    "TASK_VALID_TRANSITIONS",
    "validate_task_transition",
    "Task",
    "child_path",
    "utcnow",
]
