"""Tests for task records and the task state machine."""

import itertools

import pytest

from faultline.core.errors import DomainError, EvaluationCancelled, ResourceReleaseError, attach_suppressed
from faultline.execution.tasks import (
    TERMINAL_STATES,
    InvalidTransitionError,
    Task,
    TaskState,
    child_path,
    validate_task_transition,
)


class TestTransitions:
    @pytest.mark.parametrize(
        "current, target",
        [
            (TaskState.CREATED, TaskState.QUEUED),
            (TaskState.QUEUED, TaskState.RUNNING),
            (TaskState.QUEUED, TaskState.DISCARDED),
            (TaskState.RUNNING, TaskState.COMPLETED),
            (TaskState.RUNNING, TaskState.FAILED),
        ],
    )
    def test_valid(self, current, target):
        validate_task_transition(current, target)

    @pytest.mark.parametrize(
        "current, target",
        [
            (TaskState.CREATED, TaskState.RUNNING),
            (TaskState.RUNNING, TaskState.DISCARDED),
            (TaskState.COMPLETED, TaskState.FAILED),
            (TaskState.FAILED, TaskState.COMPLETED),
            (TaskState.DISCARDED, TaskState.RUNNING),
        ],
    )
    def test_invalid(self, current, target):
        with pytest.raises(InvalidTransitionError):
            validate_task_transition(current, target)

    def test_terminal_states(self):
        assert TERMINAL_STATES == {TaskState.COMPLETED, TaskState.FAILED, TaskState.DISCARDED}
        assert not TaskState.RUNNING.is_terminal


class TestTask:
    def test_lifecycle_complete(self):
        task = Task(index=5, path="0", sequence=itertools.count(1))
        task.enqueue()
        assert task.state is TaskState.QUEUED
        assert task.queued_at is not None
        task.start()
        task.complete(5)
        assert task.is_terminal
        assert task.value == 5
        assert task.error is None
        assert task.finish_order == 1
        assert task.duration_seconds is not None

    def test_lifecycle_fail(self):
        task = Task(index=3, path="1")
        task.enqueue()
        task.start()
        error = DomainError("bad")
        task.fail(error)
        assert task.state is TaskState.FAILED
        assert task.error is error
        assert task.value is None

    def test_discard_never_started(self):
        task = Task(index=3, path="1")
        task.enqueue()
        task.discard(EvaluationCancelled())
        assert task.state is TaskState.DISCARDED
        assert task.started_at is None
        assert task.duration_seconds is None

    def test_terminal_state_is_final(self):
        task = Task(index=2, path="0")
        task.enqueue()
        task.start()
        task.complete(1)
        with pytest.raises(InvalidTransitionError):
            task.fail(DomainError("late"))
        assert task.value == 1

    def test_finish_order_increases(self):
        sequence = itertools.count(1)
        first = Task(index=2, path="0", sequence=sequence)
        second = Task(index=2, path="1", sequence=sequence)
        for task in (first, second):
            task.enqueue()
            task.start()
        second.complete(1)
        first.complete(1)
        assert second.finish_order < first.finish_order

    def test_finish_order_needs_a_sequence(self):
        task = Task(index=2, path="0")
        task.enqueue()
        task.start()
        task.complete(1)
        assert task.finish_order is None

    def test_separate_sequences_are_independent(self):
        tasks = [Task(index=2, path="0", sequence=itertools.count(1)) for _ in range(2)]
        for task in tasks:
            task.enqueue()
            task.discard(EvaluationCancelled())
        assert [t.finish_order for t in tasks] == [1, 1]

    def test_to_dict(self):
        task = Task(index=4, path="0.1")
        task.enqueue()
        task.start()
        error = DomainError("bad")
        attach_suppressed(error, ResourceReleaseError("close failed"))
        task.fail(error)
        d = task.to_dict()
        assert d["state"] == "failed"
        assert d["path"] == "0.1"
        assert d["error"]["error_type"] == "DomainError"
        assert len(d["suppressed"]) == 1


class TestChildPath:
    def test_root_children(self):
        assert child_path("", 0) == "0"
        assert child_path("", 1) == "1"

    def test_nested(self):
        assert child_path("0.1", 0) == "0.1.0"
