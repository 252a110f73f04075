"""Bounded async task evaluation.

Architecture::

    pool.py        WorkerPool (FIFO slots, discard, shutdown)
    tasks.py       Task + TaskState transition rules
    faults.py      FaultPlan, ResourcePressure, TaskBuffer
    recovery.py    Scoped recovery policies
    evaluator.py   FibonacciEvaluator, EvaluationResult, evaluate()
"""

from faultline.execution.evaluator import (
    EvaluationResult,
    EvaluationStatus,
    FibonacciEvaluator,
    evaluate,
    evaluate_async,
    fib,
)
from faultline.execution.faults import FaultKind, FaultPlan, ResourcePressure, TaskBuffer
from faultline.execution.pool import WorkerPool
from faultline.execution.recovery import (
    CompositeRecovery,
    NoRecovery,
    RecoveryPolicy,
    ReleaseReserveAndRetry,
    ScopedRecovery,
    recover_with,
)
from faultline.execution.tasks import InvalidTransitionError, Task, TaskState

__all__ = [
    "EvaluationResult",
    "EvaluationStatus",
    "FibonacciEvaluator",
    "evaluate",
    "evaluate_async",
    "fib",
    "FaultKind",
    "FaultPlan",
    "ResourcePressure",
    "TaskBuffer",
    "WorkerPool",
    "CompositeRecovery",
    "NoRecovery",
    "RecoveryPolicy",
    "ReleaseReserveAndRetry",
    "ScopedRecovery",
    "recover_with",
    "InvalidTransitionError",
    "Task",
    "TaskState",
]
