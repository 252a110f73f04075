"""Narrowly-scoped recovery policies.

A policy names the concrete failure kinds it handles and how many times it
may try.  Anything outside ``handles`` is never recovered, so a policy for
"out of memory" can never swallow a stack overflow or an I/O error, and no
policy may claim a catch-all base class.

Example:
    >>> pressure = ResourcePressure(bytes_per_index=1024, ceiling_bytes=8192, reserve_bytes=4096)
    >>> policy = ReleaseReserveAndRetry(pressure, max_attempts=1)
    >>> policy.should_recover(ResourceExhaustedError("oom"), attempt=0)
    True
    >>> policy.should_recover(StackExhaustedError("deep"), attempt=0)
    False
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from faultline.core.errors import (
    FatalError,
    FaultlineError,
    InvalidConfigError,
    ResourceExhaustedError,
)
from faultline.core.logging import get_logger
from faultline.core.result import Ok, Result, try_result
from faultline.execution.faults import ResourcePressure

logger = get_logger(__name__)

T = TypeVar("T")

# Claiming one of these would turn a policy into a blanket handler.
_TOO_BROAD: frozenset[type[BaseException]] = frozenset(
    {BaseException, Exception, FaultlineError, FatalError}
)


class RecoveryPolicy(ABC):
    """Abstract base for recovery policies.

    Subclasses are dataclasses declaring their own ``handles`` and
    ``max_attempts`` fields; the base only supplies the scope check and the
    default :meth:`should_recover`.
    """

    handles: tuple[type[FaultlineError], ...]
    max_attempts: int

    def _check_scope(self) -> None:
        broad = [kind.__name__ for kind in self.handles if kind in _TOO_BROAD]
        if broad:
            raise InvalidConfigError(
                "handles",
                broad,
                f"recovery policies must name concrete failure kinds, not {', '.join(broad)}",
            )
        if self.max_attempts < 0:
            raise InvalidConfigError("max_attempts", self.max_attempts)

    def should_recover(self, error: BaseException, attempt: int) -> bool:
        """True if ``error`` is in scope and attempts remain.

        Args:
            error: Classified failure from the last attempt
            attempt: Recoveries already performed for this operation
        """
        return attempt < self.max_attempts and isinstance(error, self.handles)

    @abstractmethod
    def recover(self, error: FaultlineError, attempt: int) -> None:
        """Prepare the next attempt (free memory, switch strategy, ...).

        Only called after ``should_recover(error, attempt)`` returned True.
        """
        ...


@dataclass
class NoRecovery(RecoveryPolicy):
    """Never recover - every failure propagates."""

    handles: tuple[type[FaultlineError], ...] = ()
    max_attempts: int = 0

    def should_recover(self, error: BaseException, attempt: int) -> bool:
        return False

    def recover(self, error: FaultlineError, attempt: int) -> None:
        return None


@dataclass
class ReleaseReserveAndRetry(RecoveryPolicy):
    """On simulated out-of-memory, drop the cached reserve and retry."""

    pressure: ResourcePressure
    max_attempts: int = 1
    handles: tuple[type[FaultlineError], ...] = (ResourceExhaustedError,)

    def __post_init__(self) -> None:
        self._check_scope()

    def recover(self, error: FaultlineError, attempt: int) -> None:
        freed = self.pressure.release_reserve()
        logger.warning("recovery.release_reserve", freed_bytes=freed, attempt=attempt + 1, error=error)


@dataclass
class ScopedRecovery(RecoveryPolicy):
    """Run ``action`` before retrying, for the named failure kinds only."""

    handles: tuple[type[FaultlineError], ...]
    action: Callable[[FaultlineError], None]
    max_attempts: int = 1

    def __post_init__(self) -> None:
        if not self.handles:
            raise InvalidConfigError("handles", self.handles, "a scoped recovery needs at least one failure kind")
        self._check_scope()

    def recover(self, error: FaultlineError, attempt: int) -> None:
        logger.warning("recovery.scoped", kind=type(error).__name__, attempt=attempt + 1)
        self.action(error)


@dataclass
class CompositeRecovery(RecoveryPolicy):
    """Delegate to the first policy that agrees to recover the failure."""

    policies: list[RecoveryPolicy] = field(default_factory=list)

    @property
    def handles(self) -> tuple[type[FaultlineError], ...]:  # type: ignore[override]
        return tuple(kind for policy in self.policies for kind in policy.handles)

    @property
    def max_attempts(self) -> int:  # type: ignore[override]
        return max((policy.max_attempts for policy in self.policies), default=0)

    def _select(self, error: BaseException, attempt: int) -> RecoveryPolicy | None:
        for policy in self.policies:
            if policy.should_recover(error, attempt):
                return policy
        return None

    def should_recover(self, error: BaseException, attempt: int) -> bool:
        return self._select(error, attempt) is not None

    def recover(self, error: FaultlineError, attempt: int) -> None:
        policy = self._select(error, attempt)
        if policy is not None:
            policy.recover(error, attempt)


def recover_with(policy: RecoveryPolicy, operation: Callable[[], T]) -> Result[T]:
    """Run a synchronous ``operation`` under ``policy``.

    Failures are classified; in-scope ones trigger ``policy.recover`` and a
    new attempt, everything else is returned as ``Err`` untouched.
    """
    attempt = 0
    while True:
        result = try_result(operation)
        if isinstance(result, Ok) or not policy.should_recover(result.error, attempt):
            return result
        policy.recover(result.error, attempt)
        attempt += 1


__all__ = [
    "RecoveryPolicy",
    "NoRecovery",
    "ReleaseReserveAndRetry",
    "ScopedRecovery",
    "CompositeRecovery",
    "recover_with",
]
