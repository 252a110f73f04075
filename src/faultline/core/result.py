"""
Result envelope for task and evaluation outcomes.

``Ok[T]`` holds a value, ``Err[T]`` holds a classified failure; a
``Result[T]`` is never both. Tasks report their outcome as a Result so that
composition never has to rely on an exception escaping a coroutine.

Architecture:
    ::

        ┌─────────────────┬─────────────────┬─────────────────────────┐
        │     Ok[T]       │     Err[T]      │     Utilities           │
        ├─────────────────┼─────────────────┼─────────────────────────┤
        │ • value: T      │ • error: Exc    │ • try_result()          │
        │ • unwrap()      │ • unwrap_err()  │                         │
        │                 │ • map_err()     │                         │
        └─────────────────┴─────────────────┴─────────────────────────┘

Examples:
    >>> Ok(10).unwrap()
    10
    >>> try_result(lambda: 1 // 0)
    Err(WrappedSystemError('ZeroDivisionError: integer division or modulo by zero', category=SYSTEM))

Tags:
    result-pattern, error-handling, faultline
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

from faultline.core.errors import FaultlineError, classify

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_err(self) -> BaseException:
        raise ValueError(f"Called unwrap_err on Ok: {self.value!r}")

    def map_err(self, f: Callable[[BaseException], BaseException]) -> Result[T]:
        return self

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """
    Failed result containing the failure.

    ``unwrap()`` re-raises the stored failure itself, so its kind, cause and
    suppressed companions reach the caller untouched.
    """

    error: BaseException

    def is_ok(self) -> bool:
        return False

    def unwrap(self) -> T:
        raise self.error

    def unwrap_err(self) -> BaseException:
        return self.error

    def map_err(self, f: Callable[[BaseException], BaseException]) -> Result[T]:
        """Transform the failure, e.g. to add context."""
        return Err(f(self.error))

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.error, FaultlineError):
            return {"ok": False, "error": self.error.to_dict()}
        return {"ok": False, "error": {"error_type": type(self.error).__name__, "message": str(self.error)}}

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Union[Ok[T], Err[T]]


def try_result(f: Callable[[], T]) -> Result[T]:
    """
    Run ``f`` and capture its outcome.

    Failures are classified on the way in, so an ``Err`` from here always
    holds a :class:`~faultline.core.errors.FaultlineError`.
    """
    try:
        return Ok(f())
    except Exception as e:
        return Err(classify(e))


__all__ = [
    "Ok",
    "Err",
    "Result",
    "try_result",
]
