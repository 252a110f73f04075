"""Error-taxonomy demo scenarios.

Each scenario runs one small exception-handling situation end to end and
returns its outcome as a :class:`~faultline.core.result.Result`: ``Err``
holding exactly one classified failure, or ``Ok`` when a scoped recovery
succeeded.

    >>> run_scenario("wrap-lower-layer")
    Err(WrappedSystemError('OperationalError: database is locked', category=SYSTEM))
"""

from __future__ import annotations

import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable

from faultline.core.errors import (
    DomainError,
    FaultlineError,
    InvalidIndexError,
    ResourceReleaseError,
    ResourceScope,
    StackExhaustedError,
    classify,
    rethrow_domain,
    wrap,
)
from faultline.core.logging import get_logger
from faultline.core.result import Err, Ok, Result, try_result
from faultline.execution.faults import ResourcePressure
from faultline.execution.recovery import (
    NoRecovery,
    RecoveryPolicy,
    ReleaseReserveAndRetry,
    ScopedRecovery,
    recover_with,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class Scenario:
    name: str
    description: str
    run: Callable[[bool], Result[Any]]


# ── Lower-layer collaborators ────────────────────────────────────────────


def _query_ledger() -> None:
    raise sqlite3.OperationalError("database is locked")


def _check_index(n: int) -> int:
    if n < 0:
        raise InvalidIndexError(n)
    return n


class DemoResource:
    """A resource whose ``close()`` always fails."""

    def __init__(self, name: str, closed: list[str]) -> None:
        self.name = name
        self._closed = closed

    def close(self) -> None:
        self._closed.append(self.name)
        raise OSError(f"Oops while closing {self.name}")


# ── Scenarios ────────────────────────────────────────────────────────────


def wrap_lower_layer(recover: bool = True) -> Result[None]:
    """Lower-layer errors are wrapped; the cleanup block runs regardless."""
    cleanup: list[str] = []
    try:
        try:
            _query_ledger()
        except (sqlite3.Error, OSError) as exc:
            raise wrap(exc)
        except DomainError as exc:
            raise rethrow_domain(exc)
        finally:
            cleanup.append("ledger connection returned")
    except FaultlineError as exc:
        return Err(exc.with_context(scenario="wrap-lower-layer", cleanup=list(cleanup)))
    return Ok(None)


def rethrow_domain_error(recover: bool = True) -> Result[int]:
    """A DomainError crosses the boundary as the same instance."""
    try:
        try:
            return Ok(_check_index(-1))
        except DomainError as exc:
            raise rethrow_domain(exc)
    except DomainError as exc:
        return Err(exc.with_context(scenario="rethrow-domain"))


def close_fails(recover: bool = True) -> Result[None]:
    """Both resources fail on close after a successful body.

    The first release failure is raised with the second suppressed, and the
    boundary turns it into a DomainError, keeping it as the cause.
    """
    closed: list[str] = []
    try:
        with ResourceScope() as scope:
            first = scope.enter(DemoResource("first", closed))
            scope.enter(DemoResource(f"{first.name}-dependent", closed))
    except ResourceReleaseError as exc:
        error = DomainError("resources could not be released", cause=exc)
        return Err(error.with_context(scenario="close-fails", close_order=closed))
    return Ok(None)


def close_fails_in_flight(recover: bool = True) -> Result[None]:
    """The body fails and so does close(); the body's failure stays primary."""
    closed: list[str] = []
    try:
        with ResourceScope() as scope:
            scope.enter(DemoResource("spool", closed))
            raise OSError("write failed")
    except OSError as exc:
        return Err(wrap(exc).with_context(scenario="close-fails-in-flight"))


def _sleep_interruptibly(seconds: float, interrupt: threading.Event) -> None:
    if interrupt.wait(timeout=seconds):
        raise InterruptedError("sleep interrupted")


def interrupted_wait(recover: bool = True) -> Result[None]:
    """A blocking wait is interrupted by another thread."""
    interrupt = threading.Event()
    timer = threading.Timer(0.01, interrupt.set)
    timer.start()
    try:
        _sleep_interruptibly(5.0, interrupt)
    except InterruptedError as exc:
        return Err(classify(exc, scenario="interrupted-wait"))
    finally:
        timer.cancel()
    return Ok(None)


def async_failure(recover: bool = True) -> Result[int]:
    """A failure inside an asynchronous callable surfaces when its result is read."""

    def fetch_remote() -> int:
        raise ConnectionResetError("peer went away")

    with ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(fetch_remote)
        return try_result(future.result).map_err(
            lambda e: e.with_context(scenario="async-failure") if isinstance(e, FaultlineError) else e
        )


def _descend(depth: int, limit: int | None) -> int:
    if limit is not None and depth >= limit:
        return depth
    return _descend(depth + 1, limit)


def stack_exhaustion(recover: bool = True) -> Result[int]:
    """Unbounded recursion, recovered only by a policy scoped to stack exhaustion."""
    state = {"limit": None}

    def bound_recursion(error: FaultlineError) -> None:
        state["limit"] = 256

    policy: RecoveryPolicy = (
        ScopedRecovery(handles=(StackExhaustedError,), action=bound_recursion, max_attempts=1)
        if recover
        else NoRecovery()
    )
    return recover_with(policy, lambda: _descend(0, state["limit"])).map_err(
        lambda e: e.with_context(scenario="stack-exhaustion") if isinstance(e, FaultlineError) else e
    )


def out_of_memory(recover: bool = True) -> Result[int]:
    """Allocation over the ceiling; recovery drops the cached reserve and retries once."""
    pressure = ResourcePressure(bytes_per_index=1024, ceiling_bytes=64 * 1024, reserve_bytes=48 * 1024)
    policy: RecoveryPolicy = ReleaseReserveAndRetry(pressure, max_attempts=1) if recover else NoRecovery()

    def allocate() -> int:
        buffer = pressure.allocate(32)
        try:
            return buffer.size
        finally:
            buffer.close()

    return recover_with(policy, allocate).map_err(
        lambda e: e.with_context(scenario="out-of-memory") if isinstance(e, FaultlineError) else e
    )


SCENARIOS: dict[str, Scenario] = {
    s.name: s
    for s in (
        Scenario("wrap-lower-layer", "lower-layer failure wrapped, cleanup still runs", wrap_lower_layer),
        Scenario("rethrow-domain", "domain error passes through unchanged", rethrow_domain_error),
        Scenario("close-fails", "close() fails after a successful body", close_fails),
        Scenario("close-fails-in-flight", "close() fails while a failure propagates", close_fails_in_flight),
        Scenario("interrupted-wait", "blocking wait interrupted", interrupted_wait),
        Scenario("async-failure", "failure inside an asynchronous callable", async_failure),
        Scenario("stack-exhaustion", "recursion depth exhausted, scoped fallback", stack_exhaustion),
        Scenario("out-of-memory", "allocation ceiling hit, reserve dropped and retried", out_of_memory),
    )
}


def list_scenarios() -> list[Scenario]:
    return list(SCENARIOS.values())


def run_scenario(name: str, *, recover: bool = True) -> Result[Any]:
    """Run one scenario by name. Unknown names are a DomainError."""
    scenario = SCENARIOS.get(name)
    if scenario is None:
        return Err(DomainError(f"unknown scenario: {name}").with_context(scenario=name))
    outcome = scenario.run(recover)
    logger.info(
        "demo.complete",
        scenario=name,
        ok=outcome.is_ok(),
        error=repr(outcome.error) if isinstance(outcome, Err) else None,
    )
    return outcome


__all__ = ["Scenario", "SCENARIOS", "list_scenarios", "run_scenario"]
