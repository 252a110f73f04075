"""
Structured error taxonomy for faultline.

Provides a small, closed hierarchy of typed errors plus the conversion rules
used at every module boundary, so that call sites never have to guess how to
react to a failure.

Every failure that leaves a faultline component is one of four kinds:

- **DomainError:** expected, checked failure (invalid input)
- **WrappedSystemError:** lower-layer failure, original cause always kept
- **ResourceReleaseError:** failure while releasing a resource
- **FatalError:** resource exhaustion, only narrowly handled

Manifesto:
    - **Closed taxonomy:** Four kinds, one category each
    - **Cause is never lost:** Wrapping always chains the original failure
    - **Suppressed, not replaced:** Cleanup failures ride along on the primary
    - **Fatal is narrow:** Generic handlers only ever see recoverable kinds

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       FaultlineError                             │
        │     (category, severity, retryable, context, cause, suppressed) │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  DomainError       WrappedSystemError    ResourceReleaseError   │
        │  (DOMAIN)          (SYSTEM, cause!)      (RESOURCE_RELEASE)     │
        │       │                  │                                       │
        │  InvalidIndexError InterruptedWaitError                          │
        │                                                                  │
        │  FatalError        EvaluationCancelled   PoolShutdownError      │
        │  (FATAL)           (CANCELLED)           (POOL)                 │
        │       │                                                          │
        │  ResourceExhaustedError                  ConfigError            │
        │  StackExhaustedError                     InvalidConfigError     │
        └─────────────────────────────────────────────────────────────────┘

        Boundary conversion (classify):

            FaultlineError   ──▶ unchanged
            MemoryError      ──▶ ResourceExhaustedError   (FATAL)
            RecursionError   ──▶ StackExhaustedError      (FATAL)
            InterruptedError ──▶ InterruptedWaitError     (SYSTEM)
            anything else    ──▶ WrappedSystemError       (SYSTEM)

Examples:
    Wrapping a lower-layer failure:

    >>> try:
    ...     raise OSError("disk unplugged")
    ... except OSError as e:
    ...     error = wrap(e)
    >>> error.cause
    OSError('disk unplugged')
    >>> error.category
    <ErrorCategory.SYSTEM: 'SYSTEM'>

    Recording a cleanup failure on the primary failure:

    >>> primary = DomainError("bad input")
    >>> attach_suppressed(primary, ResourceReleaseError("close failed"))
    DomainError('bad input', category=DOMAIN)
    >>> len(get_suppressed(primary))
    1

Guardrails:
    ❌ DON'T: ``except Exception`` around code that can exhaust memory/stack
    ✅ DO: Convert with classify() and check recoverable_vs_fatal()

    ❌ DON'T: Raise a close() failure over the error already in flight
    ✅ DO: attach_suppressed(primary, release_error)

Tags:
    error-handling, exception-hierarchy, suppressed-exceptions,
    faultline, classification
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import TracebackType
from typing import Any, Protocol


class ErrorCategory(str, Enum):
    """
    Error categories for classification and exit-code routing.

    Attributes:
        DOMAIN: Expected input / business-rule violations
        SYSTEM: Lower-layer failures wrapped at the boundary
        RESOURCE_RELEASE: Failures while closing/releasing a resource
        FATAL: Resource exhaustion, unrecoverable by default
        CANCELLED: Work abandoned because the caller cancelled
        POOL: Worker pool rejected the submission
        CONFIG: Invalid settings or constructor arguments
    """

    DOMAIN = "DOMAIN"
    SYSTEM = "SYSTEM"
    RESOURCE_RELEASE = "RESOURCE_RELEASE"
    FATAL = "FATAL"
    CANCELLED = "CANCELLED"
    POOL = "POOL"
    CONFIG = "CONFIG"


class Severity(str, Enum):
    """Whether a caller may continue after a failure."""

    RECOVERABLE = "RECOVERABLE"
    FATAL = "FATAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that were set end up in ``to_dict()`` so log lines stay short.

    Attributes:
        evaluation_id: Evaluation that observed the failure
        task_id: Task that failed
        index: Fibonacci index the task was computing
        path: Branch path of the task from the root (``"0.1.1"``)
        scenario: Demo scenario name
        metadata: Additional key-value pairs
    """

    evaluation_id: str | None = None
    task_id: str | None = None
    index: int | None = None
    path: str | None = None
    scenario: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["evaluation_id", "task_id", "index", "path", "scenario"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FaultlineError(Exception):
    """
    Base exception for all faultline errors.

    Every instance carries a category, a severity, a retryable flag, an
    :class:`ErrorContext`, an optional chained cause, and the list of
    failures that were suppressed while it propagated.

    Subclasses set ``default_category``, ``default_severity`` and
    ``default_retryable`` instead of overriding ``__init__``.

    Examples:
        >>> error = FaultlineError("Something went wrong")
        >>> error.category
        <ErrorCategory.SYSTEM: 'SYSTEM'>
        >>> error.with_context(index=7, path="0.0").context.index
        7
    """

    default_category: ErrorCategory = ErrorCategory.SYSTEM
    default_severity: Severity = Severity.RECOVERABLE
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        severity: Severity | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.severity = severity or self.default_severity
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause
        self.suppressed: list[BaseException] = []

        if cause is not None:
            self.__cause__ = cause

    @property
    def is_fatal(self) -> bool:
        return self.severity is Severity.FATAL

    def with_context(self, **kwargs: Any) -> FaultlineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise InvalidIndexError(-1).with_context(evaluation_id="abc")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = repr(self.cause)
        if self.suppressed:
            result["suppressed"] = [repr(s) for s in self.suppressed]
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# DOMAIN ERRORS (expected, checked)
# =============================================================================


class DomainError(FaultlineError):
    """
    Expected failure that is part of an operation's contract.

    Never retryable: the input has to change. Passes through boundaries that
    declare it unchanged (see :func:`rethrow_domain`).
    """

    default_category = ErrorCategory.DOMAIN
    default_retryable = False


class InvalidIndexError(DomainError):
    """A Fibonacci index was negative."""

    def __init__(self, index: int, message: str | None = None, **kwargs: Any):
        super().__init__(message or "index must be non-negative", **kwargs)
        self.field = "n"
        self.value = index
        self.context.index = index

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["field"] = self.field
        result["value"] = self.value
        return result


# =============================================================================
# WRAPPED SYSTEM ERRORS (unexpected, cause preserved)
# =============================================================================


class WrappedSystemError(FaultlineError):
    """
    Lower-layer failure that is not part of the domain's contract.

    A cause is mandatory: constructing one without a cause is a programming
    error and raises ``TypeError``.
    """

    default_category = ErrorCategory.SYSTEM
    default_retryable = True

    def __init__(self, message: str, *, cause: BaseException | None = None, **kwargs: Any):
        if cause is None:
            raise TypeError(f"{type(self).__name__} requires a cause")
        super().__init__(message, cause=cause, **kwargs)


class InterruptedWaitError(WrappedSystemError):
    """A wait (sleep, join, lock) was interrupted before it finished."""


# =============================================================================
# RESOURCE RELEASE ERRORS
# =============================================================================


class ResourceReleaseError(FaultlineError):
    """
    Failure raised while releasing a resource.

    Recorded as suppressed on whatever outcome is already propagating; only
    surfaces on its own when nothing else failed and the caller asked for
    try-with-resources behaviour.
    """

    default_category = ErrorCategory.RESOURCE_RELEASE
    default_retryable = False


# =============================================================================
# FATAL ERRORS (narrow handling only)
# =============================================================================


class FatalError(FaultlineError):
    """
    Unrecoverable-by-default failure.

    Generic recoverable-failure handlers must re-raise these. Only a recovery
    policy scoped to the concrete subclass may try again.
    """

    default_category = ErrorCategory.FATAL
    default_severity = Severity.FATAL
    default_retryable = False


class ResourceExhaustedError(FatalError):
    """Memory (real or simulated) ran out."""


class StackExhaustedError(FatalError):
    """Recursion depth ran out."""


# =============================================================================
# EVALUATION / POOL / CONFIG ERRORS
# =============================================================================


class EvaluationCancelled(FaultlineError):
    """The caller cancelled the evaluation before it finished."""

    default_category = ErrorCategory.CANCELLED

    def __init__(self, message: str = "evaluation cancelled", **kwargs: Any):
        super().__init__(message, **kwargs)


class PoolShutdownError(FaultlineError):
    """A task was submitted to a worker pool that has been shut down."""

    default_category = ErrorCategory.POOL

    def __init__(self, pool_name: str, message: str | None = None):
        self.pool_name = pool_name
        super().__init__(message or f"worker pool {pool_name!r} is shut down")


class ConfigError(FaultlineError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# CONVERSION RULES
# =============================================================================


def wrap(cause: BaseException, message: str | None = None, **context: Any) -> WrappedSystemError:
    """Wrap a lower-layer failure, keeping it as ``cause``."""
    error = WrappedSystemError(message or f"{type(cause).__name__}: {cause}", cause=cause)
    for secondary in get_suppressed(cause):
        attach_suppressed(error, secondary)
    if context:
        error.with_context(**context)
    return error


def rethrow_domain(err: BaseException) -> FaultlineError:
    """
    Return the failure a boundary declaring :class:`DomainError` should raise.

    Domain errors pass through as the same instance; anything else is not part
    of the declared contract and is wrapped.
    """
    if isinstance(err, DomainError):
        return err
    return wrap(err)


def classify(exc: BaseException, **context: Any) -> FaultlineError:
    """
    Convert any exception into a faultline failure at the point it is first observed.

    Already-classified failures are returned as the same instance so that
    kinds survive propagation through composition; ``context`` only fills
    fields they do not carry yet.
    """
    if isinstance(exc, FaultlineError):
        for key, value in context.items():
            if getattr(exc.context, key, None) is None and key not in exc.context.metadata:
                exc.with_context(**{key: value})
        return exc
    if isinstance(exc, MemoryError):
        error: FaultlineError = ResourceExhaustedError(str(exc) or "out of memory", cause=exc)
    elif isinstance(exc, RecursionError):
        error = StackExhaustedError(str(exc) or "stack exhausted", cause=exc)
    elif isinstance(exc, InterruptedError):
        error = InterruptedWaitError(str(exc) or "wait interrupted", cause=exc)
    else:
        error = wrap(exc)
    # Companions recorded on the raw exception travel with its classification.
    for secondary in get_suppressed(exc):
        attach_suppressed(error, secondary)
    if context:
        error.with_context(**context)
    return error


def attach_suppressed(primary: BaseException, secondary: BaseException) -> BaseException:
    """
    Record ``secondary`` on ``primary`` without replacing it.

    Works for foreign exceptions too: they get a ``suppressed`` list and a
    traceback note.
    """
    if secondary is primary:
        return primary
    suppressed = getattr(primary, "suppressed", None)
    if not isinstance(suppressed, list):
        suppressed = []
        primary.suppressed = suppressed  # type: ignore[attr-defined]
    if any(s is secondary for s in suppressed):
        return primary
    suppressed.append(secondary)
    primary.add_note(f"Suppressed: {secondary!r}")
    return primary


def get_suppressed(err: BaseException) -> tuple[BaseException, ...]:
    """Failures recorded on ``err`` via :func:`attach_suppressed`."""
    suppressed = getattr(err, "suppressed", None)
    if isinstance(suppressed, list):
        return tuple(suppressed)
    return ()


def recoverable_vs_fatal(err: BaseException) -> Severity:
    """Decide whether the caller may continue after ``err``."""
    if isinstance(err, FaultlineError):
        return err.severity
    if isinstance(err, (MemoryError, RecursionError)):
        return Severity.FATAL
    return Severity.RECOVERABLE


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category an error would have after :func:`classify`."""
    if isinstance(error, FaultlineError):
        return error.category
    if recoverable_vs_fatal(error) is Severity.FATAL:
        return ErrorCategory.FATAL
    return ErrorCategory.SYSTEM


# =============================================================================
# TRY-WITH-RESOURCES
# =============================================================================


class Closeable(Protocol):
    def close(self) -> None: ...


class ResourceScope:
    """
    Close resources in reverse order, never losing a failure.

    - A body failure stays the primary; close failures are attached to it.
    - With no body failure, the first close failure is raised with the rest
      attached (``raise_on_release=True``), or all of them are kept on
      :attr:`release_errors` so the caller can record them next to a
      successful result.

    Example::

        with ResourceScope() as scope:
            first = scope.enter(open_resource())
            second = scope.enter(open_other(first))
            use(first, second)
    """

    def __init__(self, *, raise_on_release: bool = True) -> None:
        self._raise_on_release = raise_on_release
        self._resources: list[Closeable] = []
        self.release_errors: list[ResourceReleaseError] = []

    def enter(self, resource: Closeable) -> Any:
        self._resources.append(resource)
        return resource

    def close(self) -> list[ResourceReleaseError]:
        errors: list[ResourceReleaseError] = []
        while self._resources:
            resource = self._resources.pop()
            try:
                resource.close()
            except ResourceReleaseError as exc:
                errors.append(exc)
            except Exception as exc:
                errors.append(
                    ResourceReleaseError(f"failed to release {type(resource).__name__}: {exc}", cause=exc)
                )
        self.release_errors.extend(errors)
        return errors

    def __enter__(self) -> ResourceScope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        errors = self.close()
        if exc is not None:
            for error in errors:
                attach_suppressed(exc, error)
            return False
        if errors and self._raise_on_release:
            primary = errors[0]
            for error in errors[1:]:
                attach_suppressed(primary, error)
            raise primary
        return False


__all__ = [
    "ErrorCategory",
    "Severity",
    "ErrorContext",
    "FaultlineError",
    # Domain
    "DomainError",
    "InvalidIndexError",
    # System
    "WrappedSystemError",
    "InterruptedWaitError",
    # Release
    "ResourceReleaseError",
    # Fatal
    "FatalError",
    "ResourceExhaustedError",
    "StackExhaustedError",
    # Evaluation / pool / config
    "EvaluationCancelled",
    "PoolShutdownError",
    "ConfigError",
    "InvalidConfigError",
    # Conversion
    "wrap",
    "rethrow_domain",
    "classify",
    "attach_suppressed",
    "get_suppressed",
    "recoverable_vs_fatal",
    "categorize_error",
    "ResourceScope",
]
