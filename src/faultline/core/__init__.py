"""Core primitives: error taxonomy, result envelope, logging and settings."""

from faultline.core.errors import (
    DomainError,
    ErrorCategory,
    ErrorContext,
    EvaluationCancelled,
    FatalError,
    FaultlineError,
    InterruptedWaitError,
    InvalidConfigError,
    InvalidIndexError,
    PoolShutdownError,
    ResourceExhaustedError,
    ResourceReleaseError,
    ResourceScope,
    Severity,
    StackExhaustedError,
    WrappedSystemError,
    attach_suppressed,
    classify,
    get_suppressed,
    recoverable_vs_fatal,
    rethrow_domain,
    wrap,
)
from faultline.core.result import Err, Ok, Result

__all__ = [
    "DomainError",
    "ErrorCategory",
    "ErrorContext",
    "EvaluationCancelled",
    "FatalError",
    "FaultlineError",
    "InterruptedWaitError",
    "InvalidConfigError",
    "InvalidIndexError",
    "PoolShutdownError",
    "ResourceExhaustedError",
    "ResourceReleaseError",
    "ResourceScope",
    "Severity",
    "StackExhaustedError",
    "WrappedSystemError",
    "attach_suppressed",
    "classify",
    "get_suppressed",
    "recoverable_vs_fatal",
    "rethrow_domain",
    "wrap",
    "Ok",
    "Err",
    "Result",
]
