"""
Structured logging for faultline.

Every log line an evaluation emits can be traced back to the evaluation and
the branch task that produced it. The evaluator binds ``evaluation_id`` once
per call and each branch task binds its own ``task_path`` / ``index``; both
live in contextvars, so concurrently running branches never see each other's
fields.

Failures are passed to the logger as objects (``error=exc``) and rendered by
:func:`render_failures` into their category, severity and suppressed
companions, so log lines carry the same classification the caller sees.

Configuration Flow:
    ::

        configure_logging(level="INFO", json_format=None)
            │
            ▼
        merge_contextvars → add_log_level → TimeStamper → render_failures
            │
            ▼
        JSONRenderer (non-tty)  or  ConsoleRenderer (tty)

Example::

    logger = get_logger(__name__)
    with evaluation_context(evaluation_id="abc123"):
        with task_context(path="0.1", index=7):
            logger.warning("task.failed", error=error)

Tags:
    logging, structlog, observability, faultline
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from faultline.core.errors import FaultlineError, get_suppressed


def render_failures(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace exception values with their classified, serialisable form."""
    for key, value in list(event_dict.items()):
        if key == "exc_info" or not isinstance(value, BaseException):
            continue
        if isinstance(value, FaultlineError):
            event_dict[key] = value.to_dict()
        else:
            rendered: dict[str, Any] = {"error_type": type(value).__name__, "message": str(value)}
            suppressed = get_suppressed(value)
            if suppressed:
                rendered["suppressed"] = [repr(s) for s in suppressed]
            event_dict[key] = rendered
    return event_dict


def configure_logging(level: str = "INFO", json_format: bool | None = None) -> None:
    """Configure structured logging for the harness.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
    """
    if json_format is None:
        json_format = not sys.stderr.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        render_failures,
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


@contextmanager
def evaluation_context(evaluation_id: str, **fields: Any) -> Iterator[None]:
    """Bind ``evaluation_id`` (and any extra fields) for one evaluation."""
    with structlog.contextvars.bound_contextvars(evaluation_id=evaluation_id, **fields):
        yield


@contextmanager
def task_context(path: str, index: int) -> Iterator[None]:
    """Bind the branch task's path and index.

    Branch tasks run in their own asyncio task, i.e. their own copy of the
    context, so the binding never leaks into a sibling.
    """
    with structlog.contextvars.bound_contextvars(task_path=path, index=index):
        yield


__all__ = [
    "configure_logging",
    "get_logger",
    "render_failures",
    "evaluation_context",
    "task_context",
]
