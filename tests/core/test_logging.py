"""Tests for faultline.core.logging module."""

import json

import structlog

from faultline.core.errors import DomainError, ResourceReleaseError, attach_suppressed
from faultline.core.logging import (
    configure_logging,
    evaluation_context,
    get_logger,
    render_failures,
    task_context,
)


class TestRenderFailures:
    """Exception values become classified dictionaries."""

    def test_faultline_error(self):
        error = DomainError("bad").with_context(path="0.1")
        event = render_failures(None, "warning", {"event": "task.failed", "error": error})
        assert event["error"] == error.to_dict()
        assert event["error"]["category"] == "DOMAIN"

    def test_foreign_error_with_suppressed(self):
        error = ValueError("plain")
        attach_suppressed(error, ResourceReleaseError("close failed"))
        event = render_failures(None, "warning", {"event": "x", "cause": error})
        assert event["cause"]["error_type"] == "ValueError"
        assert event["cause"]["message"] == "plain"
        assert len(event["cause"]["suppressed"]) == 1

    def test_other_values_untouched(self):
        event = render_failures(None, "info", {"event": "x", "n": 5, "exc_info": True})
        assert event == {"event": "x", "n": 5, "exc_info": True}


class TestContexts:
    def test_evaluation_context_binds_and_unbinds(self):
        with evaluation_context("abc123", n=7):
            assert structlog.contextvars.get_contextvars() == {"evaluation_id": "abc123", "n": 7}
        assert "evaluation_id" not in structlog.contextvars.get_contextvars()

    def test_task_context_nests(self):
        with evaluation_context("abc123"):
            with task_context("0.1", 7):
                bound = structlog.contextvars.get_contextvars()
                assert bound["task_path"] == "0.1"
                assert bound["index"] == 7
                assert bound["evaluation_id"] == "abc123"
            assert "task_path" not in structlog.contextvars.get_contextvars()


class TestConfigureLogging:
    def test_get_logger_with_name(self):
        logger = get_logger(__name__)
        assert hasattr(logger, "info")

    def test_json_lines_carry_context_and_failure(self, capsys):
        configure_logging(level="DEBUG", json_format=True)
        logger = get_logger(__name__)
        with evaluation_context("abc123"), task_context("0", 9):
            logger.warning("task.failed", error=DomainError("bad"))

        line = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert line["event"] == "task.failed"
        assert line["level"] == "warning"
        assert line["evaluation_id"] == "abc123"
        assert line["task_path"] == "0"
        assert line["error"]["error_type"] == "DomainError"
        assert "timestamp" in line

    def test_level_filters(self, capsys):
        configure_logging(level="ERROR", json_format=True)
        get_logger(__name__).info("quiet")
        assert capsys.readouterr().err == ""
