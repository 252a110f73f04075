"""Tests for the faultline CLI harness."""

import importlib
import json
import logging

import pytest
import structlog
from typer.testing import CliRunner

from faultline.cli.app import (
    EXIT_CANCELLED,
    EXIT_DOMAIN,
    EXIT_FATAL,
    EXIT_OK,
    EXIT_SYSTEM,
    app,
    exit_code_for,
)
from faultline.core.errors import (
    DomainError,
    EvaluationCancelled,
    ResourceExhaustedError,
    ResourceReleaseError,
    wrap,
)

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep log lines out of captured CLI output."""
    calls = []

    def fake_configure(**kwargs):
        calls.append(kwargs)
        structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL))

    # The package re-exports the Typer object as ``faultline.cli.app``, so the
    # dotted-string form would resolve to it instead of the module.
    cli_module = importlib.import_module("faultline.cli.app")
    monkeypatch.setattr(cli_module, "configure_logging", fake_configure)
    return calls


class TestExitCodes:
    @pytest.mark.parametrize(
        "error, code",
        [
            (None, EXIT_OK),
            (DomainError("x"), EXIT_DOMAIN),
            (wrap(OSError()), EXIT_SYSTEM),
            (ResourceReleaseError("x"), EXIT_SYSTEM),
            (ResourceExhaustedError("x"), EXIT_FATAL),
            (MemoryError(), EXIT_FATAL),
            (EvaluationCancelled(), EXIT_CANCELLED),
        ],
    )
    def test_exit_code_for(self, error, code):
        assert exit_code_for(error) == code


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "faultline" in result.output

    def test_configures_logging_from_settings(self, quiet_logging, monkeypatch):
        monkeypatch.setenv("FAULTLINE_LOG_FORMAT", "json")
        result = runner.invoke(app, ["evaluate", "3"])
        assert result.exit_code == 0
        assert quiet_logging == [{"level": "INFO", "json_format": True}]


class TestEvaluateCommand:
    def test_success(self):
        result = runner.invoke(app, ["evaluate", "10", "--capacity", "4"])
        assert result.exit_code == EXIT_OK
        assert "55" in result.output

    def test_json(self):
        result = runner.invoke(app, ["evaluate", "10", "--json"])
        assert result.exit_code == EXIT_OK
        payload = json.loads(result.output.strip().splitlines()[-1])
        assert payload["value"] == 55
        assert payload["status"] == "completed"

    def test_negative_index(self):
        result = runner.invoke(app, ["evaluate", "--", "-1"])
        assert result.exit_code == EXIT_DOMAIN
        assert "InvalidIndexError" in result.output

    def test_invalid_capacity(self):
        result = runner.invoke(app, ["evaluate", "5", "-c", "0"])
        assert result.exit_code == EXIT_SYSTEM
        assert "InvalidConfigError" in result.output


class TestDemoCommand:
    def test_list(self):
        result = runner.invoke(app, ["demo", "--list"])
        assert result.exit_code == EXIT_OK
        assert "out-of-memory" in result.output

    @pytest.mark.parametrize(
        "args, code",
        [
            (["demo", "wrap-lower-layer"], EXIT_SYSTEM),
            (["demo", "rethrow-domain"], EXIT_DOMAIN),
            (["demo", "close-fails"], EXIT_DOMAIN),
            (["demo", "close-fails-in-flight"], EXIT_SYSTEM),
            (["demo", "async-failure"], EXIT_SYSTEM),
            (["demo", "stack-exhaustion"], EXIT_OK),
            (["demo", "stack-exhaustion", "--no-recover"], EXIT_FATAL),
            (["demo", "out-of-memory"], EXIT_OK),
            (["demo", "out-of-memory", "--no-recover"], EXIT_FATAL),
            (["demo", "no-such-scenario"], EXIT_DOMAIN),
        ],
    )
    def test_exit_codes(self, args, code):
        result = runner.invoke(app, args)
        assert result.exit_code == code

    def test_suppressed_failures_are_printed(self):
        result = runner.invoke(app, ["demo", "close-fails-in-flight"])
        assert "suppressed" in result.output

    def test_failure_line_names_category(self):
        result = runner.invoke(app, ["demo", "out-of-memory", "--no-recover"])
        assert "ResourceExhaustedError" in result.output
        assert "FATAL" in result.output
