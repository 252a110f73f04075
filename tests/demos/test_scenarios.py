"""Tests for the error-taxonomy demo scenarios."""

import sqlite3

import pytest

from faultline.core.errors import (
    DomainError,
    InterruptedWaitError,
    InvalidIndexError,
    ResourceExhaustedError,
    ResourceReleaseError,
    StackExhaustedError,
    WrappedSystemError,
    get_suppressed,
)
from faultline.core.result import Err, Ok
from faultline.demos.scenarios import SCENARIOS, list_scenarios, run_scenario


class TestRegistry:
    def test_all_scenarios_listed(self):
        names = [s.name for s in list_scenarios()]
        assert names == [
            "wrap-lower-layer",
            "rethrow-domain",
            "close-fails",
            "close-fails-in-flight",
            "interrupted-wait",
            "async-failure",
            "stack-exhaustion",
            "out-of-memory",
        ]

    def test_unknown_scenario_is_domain_error(self):
        outcome = run_scenario("does-not-exist")
        assert isinstance(outcome, Err)
        assert type(outcome.error) is DomainError

    @pytest.mark.parametrize("name", list(SCENARIOS))
    def test_single_outcome(self, name):
        """Every scenario yields exactly one Ok or one Err."""
        outcome = run_scenario(name)
        assert isinstance(outcome, (Ok, Err))


class TestScenarios:
    def test_wrap_lower_layer(self):
        error = run_scenario("wrap-lower-layer").unwrap_err()
        assert isinstance(error, WrappedSystemError)
        assert isinstance(error.cause, sqlite3.OperationalError)
        assert error.context.metadata["cleanup"] == ["ledger connection returned"]

    def test_rethrow_domain(self):
        error = run_scenario("rethrow-domain").unwrap_err()
        assert isinstance(error, InvalidIndexError)
        assert error.value == -1
        assert error.cause is None

    def test_close_fails(self):
        error = run_scenario("close-fails").unwrap_err()
        assert type(error) is DomainError
        release = error.cause
        assert isinstance(release, ResourceReleaseError)
        assert "first-dependent" in str(release.cause)
        assert len(get_suppressed(release)) == 1
        assert error.context.metadata["close_order"] == ["first-dependent", "first"]

    def test_close_fails_in_flight(self):
        error = run_scenario("close-fails-in-flight").unwrap_err()
        assert isinstance(error, WrappedSystemError)
        assert str(error.cause) == "write failed"
        suppressed = get_suppressed(error)
        assert len(suppressed) == 1
        assert isinstance(suppressed[0], ResourceReleaseError)

    def test_interrupted_wait(self):
        error = run_scenario("interrupted-wait").unwrap_err()
        assert isinstance(error, InterruptedWaitError)
        assert isinstance(error.cause, InterruptedError)

    def test_async_failure(self):
        error = run_scenario("async-failure").unwrap_err()
        assert isinstance(error, WrappedSystemError)
        assert isinstance(error.cause, ConnectionResetError)
        assert error.context.scenario == "async-failure"

    def test_stack_exhaustion_recovered(self):
        assert run_scenario("stack-exhaustion") == Ok(256)

    def test_stack_exhaustion_without_recovery(self):
        error = run_scenario("stack-exhaustion", recover=False).unwrap_err()
        assert isinstance(error, StackExhaustedError)
        assert error.is_fatal

    def test_out_of_memory_recovered(self):
        assert run_scenario("out-of-memory") == Ok(32 * 1024)

    def test_out_of_memory_without_recovery(self):
        error = run_scenario("out-of-memory", recover=False).unwrap_err()
        assert isinstance(error, ResourceExhaustedError)
        assert error.context.scenario == "out-of-memory"
