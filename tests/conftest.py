"""
Shared pytest fixtures and configuration for faultline tests.

This module provides:
- Settings / logging isolation between tests
- Small pool and pressure fixtures for the evaluator tests
"""

from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

from faultline.core.settings import clear_settings_cache
from faultline.execution.faults import FaultPlan
from faultline.execution.pool import WorkerPool


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Generator[None, None, None]:
    """Run every test without a stray .env file or cached settings."""
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo any configure_logging() a test triggered."""
    yield
    structlog.reset_defaults()


# =============================================================================
# Evaluator Fixtures
# =============================================================================


@pytest.fixture
def pool() -> WorkerPool:
    return WorkerPool(capacity=4, name="test")


@pytest.fixture
def faults() -> FaultPlan:
    return FaultPlan()

