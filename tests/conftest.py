"""
Pytest configuration and fixtures for voltrader tests.

This conftest.py provides shared fixtures and hooks for all tests.
"""
import pytest

from ai.risk_profile import get_risk_profile
from core.position_ledger import PositionLedger


@pytest.fixture(autouse=True)
def reset_singletons():
    """
    Reset singleton instances between tests to ensure test isolation.

    This is applied automatically to all tests (autouse=True).
    """
    from infra.metrics import MetricsRecorder

    # Reset BEFORE test (cleanup from previous test pollution)
    MetricsRecorder._reset_for_testing()

    yield

    MetricsRecorder._reset_for_testing()


@pytest.fixture
def low_profile():
    return get_risk_profile("low")


@pytest.fixture
def high_profile():
    return get_risk_profile("high")


@pytest.fixture
def ledger():
    return PositionLedger(total_capital=100_000.0, capital_guard_fraction=0.9)
