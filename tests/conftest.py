"""
Pytest fixtures for the settlement engine test suite.

Provides:
- Structured logging configured once per session
- LogContext isolation between tests
- ``captured_logs`` for asserting on emitted JSON log records
- A small trip with a handful of expenses in two currencies
"""

import json
import logging
from io import StringIO

import pytest

from settlement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from tests.builders import equal_expense, itemized_expense, line_item, weighted_expense


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture settlement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            calculator.calculate("trip-1", expenses, "USD")
            logs = captured_logs()
            assert any(r["message"] == "settlement_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("settlement_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def dinner_trip():
    """
    Four expenses among alice, bob and carol.

    USD nets: alice +50.00, bob -10.00, carol -40.00 after the first two;
    the third and fourth add a weighted taxi and an itemized lunch.
    """
    return [
        equal_expense("e1", "alice", "90.00", ["alice", "bob", "carol"]),
        equal_expense("e2", "bob", "30.00", ["alice", "bob", "carol"]),
        weighted_expense("e3", "carol", "40.00", {"alice": 1, "bob": 3}),
        itemized_expense(
            "e4",
            "alice",
            "33.33",
            [line_item("i1", "Pizza", "33.33", ["bob", "carol"])],
        ),
    ]


@pytest.fixture
def two_currency_trip():
    return [
        equal_expense("u1", "alice", "60.00", ["alice", "bob"]),
        equal_expense("u2", "bob", "20.00", ["alice", "bob"]),
        equal_expense("r1", "bob", "90.00", ["alice", "bob", "carol"], currency="EUR"),
    ]
