"""
Shared pytest configuration and fixtures for the ranked ballot tabulator.

This module provides common test fixtures and utilities used across
all test modules.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tabulation.types import Ballot  # noqa: E402


def make_ballots(*rankings, prefix="b"):
    """
    Build ballots from raw rankings.

    Each ranking is a list of None / candidate id / list of ids, as accepted
    by Ballot.from_raw. Ballot ids are ``b1``, ``b2``, ...
    """
    return [
        Ballot.from_raw(f"{prefix}{i}", ranks) for i, ranks in enumerate(rankings, 1)
    ]


def repeat(ranks, times):
    """``times`` copies of one ranking, for use with make_ballots(*...)."""
    return [list(ranks) for _ in range(times)]


@pytest.fixture
def temp_db_file():
    """Provide a temporary database file path for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    os.unlink(db_path)  # Let DuckDB create the file

    try:
        yield db_path
    finally:
        for path in (db_path, db_path + ".wal"):
            if os.path.exists(path):
                os.unlink(path)


@pytest.fixture
def four_candidates():
    return ["A", "B", "C", "D"]


@pytest.fixture
def clear_majority_ballots():
    """Three ballots all ranking A first."""
    return make_ballots(
        ["A", "B", "C", "D"],
        ["A", "C", "B", "D"],
        ["A", "D", "B", "C"],
    )


@pytest.fixture
def duplicate_ranking_ballots():
    """
    b1 ranks A twice then B; A is eliminated first, then B by lookback.

    Round 0: A 1, B 2, C 3
    Round 1: B 3, C 3 (tie, B had fewer in round 0)
    Round 2: C 3, three ballots exhausted
    """
    return make_ballots(
        ["A", "A", "B", None],
        ["B", None, None, None],
        ["B", None, None, None],
        ["C", None, None, None],
        ["C", None, None, None],
        ["C", None, None, None],
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (medium speed, database required)",
    )
    config.addinivalue_line(
        "markers",
        "golden: marks tests as golden dataset validation (hand-computed scenarios)",
    )
    config.addinivalue_line(
        "markers", "invariant: marks tests as mathematical invariant validation"
    )
    config.addinivalue_line(
        "markers", "smoke: marks tests as smoke tests (basic functionality check)"
    )
