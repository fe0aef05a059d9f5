"""Shared pytest fixtures for RuleBridge test suite."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest


@pytest.fixture(autouse=True)
def _disable_store_side_effects(monkeypatch, tmp_path):
    """Keep session persistence off and point the store at a temp DB by default."""
    monkeypatch.setenv("RULEBRIDGE_STORE_ENABLED", "false")
    monkeypatch.setenv("RULEBRIDGE_DB_PATH", str(tmp_path / "rulebridge.db"))
    from src.rule_runner import reset_runtime_state

    reset_runtime_state()
    yield
    reset_runtime_state()


class FakeClock:
    """Manually advanced UTC clock for guard tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 10, 15, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker():
    """Tracker client double recording add_comment/update_fields calls."""
    return MagicMock(name="tracker")
