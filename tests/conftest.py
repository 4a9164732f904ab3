# tests/conftest.py
"""Shared pytest fixtures for the vivarium controller tests.

Controllers take an explicit ``now``; tests drive them with fixed instants
and a manual clock instead of sleeping.
"""

from datetime import datetime, timedelta, timezone

import pytest

from vivarium.domain.models import ControllerConfig, RhythmConfig


class ManualClock:
    """Injectable clock for ControlLoopService."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class FakeRepository:
    """In-memory stand-in for SQLiteRepository."""

    def __init__(self) -> None:
        self.readings = []
        self.actions = []
        self.statuses = []

    async def init(self) -> None:
        pass

    async def insert_reading(self, reading) -> None:
        self.readings.append(reading)

    async def insert_action(self, action) -> None:
        self.actions.append(action)

    async def insert_status(self, event) -> None:
        self.statuses.append(event)

    async def query_readings(self, start_ts, end_ts, limit):
        return self.readings[-limit:]

    async def query_actions(self, start_ts, end_ts, limit):
        return self.actions[-limit:]

    async def query_status(self, start_ts, end_ts, limit):
        return self.statuses[-limit:]


# ----------------------------------------------------------------
# Time fixtures
# ----------------------------------------------------------------
@pytest.fixture
def t0() -> datetime:
    """Summer solstice 2024 (day 172), 12:00 UTC."""
    return datetime(2024, 6, 20, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(t0) -> ManualClock:
    return ManualClock(t0)


# ----------------------------------------------------------------
# Configuration fixtures
# ----------------------------------------------------------------
@pytest.fixture
def greenwich_rhythm() -> RhythmConfig:
    """Rhythm at longitude 0 / UTC so solar noon falls on 12:00 UTC."""
    return RhythmConfig(
        latitude=51.48,
        longitude=0.0,
        timezone_offset_hours=0.0,
        diurnal_swing=1.0,
        seasonal_swing=1.0,
        tick_interval_seconds=60,
        decimals=1,
    )


@pytest.fixture
def flat_rhythm() -> RhythmConfig:
    """Zero total swing: the target is always the midpoint."""
    return RhythmConfig(diurnal_swing=0.0, seasonal_swing=0.0, tick_interval_seconds=60)


@pytest.fixture
def scenario_config() -> ControllerConfig:
    return ControllerConfig(
        deadband=1.0,
        minimum_limit=10.0,
        maximum_limit=50.0,
        watchdog_timeout_seconds=60,
        watchdog_severity="warning",
    )


@pytest.fixture
def fake_repo() -> FakeRepository:
    return FakeRepository()
