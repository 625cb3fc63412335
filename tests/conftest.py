from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from fitcomp_core import Caller, CompetitionEngine

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    return CompetitionEngine(clock=clock)


@pytest.fixture
def owner():
    return Caller(user_id=900, role="gym_owner")


@pytest.fixture
def gym(engine, owner):
    return engine.register_gym(owner_id=owner.user_id, name="Iron Temple")


@pytest.fixture
def make_competition(engine, owner, gym, clock):
    def _make(**overrides):
        payload = {
            "gymId": gym.id,
            "name": "Spring Strength Challenge",
            "startDate": (clock() - timedelta(days=1)).isoformat(),
            "endDate": (clock() + timedelta(days=30)).isoformat(),
        }
        payload.update(overrides)
        return engine.create_competition(owner, payload)

    return _make


@pytest.fixture
def make_task(engine, owner):
    def _make(competition_id, **overrides):
        payload = {"name": "Deadlift", "targetValue": 100, "unit": "kg", "pointsValue": 200}
        payload.update(overrides)
        return engine.create_task(owner, competition_id, payload)

    return _make
