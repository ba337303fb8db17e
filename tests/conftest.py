from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from drone_survey.config import EngineSettings
from drone_survey.events import TopicBroker
from drone_survey.models import Boundary, Drone, DroneCapabilities, FlightParameters, Mission, PatternType, Sensor
from drone_survey.orchestrator import MissionOrchestrator
from drone_survey.planner import generate
from drone_survey.store import InMemoryRepository

ORG = "org-1"
OTHER_ORG = "org-2"
DRONE_ID = "drone-1"

SQUARE = [(0.0, 0.0), (0.0, 0.001), (0.001, 0.001), (0.001, 0.0), (0.0, 0.0)]


class StepClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class YieldingRepository(InMemoryRepository):
    """Suspends on every call so concurrent operations genuinely interleave."""

    async def get_mission(self, mission_id, organization_id):
        await asyncio.sleep(0)
        return await super().get_mission(mission_id, organization_id)

    async def replace_mission(self, mission):
        await asyncio.sleep(0)
        await super().replace_mission(mission)


def make_drone(**overrides) -> Drone:
    data = {
        "id": DRONE_ID,
        "organization_id": ORG,
        "name": "Quad 1",
        "capabilities": DroneCapabilities(
            max_flight_time_min=30, max_speed_kmh=54, max_altitude_m=120, sensors=[Sensor.RGB]
        ),
    }
    data.update(overrides)
    return Drone(**data)


def make_orchestrator(repo=None, notifier=None, **settings) -> tuple[MissionOrchestrator, InMemoryRepository, TopicBroker]:
    repo = repo if repo is not None else InMemoryRepository([make_drone()])
    broker = notifier if notifier is not None else TopicBroker()
    orch = MissionOrchestrator(repo, broker, settings=EngineSettings(**settings), clock=StepClock())
    return orch, repo, broker


@pytest.fixture
def square() -> Boundary:
    return Boundary(coordinates=SQUARE)


@pytest.fixture
def params() -> FlightParameters:
    return FlightParameters(altitude=40, speed=8, overlap=30)


@pytest.fixture
def planned_mission(square, params) -> Mission:
    return Mission(
        id="m-1",
        organization_id=ORG,
        drone_id=DRONE_ID,
        name="Field A",
        boundary=square,
        pattern_type=PatternType.GRID,
        parameters=params,
        waypoints=generate(square, PatternType.GRID, params),
    )
