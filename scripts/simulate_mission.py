#!/usr/bin/env python3
"""Plan, fly (simulated) and complete one mission against in-memory collaborators."""
from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from drone_survey.config import configure_logging, load_settings
from drone_survey.events import TopicBroker, mission_topic
from drone_survey.executor import simulate_flight
from drone_survey.models import Drone, DroneCapabilities, Sensor
from drone_survey.orchestrator import MissionOrchestrator
from drone_survey.store import InMemoryRepository

ORG = "org-demo"
DRONE = "drone-1"


async def run(boundary_path: Path, pattern: str, every: int) -> int:
    settings = load_settings()
    configure_logging(settings)

    repo = InMemoryRepository([
        Drone(
            id=DRONE,
            organization_id=ORG,
            name="Survey quad",
            capabilities=DroneCapabilities(
                max_flight_time_min=30, max_speed_kmh=60, max_altitude_m=120, sensors=[Sensor.RGB]
            ),
        )
    ])
    broker = TopicBroker()
    boundary = json.loads(boundary_path.read_text(encoding="utf-8"))

    async with MissionOrchestrator(repo, broker, settings=settings) as orch:
        mission = await orch.plan_mission(
            ORG, boundary, pattern, {"altitude": 40, "speed": 8, "overlap": 30}, DRONE, name="Simulated survey"
        )
        sub = broker.subscribe(mission_topic(mission.id))
        await orch.start(mission.id, ORG)

        samples = simulate_flight(mission.waypoints, mission.parameters.speed)
        for i, s in enumerate(samples):
            if i % every == 0 or i == len(samples) - 1:
                await orch.ingest_progress(mission.id, ORG, s.progress, s.telemetry)
        done = await orch.complete(mission.id, ORG)

        events = sub.drain()
        print(f"Mission {done.id}: {done.status.value}; waypoints={len(done.waypoints)}; "
              f"telemetry={len(done.telemetry)}; events={len(events)}")
        for ev in events[:3] + events[-2:]:
            print(f"  {ev['event']}: {ev.get('status') or ev.get('progress', {}).get('percent_complete')}")
    return 0


def main() -> int:
    ap = argparse.ArgumentParser(description=__doc__)
    ap.add_argument("--boundary", default="examples/boundaries/square.json")
    ap.add_argument("--pattern", default="grid")
    ap.add_argument("--every", type=int, default=10, help="Report every Nth simulated sample")
    args = ap.parse_args()
    return asyncio.run(run(Path(args.boundary), args.pattern, max(1, args.every)))


if __name__ == "__main__":
    raise SystemExit(main())
