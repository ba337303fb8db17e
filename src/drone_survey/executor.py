from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from drone_survey.geometry import haversine_m, initial_bearing_deg, leg_lengths_m
from drone_survey.models import Position, ProgressUpdate, TelemetrySample, Waypoint


@dataclass
class FlightSample:
    progress: ProgressUpdate
    telemetry: TelemetrySample


def simulate_flight(
    waypoints: Sequence[Waypoint],
    speed: float,
    dt: float = 1.0,
    drain_pct_per_s: float = 0.05,
    battery_start: float = 100.0,
) -> list[FlightSample]:
    """
    Very simple kinematic follower: flies straight (linear in lat/lng) to each
    waypoint at constant ground speed, no dynamics, no wind. One sample per
    dt plus one on every waypoint arrival. Used for demos and tests only.
    """
    wps = list(waypoints)
    if not wps or speed <= 0 or dt <= 0:
        return []
    total = float(leg_lengths_m([w.latitude for w in wps], [w.longitude for w in wps]).sum())
    flown = 0.0
    elapsed = 0.0
    samples: list[FlightSample] = []

    def record(lat: float, lng: float, alt: float, index: int, heading: float) -> None:
        remaining = max(0.0, total - flown)
        pct = 100.0 if total == 0 else min(100.0, 100.0 * flown / total)
        samples.append(
            FlightSample(
                progress=ProgressUpdate(
                    percent_complete=round(pct, 3),
                    current_waypoint=index,
                    estimated_time_remaining=round(remaining / speed, 3),
                ),
                telemetry=TelemetrySample(
                    position=Position(latitude=lat, longitude=lng, altitude=alt),
                    battery_level=max(0.0, battery_start - drain_pct_per_s * elapsed),
                    speed=speed,
                    heading=heading,
                ),
            )
        )

    step = speed * dt
    for i, (a, b) in enumerate(zip(wps[:-1], wps[1:]), start=1):
        leg = haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)
        heading = initial_bearing_deg(a.latitude, a.longitude, b.latitude, b.longitude) if leg > 0 else 0.0
        covered = 0.0
        while leg - covered > step:
            covered += step
            flown += step
            elapsed += dt
            t = covered / leg
            record(
                a.latitude + t * (b.latitude - a.latitude),
                a.longitude + t * (b.longitude - a.longitude),
                a.altitude + t * (b.altitude - a.altitude),
                i,
                heading,
            )
        flown += leg - covered
        elapsed += (leg - covered) / speed
        record(b.latitude, b.longitude, b.altitude, i, heading)
    return samples
