from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from drone_survey.models import Drone, DroneStatus, Mission


@dataclass
class Amendment:
    message: str
    changes: dict[str, Any]


@dataclass
class Verdict:
    ok: bool
    reasons: list[str]
    amendments: list[Amendment] = field(default_factory=list)


class Supervisor:
    """Pre-flight guard: does the assigned drone's envelope cover the plan?"""

    def verify_preflight(self, mission: Mission, drone: Drone) -> Verdict:
        reasons: list[str] = []
        amendments: list[Amendment] = []

        if drone.status is not DroneStatus.AVAILABLE:
            reasons.append(f"drone {drone.id} is {drone.status.value}, not available")

        caps = drone.capabilities
        if caps is None:
            if reasons:
                return Verdict(ok=False, reasons=reasons)
            return Verdict(ok=True, reasons=["pre-flight checks passed (no capability data)"])

        params = mission.parameters
        if params.altitude > caps.max_altitude_m:
            msg = f"altitude {params.altitude} m exceeds drone ceiling {caps.max_altitude_m} m"
            reasons.append(msg)
            amendments.append(Amendment(message=msg, changes={"parameters": {"altitude": caps.max_altitude_m}}))

        max_speed_mps = caps.max_speed_kmh / 3.6
        if params.speed > max_speed_mps + 1e-9:
            msg = f"speed {params.speed} m/s exceeds drone maximum {max_speed_mps:.2f} m/s"
            reasons.append(msg)
            amendments.append(Amendment(message=msg, changes={"parameters": {"speed": round(max_speed_mps, 2)}}))

        wanted = set(params.sensor_settings.active_sensors) if params.sensor_settings else set()
        missing = sorted(s.value for s in wanted - set(caps.sensors))
        if missing:
            reasons.append(f"drone {drone.id} lacks sensors: {', '.join(missing)}")

        endurance_s = caps.max_flight_time_min * 60
        if mission.estimated_duration_s > endurance_s:
            reasons.append(
                f"estimated flight {mission.estimated_duration_s:.0f} s exceeds endurance {endurance_s:.0f} s"
            )

        if reasons:
            return Verdict(ok=False, reasons=reasons, amendments=amendments)
        return Verdict(ok=True, reasons=["pre-flight checks passed"])
