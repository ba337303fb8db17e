from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from .mission import Sensor


class DroneStatus(str, Enum):
    AVAILABLE = "available"
    IN_MISSION = "in-mission"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"


class DroneCapabilities(BaseModel):
    max_flight_time_min: float = Field(gt=0)
    max_speed_kmh: float = Field(gt=0)
    max_altitude_m: float = Field(gt=0)
    sensors: list[Sensor] = Field(default_factory=list)


class Drone(BaseModel):
    """Collaborator view of a drone: only what the engine reads or flips."""
    id: str
    organization_id: str
    name: str
    status: DroneStatus = DroneStatus.AVAILABLE
    capabilities: DroneCapabilities | None = None
