# src/drone_survey/models/mission.py
"""
Mission contract: survey boundary, flight parameters, generated flight path,
and the execution record (status, progress, telemetry, log trail).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

LngLat = tuple[float, float]  # GeoJSON order: longitude, latitude


class PatternType(str, Enum):
    GRID = "grid"
    CROSSHATCH = "crosshatch"
    PERIMETER = "perimeter"
    CUSTOM = "custom"


class WaypointAction(str, Enum):
    TAKEOFF = "takeoff"
    CAPTURE = "capture"
    HOVER = "hover"
    TURN = "turn"
    LAND = "land"


class Sensor(str, Enum):
    RGB = "rgb"
    THERMAL = "thermal"
    LIDAR = "lidar"
    MULTISPECTRAL = "multispectral"


class MissionStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({MissionStatus.COMPLETED, MissionStatus.ABORTED, MissionStatus.FAILED})


class MissionType(str, Enum):
    INSPECTION = "inspection"
    MAPPING = "mapping"
    SECURITY = "security"
    CUSTOM = "custom"


class LogLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Boundary(BaseModel):
    """Single closed ring; ring invariants are checked by the path generator."""

    type: Literal["Polygon"] = "Polygon"
    coordinates: list[LngLat]

    @classmethod
    def from_geojson(cls, geometry: dict[str, Any]) -> Boundary:
        rings = geometry.get("coordinates") or [[]]
        return cls(coordinates=[(float(p[0]), float(p[1])) for p in rings[0]])

    def to_geojson(self) -> dict[str, Any]:
        return {"type": self.type, "coordinates": [[list(p) for p in self.coordinates]]}


class SensorSettings(BaseModel):
    capture_interval: float = Field(default=2.0, gt=0, description="Seconds between captures")
    active_sensors: list[Sensor] = Field(default_factory=list)


class FlightParameters(BaseModel):
    # altitude/speed/overlap ranges are enforced by planner.generate (InvalidParameters)
    altitude: float = Field(description="Metres above takeoff")
    speed: float = Field(description="Cruise speed, m/s")
    overlap: float = Field(default=30.0, description="Image overlap, percent")
    sensor_settings: SensorSettings | None = None


class Waypoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    order: int = Field(ge=0)
    latitude: float
    longitude: float
    altitude: float
    action: WaypointAction = WaypointAction.CAPTURE
    hover_time: float | None = Field(default=None, ge=0)


class Progress(BaseModel):
    percent_complete: float = Field(default=0.0, ge=0, le=100)
    current_waypoint: int = Field(default=0, ge=0)
    estimated_time_remaining: float = Field(default=0.0, ge=0, description="Seconds")
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ProgressUpdate(BaseModel):
    """
    Partial progress report. A field counts as supplied when it was passed
    explicitly and is not None, so 0 is a real value.
    """

    percent_complete: float | None = Field(default=None, ge=0, le=100)
    current_waypoint: int | None = Field(default=None, ge=0)
    estimated_time_remaining: float | None = Field(default=None, ge=0)

    def supplied(self) -> dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in sorted(self.model_fields_set)
            if getattr(self, name) is not None
        }


class Position(BaseModel):
    latitude: float
    longitude: float
    altitude: float | None = None


class Location(BaseModel):
    """Named site the survey belongs to, e.g. a farm or a plant."""

    name: str | None = None
    coordinates: Position | None = None


class TelemetrySample(BaseModel):
    timestamp: datetime | None = None  # stamped on ingestion
    position: Position | None = None
    battery_level: float | None = Field(default=None, ge=0, le=100)
    speed: float | None = Field(default=None, ge=0)
    heading: float | None = None


class LogEntry(BaseModel):
    timestamp: datetime
    level: LogLevel
    message: str


class Recurrence(BaseModel):
    frequency: Literal["daily", "weekly", "monthly"]
    interval: int = Field(default=1, ge=1)
    days_of_week: list[int] = Field(default_factory=list)
    end_date: datetime | None = None


class Schedule(BaseModel):
    start_time: datetime | None = None
    end_time: datetime | None = None
    is_recurring: bool = False
    recurrence: Recurrence | None = None


class Mission(BaseModel):
    id: str
    organization_id: str
    drone_id: str
    created_by: str | None = None
    name: str
    description: str | None = None
    mission_type: MissionType = MissionType.MAPPING
    location: Location | None = None
    schedule: Schedule | None = None

    boundary: Boundary
    pattern_type: PatternType = PatternType.GRID
    parameters: FlightParameters
    waypoints: list[Waypoint] = Field(default_factory=list)
    total_distance_m: float = 0.0
    estimated_duration_s: float = 0.0

    status: MissionStatus = MissionStatus.PLANNED
    progress: Progress = Field(default_factory=Progress)
    telemetry: list[TelemetrySample] = Field(default_factory=list)
    logs: list[LogEntry] = Field(default_factory=list)

    created_at: datetime | None = None
    updated_at: datetime | None = None


class PlanUpdate(BaseModel):
    """Fields a caller may change while a mission is still planned."""

    name: str | None = None
    description: str | None = None
    mission_type: MissionType | None = None
    location: Location | None = None
    schedule: Schedule | None = None
    boundary: Boundary | None = None
    pattern_type: PatternType | None = None
    parameters: FlightParameters | None = None
    waypoints: list[Waypoint] | None = None

    def supplied(self) -> dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in sorted(self.model_fields_set)
            if getattr(self, name) is not None
        }

    @property
    def touches_plan(self) -> bool:
        return bool({"boundary", "pattern_type", "parameters"} & set(self.supplied()))


def mission_json_schema() -> dict:
    return Mission.model_json_schema()
