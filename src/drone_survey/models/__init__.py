from __future__ import annotations

from .fleet import Drone, DroneCapabilities, DroneStatus  # noqa: F401
from .mission import (  # noqa: F401
    TERMINAL_STATUSES,
    Boundary,
    FlightParameters,
    Location,
    LogEntry,
    LogLevel,
    Mission,
    MissionStatus,
    MissionType,
    PatternType,
    PlanUpdate,
    Position,
    Progress,
    ProgressUpdate,
    Recurrence,
    Schedule,
    Sensor,
    SensorSettings,
    TelemetrySample,
    Waypoint,
    WaypointAction,
    mission_json_schema,
)
