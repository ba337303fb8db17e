"""
Mission lifecycle state machine built on the 'transitions' library.

The machine works on a private deep copy of the mission. Callers commit
``machine.mission`` and publish ``machine.events`` only once persistence has
succeeded; discarding the machine discards every change it made.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from transitions import Machine, MachineError

from drone_survey.errors import InvalidParameters, InvalidStateTransition, MissionError
from drone_survey.models import (
    LogEntry,
    LogLevel,
    Mission,
    MissionStatus,
    PlanUpdate,
    ProgressUpdate,
    TelemetrySample,
)
from drone_survey.planner import plan_flight_path

Clock = Callable[[], datetime]

NO_REASON = "No reason provided"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Operation(str, Enum):
    UPDATE_PLAN = "update_plan"
    DELETE = "delete"
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    ABORT = "abort"
    COMPLETE = "complete"
    FAIL = "fail"
    INGEST_PROGRESS = "ingest_progress"


@dataclass
class MissionEvent:
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)


PLANNED = MissionStatus.PLANNED
IN_PROGRESS = MissionStatus.IN_PROGRESS


def transition_table(strict: bool = False) -> list[dict[str, Any]]:
    """
    Guards per operation. ``dest: None`` marks internal transitions (status kept).

    Permissive mode reproduces the legacy API: resume is accepted from any
    status and complete from any non-terminal one. Strict mode limits both to
    in-progress missions.
    """
    resume_from: Any = IN_PROGRESS if strict else "*"
    complete_from: Any = [IN_PROGRESS] if strict else [PLANNED, IN_PROGRESS]
    return [
        {"trigger": Operation.UPDATE_PLAN.value, "source": PLANNED, "dest": None, "after": "_apply_plan_update"},
        {"trigger": Operation.DELETE.value, "source": PLANNED, "dest": None},
        {"trigger": Operation.START.value, "source": PLANNED, "dest": IN_PROGRESS, "after": "_record_start"},
        {"trigger": Operation.PAUSE.value, "source": IN_PROGRESS, "dest": None, "after": "_record_pause"},
        {"trigger": Operation.RESUME.value, "source": resume_from, "dest": None, "after": "_record_resume"},
        {
            "trigger": Operation.ABORT.value,
            "source": IN_PROGRESS,
            "dest": MissionStatus.ABORTED,
            "after": "_record_abort",
        },
        {
            "trigger": Operation.COMPLETE.value,
            "source": complete_from,
            "dest": MissionStatus.COMPLETED,
            "after": "_record_complete",
        },
        {
            "trigger": Operation.FAIL.value,
            "source": IN_PROGRESS,
            "dest": MissionStatus.FAILED,
            "after": "_record_failure",
        },
        {
            "trigger": Operation.INGEST_PROGRESS.value,
            "source": IN_PROGRESS,
            "dest": None,
            "before": "_check_progress",
            "after": "_record_progress",
        },
    ]


class MissionStateMachine:
    """
    Applies one lifecycle operation at a time to a mission.

    Trigger methods are bound by ``transitions`` under the operation names;
    use :meth:`apply`, which turns rejected triggers into
    ``InvalidStateTransition`` and keeps ``mission.status`` in sync.
    """

    def __init__(
        self,
        mission: Mission,
        *,
        strict: bool = False,
        clock: Clock = utc_now,
        max_waypoints: int | None = None,
    ) -> None:
        self.mission = mission.model_copy(deep=True)
        self.clock = clock
        self.max_waypoints = max_waypoints
        self.events: list[MissionEvent] = []
        self.machine = Machine(
            model=self,
            states=MissionStatus,
            initial=self.mission.status,
            transitions=transition_table(strict),
            auto_transitions=False,
            send_event=True,
            model_attribute="status",
        )

    def apply(self, operation: Operation | str, **kwargs: Any) -> Mission:
        op = Operation(operation)
        try:
            self.trigger(op.value, **kwargs)
        except MachineError as e:
            raise InvalidStateTransition(op.value, self.mission.id, self.mission.status.value) from e
        except MissionError as e:
            # planner errors only know they came from path generation
            e.operation, e.entity_id = op.value, self.mission.id
            raise
        self.mission.status = self.status
        self.mission.updated_at = self.clock()
        return self.mission

    # ---------------------------
    # Callbacks (EventData in, mission mutated)
    # ---------------------------
    def _log(self, level: LogLevel, message: str, at: datetime) -> None:
        self.mission.logs.append(LogEntry(timestamp=at, level=level, message=message))

    def _emit(self, kind: str, **payload: Any) -> None:
        self.events.append(MissionEvent(kind=kind, payload={"mission_id": self.mission.id, **payload}))

    def _apply_plan_update(self, event) -> None:
        update: PlanUpdate = event.kwargs["update"]
        fields = update.supplied()
        m = self.mission
        for name in ("name", "description", "mission_type", "location", "schedule"):
            if name in fields:
                setattr(m, name, fields[name])

        if not update.touches_plan and "waypoints" not in fields:
            return
        boundary = fields.get("boundary", m.boundary)
        pattern = fields.get("pattern_type", m.pattern_type)
        params = fields.get("parameters", m.parameters)
        path, estimate = plan_flight_path(
            boundary,
            pattern,
            params,
            waypoints=fields.get("waypoints"),
            max_waypoints=self.max_waypoints,
        )
        m.boundary, m.pattern_type, m.parameters = boundary, pattern, params
        m.waypoints = path
        m.total_distance_m = estimate.distance_m
        m.estimated_duration_s = estimate.duration_s
        m.progress.estimated_time_remaining = estimate.duration_s

    def _record_start(self, event) -> None:
        now = self.clock()
        self.mission.progress.started_at = now
        self._log(LogLevel.INFO, "Mission started", now)
        self._emit("mission-started", status=IN_PROGRESS.value, started_at=now.isoformat())

    def _record_pause(self, event) -> None:
        message = "Mission paused by operator"
        self._log(LogLevel.INFO, message, self.clock())
        self._emit("mission-paused", message=message)

    def _record_resume(self, event) -> None:
        message = "Mission resumed by operator"
        self._log(LogLevel.INFO, message, self.clock())
        self._emit("mission-resumed", message=message)

    def _record_abort(self, event) -> None:
        reason = event.kwargs.get("reason") or NO_REASON
        self._log(LogLevel.WARNING, f"Mission aborted by operator: {reason}", self.clock())
        self._emit("mission-aborted", status=MissionStatus.ABORTED.value, reason=reason)

    def _record_complete(self, event) -> None:
        now = self.clock()
        progress = self.mission.progress
        progress.percent_complete = 100.0
        progress.estimated_time_remaining = 0.0
        progress.completed_at = now
        self._log(LogLevel.INFO, "Mission completed successfully", now)
        self._emit("mission-completed", status=MissionStatus.COMPLETED.value, completed_at=now.isoformat())

    def _record_failure(self, event) -> None:
        reason = event.kwargs.get("reason") or NO_REASON
        self._log(LogLevel.ERROR, f"Mission failed: {reason}", self.clock())
        self._emit("mission-failed", status=MissionStatus.FAILED.value, reason=reason)

    def _check_progress(self, event) -> None:
        update: ProgressUpdate = event.kwargs["progress"]
        index = update.supplied().get("current_waypoint")
        if index is not None and self.mission.waypoints and index >= len(self.mission.waypoints):
            raise InvalidParameters(
                f"current_waypoint {index} is outside a {len(self.mission.waypoints)}-waypoint path",
                operation=Operation.INGEST_PROGRESS.value,
                entity_id=self.mission.id,
            )

    def _record_progress(self, event) -> None:
        update: ProgressUpdate = event.kwargs["progress"]
        telemetry: TelemetrySample | None = event.kwargs.get("telemetry")
        progress = self.mission.progress
        for name, value in update.supplied().items():
            setattr(progress, name, value)

        sample = None
        if telemetry is not None:
            sample = telemetry.model_copy(update={"timestamp": self.clock()})
            self.mission.telemetry.append(sample)
        self._emit(
            "mission-progress",
            progress=progress.model_dump(mode="json"),
            telemetry=sample.model_dump(mode="json") if sample else None,
        )
