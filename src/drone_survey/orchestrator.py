"""
Mission orchestrator: runs the path generator and the lifecycle state machine
against the persistence and notification collaborators.

Every operation on a mission runs inside that mission's lock, from the first
read to the last publish, and either commits completely or is rolled back.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from drone_survey.config import EngineSettings, load_settings
from drone_survey.errors import (
    DependencyFailure,
    InvalidBoundary,
    InvalidParameters,
    InvalidStateTransition,
    MissionError,
    NotFound,
)
from drone_survey.events import Notifier, mission_topic
from drone_survey.models import (
    Boundary,
    Drone,
    DroneStatus,
    FlightParameters,
    Location,
    Mission,
    MissionType,
    PatternType,
    PlanUpdate,
    Progress,
    ProgressUpdate,
    Schedule,
    TelemetrySample,
    Waypoint,
)
from drone_survey.planner import plan_flight_path
from drone_survey.state import MissionEvent, MissionStateMachine, Operation
from drone_survey.state.machine import Clock, utc_now
from drone_survey.store import MissionRepository
from drone_survey.supervisor import Supervisor

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


def _coerce(
    model: type[M],
    value: M | dict[str, Any],
    error: type[MissionError],
    operation: str,
    entity_id: str | None = None,
) -> M:
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as e:
        raise error(f"invalid {model.__name__}: {e}", operation=operation, entity_id=entity_id) from e


def _as_boundary(value: Boundary | dict[str, Any] | Sequence[Sequence[float]], operation: str) -> Boundary:
    if isinstance(value, dict):
        coords = value.get("coordinates") or []
        # GeoJSON polygons nest the ring one level deeper
        ring = coords[0] if isinstance(coords, list | tuple) and coords else None
        if isinstance(ring, list | tuple) and ring and isinstance(ring[0], list | tuple):
            try:
                return Boundary.from_geojson(value)
            except (TypeError, ValueError, IndexError) as e:
                raise InvalidBoundary(f"invalid GeoJSON polygon: {e}", operation=operation) from e
    elif not isinstance(value, Boundary):
        try:
            value = {"coordinates": [tuple(p) for p in value]}
        except TypeError as e:
            raise InvalidBoundary(f"boundary is not a list of [lng, lat] pairs: {e}", operation=operation) from e
    return _coerce(Boundary, value, InvalidBoundary, operation)


@dataclass
class _MissionLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0  # holder plus waiters


class MissionOrchestrator:
    def __init__(
        self,
        repository: MissionRepository,
        notifier: Notifier,
        *,
        settings: EngineSettings | None = None,
        supervisor: Supervisor | None = None,
        clock: Clock = utc_now,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.repository = repository
        self.notifier = notifier
        self.settings = settings or load_settings()
        self.supervisor = supervisor or Supervisor()
        self.clock = clock
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self.locks: dict[str, _MissionLock] = {}
        self.is_open = False

    # ---------------------------
    # Lifecycle
    # ---------------------------
    async def open(self) -> MissionOrchestrator:
        self.is_open = True
        logger.info(
            "Mission orchestrator open (strict_transitions=%s, timeout=%.1fs)",
            self.settings.strict_transitions,
            self.settings.collaborator_timeout_s,
        )
        return self

    async def close(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        for collaborator in (self.notifier, self.repository):
            closer = getattr(collaborator, "close", None)
            if closer is not None:
                await closer()
        logger.info("Mission orchestrator closed")

    async def __aenter__(self) -> MissionOrchestrator:
        return await self.open()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise RuntimeError("mission orchestrator is not open")

    # ---------------------------
    # Collaborator plumbing
    # ---------------------------
    async def _call(self, what: str, call: Awaitable[T], *, operation: str, entity_id: str | None) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.settings.collaborator_timeout_s)
        except asyncio.TimeoutError as e:
            raise DependencyFailure(
                f"{what} timed out after {self.settings.collaborator_timeout_s}s",
                operation=operation,
                entity_id=entity_id,
            ) from e
        except Exception as e:
            raise DependencyFailure(f"{what} failed: {e}", operation=operation, entity_id=entity_id) from e

    async def _load(self, mission_id: str, organization_id: str, operation: str) -> Mission:
        mission = await self._call(
            "load mission",
            self.repository.get_mission(mission_id, organization_id),
            operation=operation,
            entity_id=mission_id,
        )
        if mission is None:
            raise NotFound(f"Mission {mission_id} not found", operation=operation, entity_id=mission_id)
        return mission

    async def _load_drone(self, drone_id: str, organization_id: str, operation: str) -> Drone | None:
        return await self._call(
            "load drone",
            self.repository.get_drone(drone_id, organization_id),
            operation=operation,
            entity_id=drone_id,
        )

    @asynccontextmanager
    async def _locked(self, mission_id: str) -> AsyncIterator[None]:
        """Serialise work on one mission; the entry goes away with its last user."""
        entry = self.locks.get(mission_id)
        if entry is None:
            entry = self.locks[mission_id] = _MissionLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self.locks.get(mission_id) is entry:
                del self.locks[mission_id]

    def _machine(self, mission: Mission) -> MissionStateMachine:
        return MissionStateMachine(
            mission,
            strict=self.settings.strict_transitions,
            clock=self.clock,
            max_waypoints=self.settings.max_waypoints,
        )

    # ---------------------------
    # Planning
    # ---------------------------
    async def plan_mission(
        self,
        organization_id: str,
        boundary: Boundary | dict[str, Any] | Sequence[Sequence[float]],
        pattern_type: PatternType | str,
        parameters: FlightParameters | dict[str, Any],
        drone_id: str,
        *,
        name: str = "Survey mission",
        description: str | None = None,
        mission_type: MissionType | str = MissionType.MAPPING,
        created_by: str | None = None,
        location: Location | dict[str, Any] | None = None,
        schedule: Schedule | dict[str, Any] | None = None,
        waypoints: Sequence[Waypoint] | None = None,
    ) -> Mission:
        """Create a planned mission with its flight path already generated."""
        self._ensure_open()
        op = "plan_mission"
        boundary = _as_boundary(boundary, op)
        parameters = _coerce(FlightParameters, parameters, InvalidParameters, op)
        if location is not None:
            location = _coerce(Location, location, InvalidParameters, op)
        if schedule is not None:
            schedule = _coerce(Schedule, schedule, InvalidParameters, op)
        try:
            mission_type = MissionType(mission_type)
        except ValueError as e:
            raise InvalidParameters(f"unknown mission type {mission_type!r}", operation=op) from e

        drone = await self._load_drone(drone_id, organization_id, op)
        if drone is None:
            raise NotFound(f"Drone {drone_id} not found", operation=op, entity_id=drone_id)

        mission_id = self.id_factory()
        try:
            path, estimate = plan_flight_path(
                boundary,
                pattern_type,
                parameters,
                waypoints=waypoints,
                max_waypoints=self.settings.max_waypoints,
            )
        except MissionError as e:
            e.operation, e.entity_id = op, mission_id
            raise
        now = self.clock()
        mission = Mission(
            id=mission_id,
            organization_id=organization_id,
            drone_id=drone_id,
            created_by=created_by,
            name=name,
            description=description,
            mission_type=mission_type,
            location=location,
            schedule=schedule,
            boundary=boundary,
            pattern_type=PatternType(pattern_type),
            parameters=parameters,
            waypoints=path,
            total_distance_m=estimate.distance_m,
            estimated_duration_s=estimate.duration_s,
            progress=Progress(estimated_time_remaining=estimate.duration_s),
            created_at=now,
            updated_at=now,
        )
        await self._call("persist mission", self.repository.insert_mission(mission), operation=op, entity_id=mission.id)
        logger.info("Mission created: %s (%s), %d waypoints", mission.name, mission.id, len(path))
        return mission

    async def update_plan(
        self, mission_id: str, organization_id: str, changes: PlanUpdate | dict[str, Any]
    ) -> Mission:
        update = _coerce(PlanUpdate, changes, InvalidParameters, Operation.UPDATE_PLAN.value, mission_id)
        return await self._transition(mission_id, organization_id, Operation.UPDATE_PLAN, update=update)

    async def delete_plan(self, mission_id: str, organization_id: str) -> None:
        self._ensure_open()
        op = Operation.DELETE.value
        async with self._locked(mission_id):
            mission = await self._load(mission_id, organization_id, op)
            self._apply(self._machine(mission), Operation.DELETE)
            await self._call("delete mission", self.repository.delete_mission(mission_id), operation=op, entity_id=mission_id)
        logger.info("Mission deleted: %s (%s)", mission.name, mission_id)

    # ---------------------------
    # Lifecycle control
    # ---------------------------
    async def start(self, mission_id: str, organization_id: str) -> Mission:
        return await self._transition(mission_id, organization_id, Operation.START, drone_status=DroneStatus.IN_MISSION)

    async def pause(self, mission_id: str, organization_id: str) -> Mission:
        return await self._transition(mission_id, organization_id, Operation.PAUSE)

    async def resume(self, mission_id: str, organization_id: str) -> Mission:
        return await self._transition(mission_id, organization_id, Operation.RESUME)

    async def abort(self, mission_id: str, organization_id: str, reason: str | None = None) -> Mission:
        return await self._transition(
            mission_id, organization_id, Operation.ABORT, drone_status=DroneStatus.AVAILABLE, reason=reason
        )

    async def complete(self, mission_id: str, organization_id: str) -> Mission:
        return await self._transition(mission_id, organization_id, Operation.COMPLETE, drone_status=DroneStatus.AVAILABLE)

    async def fail(self, mission_id: str, organization_id: str, reason: str | None = None) -> Mission:
        return await self._transition(
            mission_id, organization_id, Operation.FAIL, drone_status=DroneStatus.AVAILABLE, reason=reason
        )

    async def ingest_progress(
        self,
        mission_id: str,
        organization_id: str,
        progress: ProgressUpdate | dict[str, Any],
        telemetry: TelemetrySample | dict[str, Any] | None = None,
    ) -> Mission:
        op = Operation.INGEST_PROGRESS.value
        progress = _coerce(ProgressUpdate, progress, InvalidParameters, op, mission_id)
        if telemetry is not None:
            telemetry = _coerce(TelemetrySample, telemetry, InvalidParameters, op, mission_id)
        return await self._transition(
            mission_id, organization_id, Operation.INGEST_PROGRESS, progress=progress, telemetry=telemetry
        )

    # ---------------------------
    # Reads
    # ---------------------------
    async def get_mission(self, mission_id: str, organization_id: str) -> Mission:
        self._ensure_open()
        return await self._load(mission_id, organization_id, "get_mission")

    async def list_missions(self, organization_id: str) -> list[Mission]:
        self._ensure_open()
        return await self._call(
            "list missions", self.repository.list_missions(organization_id), operation="list_missions", entity_id=None
        )

    # ---------------------------
    # Transition core
    # ---------------------------
    def _apply(self, machine: MissionStateMachine, operation: Operation, **kwargs: Any) -> Mission:
        try:
            return machine.apply(operation, **kwargs)
        except InvalidStateTransition as e:
            logger.info("Rejected %s on mission %s (status %s)", operation.value, e.entity_id, e.status)
            raise

    async def _transition(
        self,
        mission_id: str,
        organization_id: str,
        operation: Operation,
        *,
        drone_status: DroneStatus | None = None,
        **kwargs: Any,
    ) -> Mission:
        self._ensure_open()
        op = operation.value
        async with self._locked(mission_id):
            before = await self._load(mission_id, organization_id, op)
            machine = self._machine(before)
            after = self._apply(machine, operation, **kwargs)

            drone = None
            if drone_status is not None:
                drone = await self._load_drone(before.drone_id, organization_id, op)
                if drone is None and operation is Operation.START:
                    raise NotFound(f"Drone {before.drone_id} not found", operation=op, entity_id=before.drone_id)
                if drone is None:
                    logger.warning("Drone %s of mission %s is gone; not releasing it", before.drone_id, mission_id)
            if operation is Operation.START:
                self._preflight(after, drone)

            await self._commit(before, after, machine.events, drone, drone_status, op)
        logger.info("Mission %s: %s (%s), status %s", op, after.name, mission_id, after.status.value)
        return after

    def _preflight(self, mission: Mission, drone: Drone) -> None:
        verdict = self.supervisor.verify_preflight(mission, drone)
        if verdict.ok:
            return
        for reason in verdict.reasons:
            logger.warning("Pre-flight check for mission %s: %s", mission.id, reason)
        if self.settings.enforce_preflight:
            raise InvalidParameters(
                "pre-flight checks failed: " + "; ".join(verdict.reasons),
                operation=Operation.START.value,
                entity_id=mission.id,
            )

    async def _commit(
        self,
        before: Mission,
        after: Mission,
        events: list[MissionEvent],
        drone: Drone | None,
        drone_status: DroneStatus | None,
        op: str,
    ) -> None:
        # a write that timed out or was cancelled may still have landed, so both are restored on failure
        drone_changed = False
        try:
            await self._call("persist mission", self.repository.replace_mission(after), operation=op, entity_id=after.id)
            if drone is not None and drone_status is not None and drone.status is not drone_status:
                drone_changed = True
                await self._call(
                    "update drone status",
                    self.repository.set_drone_status(drone.id, drone_status),
                    operation=op,
                    entity_id=drone.id,
                )
            for event in events:
                payload = {"event": event.kind, **event.payload, "timestamp": after.updated_at.isoformat()}
                await self._call(
                    "publish notification",
                    self.notifier.publish(mission_topic(after.id), payload),
                    operation=op,
                    entity_id=after.id,
                )
        except (DependencyFailure, asyncio.CancelledError) as e:
            logger.warning("Rolling back %s on mission %s: %s", op, after.id, str(e) or type(e).__name__)
            # the caller may cancel again while we wait; the restore still runs to the end
            await asyncio.shield(self._rollback(before, drone if drone_changed else None))
            raise

    async def _rollback(self, before: Mission, drone: Drone | None) -> None:
        try:
            await self._call(
                "restore mission", self.repository.replace_mission(before), operation="rollback", entity_id=before.id
            )
        except DependencyFailure:
            logger.exception("Could not restore mission %s; stored copy may be ahead of the caller", before.id)
        if drone is not None:
            try:
                await self._call(
                    "restore drone status",
                    self.repository.set_drone_status(drone.id, drone.status),
                    operation="rollback",
                    entity_id=drone.id,
                )
            except DependencyFailure:
                logger.exception("Could not restore status of drone %s", drone.id)
