import asyncio

import pytest
from conftest import DRONE_ID, ORG, OTHER_ORG, SQUARE, make_drone, make_orchestrator

from drone_survey.errors import InvalidBoundary, InvalidParameters, InvalidStateTransition, NotFound
from drone_survey.events import mission_topic
from drone_survey.models import DroneStatus, MissionStatus, PatternType, Waypoint, WaypointAction

PARAMS = {"altitude": 40, "speed": 8, "overlap": 30}


async def _plan(orch, pattern="grid", **kw):
    return await orch.plan_mission(ORG, {"type": "Polygon", "coordinates": [SQUARE]}, pattern, PARAMS, DRONE_ID, **kw)


def test_plan_mission_persists_generated_path():
    async def run():
        orch, repo, _ = make_orchestrator()
        async with orch:
            m = await _plan(orch, "perimeter", name="North field")
            stored = await orch.get_mission(m.id, ORG)
        assert stored == m
        assert m.status is MissionStatus.PLANNED
        assert m.pattern_type is PatternType.PERIMETER
        assert len(m.waypoints) == len(SQUARE) + 3
        assert m.total_distance_m > 0
        assert m.progress.estimated_time_remaining == pytest.approx(m.estimated_duration_s)
        assert m.created_at == m.updated_at

    asyncio.run(run())


def test_plan_mission_accepts_plain_ring_and_rejects_bad_input():
    async def run():
        orch, _, _ = make_orchestrator()
        async with orch:
            m = await orch.plan_mission(ORG, SQUARE, "grid", PARAMS, DRONE_ID)
            assert m.waypoints
            with pytest.raises(InvalidBoundary):
                await orch.plan_mission(ORG, SQUARE[:3], "grid", PARAMS, DRONE_ID)
            with pytest.raises(InvalidParameters):
                await orch.plan_mission(ORG, SQUARE, "grid", {"altitude": "high", "speed": 8}, DRONE_ID)
            with pytest.raises(InvalidParameters):
                await orch.plan_mission(ORG, SQUARE, "zigzag", PARAMS, DRONE_ID)
            with pytest.raises(NotFound):
                await orch.plan_mission(ORG, SQUARE, "grid", PARAMS, "no-such-drone")
            assert len(await orch.list_missions(ORG)) == 1

    asyncio.run(run())


def test_full_lifecycle_flips_drone_and_publishes():
    async def run():
        orch, repo, broker = make_orchestrator()
        async with orch:
            m = await _plan(orch)
            sub = broker.subscribe(mission_topic(m.id))

            started = await orch.start(m.id, ORG)
            assert started.status is MissionStatus.IN_PROGRESS
            assert repo.drones[DRONE_ID].status is DroneStatus.IN_MISSION

            with pytest.raises(InvalidStateTransition, match="Cannot start mission in in-progress status"):
                await orch.start(m.id, ORG)

            await orch.pause(m.id, ORG)
            await orch.resume(m.id, ORG)
            await orch.ingest_progress(m.id, ORG, {"percent_complete": 50, "current_waypoint": 2})
            done = await orch.complete(m.id, ORG)
            assert done.status is MissionStatus.COMPLETED
            assert repo.drones[DRONE_ID].status is DroneStatus.AVAILABLE

            events = sub.drain()
        assert [e["event"] for e in events] == [
            "mission-started",
            "mission-paused",
            "mission-resumed",
            "mission-progress",
            "mission-completed",
        ]
        assert all(e["mission_id"] == m.id and "timestamp" in e for e in events)
        assert events[3]["progress"]["percent_complete"] == 50
        assert [log.message for log in done.logs] == [
            "Mission started",
            "Mission paused by operator",
            "Mission resumed by operator",
            "Mission completed successfully",
        ]

    asyncio.run(run())


def test_abort_releases_drone_with_reason():
    async def run():
        orch, repo, broker = make_orchestrator()
        async with orch:
            m = await _plan(orch)
            await orch.start(m.id, ORG)
            sub = broker.subscribe(mission_topic(m.id))
            aborted = await orch.abort(m.id, ORG, reason="Battery low")
            (event,) = sub.drain()
        assert aborted.status is MissionStatus.ABORTED
        assert aborted.logs[-1].message == "Mission aborted by operator: Battery low"
        assert event["event"] == "mission-aborted" and event["reason"] == "Battery low"
        assert repo.drones[DRONE_ID].status is DroneStatus.AVAILABLE

    asyncio.run(run())


def test_rejected_operations_change_nothing():
    async def run():
        orch, repo, broker = make_orchestrator()
        async with orch:
            m = await _plan(orch)
            sub = broker.subscribe(mission_topic(m.id))
            with pytest.raises(InvalidStateTransition):
                await orch.ingest_progress(m.id, ORG, {"percent_complete": 10}, {"battery_level": 90})
            with pytest.raises(InvalidStateTransition):
                await orch.abort(m.id, ORG)
            stored = await orch.get_mission(m.id, ORG)
        assert stored == m
        assert stored.telemetry == []
        assert sub.drain() == []
        assert repo.drones[DRONE_ID].status is DroneStatus.AVAILABLE

    asyncio.run(run())


def test_missions_are_scoped_to_their_organization():
    async def run():
        orch, _, _ = make_orchestrator()
        async with orch:
            m = await _plan(orch)
            with pytest.raises(NotFound):
                await orch.get_mission(m.id, OTHER_ORG)
            with pytest.raises(NotFound):
                await orch.start(m.id, OTHER_ORG)
            with pytest.raises(NotFound):
                await orch.delete_plan(m.id, OTHER_ORG)
            assert await orch.list_missions(OTHER_ORG) == []

    asyncio.run(run())


def test_update_and_delete_only_while_planned():
    async def run():
        orch, _, _ = make_orchestrator()
        async with orch:
            m = await _plan(orch)
            renamed = await orch.update_plan(m.id, ORG, {"name": "Renamed"})
            assert renamed.name == "Renamed"
            assert renamed.waypoints == m.waypoints

            denser = await orch.update_plan(m.id, ORG, {"parameters": {"altitude": 40, "speed": 8, "overlap": 60}})
            assert len(denser.waypoints) > len(m.waypoints)

            await orch.delete_plan(m.id, ORG)
            with pytest.raises(NotFound):
                await orch.get_mission(m.id, ORG)

            other = await _plan(orch)
            await orch.start(other.id, ORG)
            with pytest.raises(InvalidStateTransition):
                await orch.update_plan(other.id, ORG, {"name": "late"})
            with pytest.raises(InvalidStateTransition):
                await orch.delete_plan(other.id, ORG)

    asyncio.run(run())


def test_custom_mission_keeps_own_waypoints_on_rename():
    own = [
        Waypoint(order=0, latitude=0.0, longitude=0.0, altitude=30, action=WaypointAction.TAKEOFF),
        Waypoint(order=1, latitude=0.0004, longitude=0.0006, altitude=30, action=WaypointAction.HOVER, hover_time=5),
        Waypoint(order=2, latitude=0.0, longitude=0.0, altitude=0, action=WaypointAction.LAND),
    ]

    async def run():
        orch, _, _ = make_orchestrator()
        async with orch:
            m = await _plan(orch, "custom", waypoints=own)
            assert m.waypoints == own
            renamed = await orch.update_plan(m.id, ORG, {"name": "Tower check"})
            assert renamed.waypoints == own

    asyncio.run(run())


def test_start_needs_the_drone():
    async def run():
        orch, repo, _ = make_orchestrator()
        async with orch:
            m = await _plan(orch)
            repo.drones.clear()
            with pytest.raises(NotFound):
                await orch.start(m.id, ORG)
            assert (await orch.get_mission(m.id, ORG)).status is MissionStatus.PLANNED

    asyncio.run(run())


def test_enforced_preflight_blocks_start():
    async def run():
        orch, repo, _ = make_orchestrator(enforce_preflight=True)
        async with orch:
            m = await _plan(orch)
            repo.add_drone(make_drone(status=DroneStatus.MAINTENANCE))
            with pytest.raises(InvalidParameters, match="maintenance"):
                await orch.start(m.id, ORG)
            assert (await orch.get_mission(m.id, ORG)).status is MissionStatus.PLANNED

    asyncio.run(run())


def test_closed_orchestrator_refuses_work():
    async def run():
        orch, _, broker = make_orchestrator()
        with pytest.raises(RuntimeError):
            await orch.list_missions(ORG)
        async with orch:
            await _plan(orch)
        assert broker.closed
        with pytest.raises(RuntimeError):
            await orch.start("anything", ORG)

    asyncio.run(run())


def test_errors_name_the_operation_and_mission():
    async def run():
        orch, _, _ = make_orchestrator()
        async with orch:
            m = await _plan(orch)
            with pytest.raises(InvalidBoundary) as bad_ring:
                await orch.update_plan(m.id, ORG, {"boundary": {"coordinates": SQUARE[:3]}})
            with pytest.raises(InvalidParameters) as bad_update:
                await orch.update_plan(m.id, ORG, {"parameters": {"altitude": "high"}})
            with pytest.raises(InvalidParameters) as bad_progress:
                await orch.ingest_progress(m.id, ORG, {"percent_complete": 140})
            with pytest.raises(InvalidParameters) as bad_plan:
                await orch.plan_mission(ORG, SQUARE, "grid", {"altitude": 0, "speed": 8}, DRONE_ID)
        assert (bad_ring.value.operation, bad_ring.value.entity_id) == ("update_plan", m.id)
        assert (bad_update.value.operation, bad_update.value.entity_id) == ("update_plan", m.id)
        assert (bad_progress.value.operation, bad_progress.value.entity_id) == ("ingest_progress", m.id)
        assert bad_plan.value.operation == "plan_mission"
        assert bad_plan.value.entity_id is not None

    asyncio.run(run())


@pytest.mark.parametrize("boundary", [{"coordinates": [1, 2]}, {"coordinates": {"ring": 1}}, [1, 2]])
def test_malformed_boundary_is_reported_as_invalid_boundary(boundary):
    async def run():
        orch, _, _ = make_orchestrator()
        async with orch:
            with pytest.raises(InvalidBoundary):
                await orch.plan_mission(ORG, boundary, "grid", PARAMS, DRONE_ID)

    asyncio.run(run())


def test_lock_entries_do_not_outlive_their_users():
    async def run():
        orch, _, _ = make_orchestrator()
        async with orch:
            for i in range(200):
                with pytest.raises(NotFound):
                    await orch.pause(f"ghost-{i}", ORG)
            assert orch.locks == {}

            m = await _plan(orch)
            await orch.start(m.id, ORG)
            await asyncio.gather(*(orch.ingest_progress(m.id, ORG, {"percent_complete": p}) for p in range(10)))
            assert orch.locks == {}

    asyncio.run(run())


def test_location_is_planned_and_updatable():
    async def run():
        orch, _, _ = make_orchestrator()
        async with orch:
            site = {"name": "North farm", "coordinates": {"latitude": 0.0005, "longitude": 0.0005}}
            m = await _plan(orch, location=site)
            assert m.location.name == "North farm"
            moved = await orch.update_plan(m.id, ORG, {"location": {"name": "South farm"}})
            renamed = await orch.update_plan(m.id, ORG, {"name": "Renamed"})
        assert moved.location.name == "South farm"
        assert moved.location.coordinates is None
        assert moved.waypoints == m.waypoints
        assert renamed.location == moved.location

    asyncio.run(run())
