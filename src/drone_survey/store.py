from __future__ import annotations

from typing import Protocol

from drone_survey.models import Drone, DroneStatus, Mission


class MissionRepository(Protocol):
    """Persistence collaborator. Every method may fail or hang; callers bound them with timeouts."""

    async def get_mission(self, mission_id: str, organization_id: str) -> Mission | None: ...

    async def list_missions(self, organization_id: str) -> list[Mission]: ...

    async def insert_mission(self, mission: Mission) -> None: ...

    async def replace_mission(self, mission: Mission) -> None: ...

    async def delete_mission(self, mission_id: str) -> None: ...

    async def get_drone(self, drone_id: str, organization_id: str) -> Drone | None: ...

    async def set_drone_status(self, drone_id: str, status: DroneStatus) -> None: ...


class InMemoryRepository:
    """Dict-backed repository; hands out copies so callers never alias stored state."""

    def __init__(self, drones: list[Drone] | None = None) -> None:
        self.missions: dict[str, Mission] = {}
        self.drones: dict[str, Drone] = {d.id: d.model_copy(deep=True) for d in drones or []}

    def add_drone(self, drone: Drone) -> None:
        self.drones[drone.id] = drone.model_copy(deep=True)

    async def get_mission(self, mission_id: str, organization_id: str) -> Mission | None:
        m = self.missions.get(mission_id)
        if m is None or m.organization_id != organization_id:
            return None
        return m.model_copy(deep=True)

    async def list_missions(self, organization_id: str) -> list[Mission]:
        return [m.model_copy(deep=True) for m in self.missions.values() if m.organization_id == organization_id]

    async def insert_mission(self, mission: Mission) -> None:
        if mission.id in self.missions:
            raise KeyError(f"mission {mission.id} already exists")
        self.missions[mission.id] = mission.model_copy(deep=True)

    async def replace_mission(self, mission: Mission) -> None:
        if mission.id not in self.missions:
            raise KeyError(f"mission {mission.id} does not exist")
        self.missions[mission.id] = mission.model_copy(deep=True)

    async def delete_mission(self, mission_id: str) -> None:
        self.missions.pop(mission_id, None)

    async def get_drone(self, drone_id: str, organization_id: str) -> Drone | None:
        d = self.drones.get(drone_id)
        if d is None or d.organization_id != organization_id:
            return None
        return d.model_copy(deep=True)

    async def set_drone_status(self, drone_id: str, status: DroneStatus) -> None:
        d = self.drones.get(drone_id)
        if d is None:
            raise KeyError(f"drone {drone_id} does not exist")
        self.drones[drone_id] = d.model_copy(update={"status": status})

    async def close(self) -> None:
        pass
