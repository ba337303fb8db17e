from __future__ import annotations

from .machine import NO_REASON, MissionEvent, MissionStateMachine, Operation, transition_table  # noqa: F401
