from __future__ import annotations

from drone_survey.errors import (  # noqa: F401
    DependencyFailure,
    InvalidBoundary,
    InvalidParameters,
    InvalidStateTransition,
    MissionError,
    NotFound,
)
from drone_survey.orchestrator import MissionOrchestrator  # noqa: F401
from drone_survey.planner import generate  # noqa: F401
