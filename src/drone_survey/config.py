from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from pydantic import BaseModel, Field

_TRUE = {"1", "true", "yes", "on"}


class EngineSettings(BaseModel):
    strict_transitions: bool = False  # reject resume/complete outside in-progress
    collaborator_timeout_s: float = Field(default=5.0, gt=0)
    max_waypoints: int | None = Field(default=100_000, ge=2)
    enforce_preflight: bool = False
    log_level: str = "INFO"


def _flag(env: Mapping[str, str], name: str, default: str = "0") -> bool:
    return env.get(name, default).strip().lower() in _TRUE


def load_settings(env: Mapping[str, str] | None = None) -> EngineSettings:
    """Read SURVEY_* variables; unset ones keep their defaults."""
    env = os.environ if env is None else env
    max_wps = env.get("SURVEY_MAX_WAYPOINTS", "100000").strip()
    return EngineSettings(
        strict_transitions=_flag(env, "SURVEY_STRICT_TRANSITIONS"),
        collaborator_timeout_s=float(env.get("SURVEY_COLLABORATOR_TIMEOUT_S", "5.0")),
        max_waypoints=None if max_wps in ("", "0", "none") else int(max_wps),
        enforce_preflight=_flag(env, "SURVEY_ENFORCE_PREFLIGHT"),
        log_level=env.get("SURVEY_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(settings: EngineSettings | None = None) -> None:
    settings = settings or load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
