import logging

from drone_survey.config import EngineSettings, configure_logging, load_settings


def test_defaults_without_env():
    s = load_settings({})
    assert s == EngineSettings()
    assert s.strict_transitions is False
    assert s.collaborator_timeout_s == 5.0
    assert s.max_waypoints == 100_000


def test_env_overrides():
    s = load_settings(
        {
            "SURVEY_STRICT_TRANSITIONS": "true",
            "SURVEY_COLLABORATOR_TIMEOUT_S": "0.5",
            "SURVEY_MAX_WAYPOINTS": "0",
            "SURVEY_ENFORCE_PREFLIGHT": "1",
            "SURVEY_LOG_LEVEL": "debug",
        }
    )
    assert s.strict_transitions and s.enforce_preflight
    assert s.collaborator_timeout_s == 0.5
    assert s.max_waypoints is None
    assert s.log_level == "DEBUG"


def test_configure_logging_does_not_fail_on_unknown_level():
    configure_logging(EngineSettings(log_level="CHATTY"))
    assert logging.getLogger("drone_survey").getEffectiveLevel() <= logging.CRITICAL
