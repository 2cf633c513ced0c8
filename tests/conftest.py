"""Shared pytest fixtures for the Vinsa test suite."""

from __future__ import annotations

import pytest

from tests.helpers import FakeClock, RecordingSleep

_ENV_VARS = (
    "GROQ_API_KEY",
    "VINSA_API_KEY",
    "VINSA_BASE_URL",
    "VINSA_MODEL",
    "VINSA_PLAN_MODE",
    "VINSA_DEBUG",
    "VINSA_DEBUG_LOGGING",
    "VINSA_REQUEST_TIMEOUT",
    "VINSA_TEMPERATURE",
    "VINSA_MAX_RETRIES",
    "VINSA_MAX_TOOL_CALLS",
    "VINSA_SETTINGS_PATH",
)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep host credentials and log files out of every test."""

    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("VINSA_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(clock)
