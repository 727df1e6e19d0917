"""Tests for ControllerConfig."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from testsys.config import ControllerConfig


@pytest.fixture
def clean_env(monkeypatch):
    for var in (
        "TESTSYS_STATE_DIR",
        "TESTSYS_REQUEUE_SECONDS",
        "TESTSYS_REQUEUE_SLOW_SECONDS",
        "TESTSYS_JOB_START_GRACE_SECONDS",
        "TESTSYS_DELETE_POLL_SECONDS",
        "TESTSYS_CONTROLLER_INTERVAL_SECONDS",
    ):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestControllerConfig:
    def test_defaults(self, clean_env):
        config = ControllerConfig.from_env()
        assert config.state_dir == Path.home() / ".testsys" / "state"
        assert config.requeue_seconds == 5.0
        assert config.requeue_slow_seconds == 30.0
        assert config.job_start_grace_seconds == 300.0
        assert config.delete_poll_seconds == 10.0

    def test_from_env(self, clean_env, tmp_path):
        clean_env.setenv("TESTSYS_STATE_DIR", str(tmp_path))
        clean_env.setenv("TESTSYS_REQUEUE_SECONDS", "0.5")
        clean_env.setenv("TESTSYS_JOB_START_GRACE_SECONDS", "60")
        config = ControllerConfig.from_env()
        assert config.state_dir == tmp_path
        assert config.requeue_seconds == 0.5
        assert config.job_start_grace_seconds == 60.0

    def test_invalid_env_value(self, clean_env):
        clean_env.setenv("TESTSYS_REQUEUE_SECONDS", "soon")
        with pytest.raises(ValueError):
            ControllerConfig.from_env()

    def test_delays_must_be_positive(self):
        with pytest.raises(ValidationError):
            ControllerConfig(requeue_seconds=0)

    def test_expands_user(self):
        config = ControllerConfig(state_dir="~/testsys")
        assert config.state_dir == Path.home() / "testsys"
