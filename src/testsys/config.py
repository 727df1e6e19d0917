"""Configuration model for the TestSys controller and tools.

Public API (the "studs"):
    ControllerConfig: Timing and storage settings
"""

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Data-driven mapping: config_field -> env_var
_ENV_MAP: dict[str, str] = {
    "state_dir": "TESTSYS_STATE_DIR",
    "requeue_seconds": "TESTSYS_REQUEUE_SECONDS",
    "requeue_slow_seconds": "TESTSYS_REQUEUE_SLOW_SECONDS",
    "job_start_grace_seconds": "TESTSYS_JOB_START_GRACE_SECONDS",
    "delete_poll_seconds": "TESTSYS_DELETE_POLL_SECONDS",
    "controller_interval_seconds": "TESTSYS_CONTROLLER_INTERVAL_SECONDS",
}


class ControllerConfig(BaseModel):
    """Settings shared by the controller, the manager and the CLI.

    Attributes:
        state_dir: Directory holding the FileStore documents
        requeue_seconds: Requeue delay while an object is making progress
        requeue_slow_seconds: Requeue delay for done or failed objects
        job_start_grace_seconds: How long a job may run before its agent reports a state
        delete_poll_seconds: Poll interval of the deletion orchestrator
        controller_interval_seconds: Pause between controller passes
    """

    state_dir: Path = Field(
        default_factory=lambda: Path.home() / ".testsys" / "state",
        description="FileStore state directory",
    )
    requeue_seconds: float = Field(5.0, gt=0, description="Normal requeue delay")
    requeue_slow_seconds: float = Field(30.0, gt=0, description="Slow requeue delay")
    job_start_grace_seconds: float = Field(
        300.0, gt=0, description="Grace period before a silent job is an error"
    )
    delete_poll_seconds: float = Field(10.0, gt=0, description="Deletion poll interval")
    controller_interval_seconds: float = Field(
        1.0, gt=0, description="Pause between controller passes"
    )

    @field_validator("state_dir")
    @classmethod
    def expand_state_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @classmethod
    def from_env(cls) -> "ControllerConfig":
        """Create ControllerConfig from environment variables.

        Unset variables keep their defaults. Values are validated by the model.

        Environment variables:
            TESTSYS_STATE_DIR: FileStore state directory
            TESTSYS_REQUEUE_SECONDS: Normal requeue delay
            TESTSYS_REQUEUE_SLOW_SECONDS: Slow requeue delay
            TESTSYS_JOB_START_GRACE_SECONDS: Job start grace period
            TESTSYS_DELETE_POLL_SECONDS: Deletion poll interval
            TESTSYS_CONTROLLER_INTERVAL_SECONDS: Pause between controller passes

        Returns:
            ControllerConfig instance

        Raises:
            ValueError: If a variable holds an invalid value
        """
        kwargs: dict[str, Any] = {}
        for field, env_var in _ENV_MAP.items():
            value = os.environ.get(env_var)
            if value is not None:
                kwargs[field] = value
        return cls(**kwargs)


__all__ = ["ControllerConfig"]
