"""Pydantic v2 models for sidecar.yaml configuration."""

from __future__ import annotations

import re
import shlex
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sidecar.constants import (
    DEFAULT_CALL_TIMEOUT,
    DEFAULT_MAX_LINE_BYTES,
    DEFAULT_READY_TIMEOUT,
    DEFAULT_SHUTDOWN_TIMEOUT,
    DEFAULT_TERMINATE_TIMEOUT,
)

_NAME_RE = re.compile(r"^[a-zA-Z0-9_.-]+$")


class WorkerConfig(BaseModel):
    """How to launch the worker process."""

    model_config = ConfigDict(extra="forbid")

    command: str = Field(description="Command line, e.g. 'node index.js'")
    cwd: Path | None = Field(
        default=None,
        description="Working directory, relative to the config file",
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables for the worker",
    )

    @field_validator("command")
    @classmethod
    def _validate_command(cls, value: str) -> str:
        try:
            args = shlex.split(value)
        except ValueError as exc:
            msg = f"Invalid command: {exc}"
            raise ValueError(msg) from exc
        if not args:
            msg = "Command must not be empty"
            raise ValueError(msg)
        return value

    @property
    def argv(self) -> list[str]:
        return shlex.split(self.command)


class SidecarConfig(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(default="sidecar", description="Label used in log messages")
    worker: WorkerConfig
    call_timeout: float = Field(default=DEFAULT_CALL_TIMEOUT, gt=0)
    shutdown_timeout: float = Field(default=DEFAULT_SHUTDOWN_TIMEOUT, gt=0)
    terminate_timeout: float = Field(default=DEFAULT_TERMINATE_TIMEOUT, gt=0)
    ready_timeout: float = Field(
        default=DEFAULT_READY_TIMEOUT,
        ge=0,
        description="Seconds to wait for the ready event (0 disables)",
    )
    max_line_bytes: int = Field(default=DEFAULT_MAX_LINE_BYTES, ge=1024)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not _NAME_RE.match(value):
            msg = (
                f"Invalid name {value!r}: use letters, digits, dots, "
                "hyphens and underscores only"
            )
            raise ValueError(msg)
        return value
