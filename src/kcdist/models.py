"""Centralized Pydantic models, enums, and type aliases for kcdist."""

from __future__ import annotations

import os
import re
import tempfile
from enum import Enum
from pathlib import Path
from typing import ClassVar, TypeAlias

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from kcdist.constants import (
    DEBUG_FLAG,
    DEFAULT_ADMIN_PASSWORD,
    DEFAULT_ADMIN_USERNAME,
    DEFAULT_ARTIFACT_ID,
    DEFAULT_DIST_ROOT_NAME,
    DEFAULT_DRAIN_JOIN_TIMEOUT,
    DEFAULT_GROUP_ID,
    DEFAULT_HOST,
    DEFAULT_HTTP_PORT,
    DEFAULT_INSTALL_PREFIX,
    DEFAULT_LAUNCHER,
    DEFAULT_PACKAGING,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_READINESS_TIMEOUT,
    DEFAULT_RELATIVE_PATH,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_STOP_TIMEOUT,
    HTTP_PORT_ARG,
    HTTP_RELATIVE_PATH_ARG,
    LAUNCH_MODE_PROPERTY,
    LAUNCH_MODE_TEST,
)


# === Type Aliases ===

Lines: TypeAlias = list[str]


# === Enums ===


class StopMode(str, Enum):
    """Who decides when the server process is terminated."""

    auto = "auto"
    manual = "manual"

    @classmethod
    def from_string(cls, value: str) -> StopMode:
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"Invalid stop mode: {value}")


class LifecycleState(str, Enum):
    """Supervisor lifecycle states."""

    IDLE = "idle"
    LAUNCHING = "launching"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


class Channel(str, Enum):
    """Console channel of the child process."""

    STDOUT = "stdout"
    STDERR = "stderr"


# === Base Models (Building Blocks) ===


class TrackedProcess(BaseModel):
    """A process we started and are allowed to manage.

    create_time protects against PID reuse when descendants are collected at stop time.
    """

    pid: int | None = None
    create_time: float | None = None

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)


class ProbeResult(BaseModel):
    """Outcome of a readiness polling run."""

    ready: bool
    url: str
    attempts: int = 0
    elapsed: float = 0.0


def _argument_value(tokens: list[str], name: str) -> str | None:
    prefix = f"{name}="
    for token in tokens:
        if token.startswith(prefix):
            return token[len(prefix) :]
    return None


class LaunchArguments(BaseModel):
    """Caller-supplied server arguments plus the values derived from them."""

    tokens: list[str] = Field(default_factory=list)

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    @property
    def http_port(self) -> int:
        """Port from `--http-port=`, 8080 when absent.

        Raises:
            ValueError: If the value is not an integer
        """
        value = _argument_value(self.tokens, HTTP_PORT_ARG)
        if value is None:
            return DEFAULT_HTTP_PORT
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"Invalid {HTTP_PORT_ARG} value: {value!r}")

    @property
    def relative_path(self) -> str:
        """Path from `--http-relative-path=`, `/` when absent."""
        value = _argument_value(self.tokens, HTTP_RELATIVE_PATH_ARG)
        return DEFAULT_RELATIVE_PATH if value is None else value

    def cli_args(self, launcher: str, *, debug: bool, launch_mode: bool) -> list[str]:
        """Build the full argument vector for the launcher script."""
        commands = [f"./{launcher}"]
        if debug:
            commands.append(DEBUG_FLAG)
        if launch_mode:
            commands.append(f"-D{LAUNCH_MODE_PROPERTY}={LAUNCH_MODE_TEST}")
        commands.extend(self.tokens)
        return commands


def collapse_slashes(path: str) -> str:
    """Collapse runs of `/` into a single separator."""
    return re.sub(r"/{2,}", "/", path)


# === Configuration ===


def _default_dist_root() -> Path:
    return Path(tempfile.gettempdir()) / DEFAULT_DIST_ROOT_NAME


def _default_maven_repository() -> Path:
    return Path.home() / ".m2" / "repository"


_ENV_FIELDS: dict[str, str] = {
    "KCDIST_DIST_ROOT": "dist_root",
    "KCDIST_ARTIFACT": "artifact",
    "KCDIST_MAVEN_REPOSITORY": "maven_repository",
    "KCDIST_VERSION": "version",
    "KCDIST_HOST": "host",
    "KCDIST_READINESS_TIMEOUT": "readiness_timeout",
    "KCDIST_RECREATE": "recreate",
    "KCDIST_DEBUG": "debug",
    "KCDIST_STOP_MODE": "stop_mode",
}


class HarnessConfig(BaseModel):
    """Complete configuration for a distribution supervisor.

    This is the single source of truth for all harness configuration.
    All default values are defined here and should not be repeated elsewhere.
    """

    # Distribution
    dist_root: Path = Field(default_factory=_default_dist_root)
    artifact: Path | None = None
    maven_repository: Path = Field(default_factory=_default_maven_repository)
    group_id: str = DEFAULT_GROUP_ID
    artifact_id: str = DEFAULT_ARTIFACT_ID
    version: str | None = None
    packaging: str = DEFAULT_PACKAGING
    install_prefix: str = DEFAULT_INSTALL_PREFIX
    launcher: str = DEFAULT_LAUNCHER
    recreate: bool = False

    # Child process
    admin_username: str = DEFAULT_ADMIN_USERNAME
    admin_password: str = DEFAULT_ADMIN_PASSWORD
    debug: bool = False
    stop_mode: StopMode = StopMode.auto

    # Timing (seconds)
    host: str = DEFAULT_HOST
    readiness_timeout: float = Field(default=DEFAULT_READINESS_TIMEOUT, gt=0)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    stop_timeout: float = Field(default=DEFAULT_STOP_TIMEOUT, gt=0)
    drain_join_timeout: float = Field(default=DEFAULT_DRAIN_JOIN_TIMEOUT, gt=0)

    @property
    def manual_stop(self) -> bool:
        return self.stop_mode == StopMode.manual

    @classmethod
    def from_env(cls, env_file: Path | None = None, **overrides: object) -> HarnessConfig:
        """Build a config from `KCDIST_*` variables (and an optional .env file).

        Explicit keyword overrides win over the environment.
        """
        load_dotenv(dotenv_path=env_file or find_dotenv(usecwd=True))
        data: dict[str, object] = {
            field: os.environ[name]
            for name, field in _ENV_FIELDS.items()
            if os.environ.get(name)
        }
        mode = data.get("stop_mode")
        if isinstance(mode, str):
            data["stop_mode"] = StopMode.from_string(mode)
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(data)
