"""Relay configuration via pydantic-settings (.env + env vars + JSON file)."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Annotated, Any, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .models import CHUNK_SIZE

log = logger.bind(stage="config")

DEFAULT_DATE_FORMAT = "%y%m%d"


class VersionMatch(BaseModel):
    """Select the newest ``YYYY_MM_DD_HH_MM(version)`` folder for a version."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["version"] = "version"
    version: str


class DateMatch(BaseModel):
    """Select the folder named after today's date in ``date_format``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["date"] = "date"
    date_format: str = DEFAULT_DATE_FORMAT


TaskRule = Annotated[VersionMatch | DateMatch, Field(discriminator="kind")]


class TaskConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    enabled: bool = True
    remote_path: str
    local_path: str | None = None
    rule: TaskRule


class DeploymentTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    enabled: bool = True
    name: str
    host: str
    port: int = 22
    user: str
    password: str = ""
    private_key_path: str | None = None
    remote_path: str


class RelayConfig(BaseSettings):
    """All relay configuration with layered resolution:
    .env file < environment variables < JSON config file < constructor kwargs.

    Instances are frozen: a running cycle always sees one consistent snapshot.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    # -- Discovery --
    tasks: list[TaskConfig] = Field(default_factory=list)
    # Legacy flat form: every (remote_path, target_version) pair is one task
    remote_paths: list[str] = Field(default_factory=list)
    target_versions: list[str] = Field(default_factory=list)
    time_ranges: list[str] = Field(default_factory=list)
    interval_minutes: float = 10

    # -- Transfer --
    local_path: Path = Path("artifacts")
    file_extensions: list[str] = Field(default_factory=list)
    filename_includes: list[str] = Field(default_factory=list)
    chunk_size: int = CHUNK_SIZE
    progress_interval: float = 0.25
    pause_poll_interval: float = 0.1

    # -- Deployment --
    deploy_enabled: bool = False
    servers: list[DeploymentTarget] = Field(default_factory=list)
    post_commands: list[str] = Field(default_factory=list)
    ssh_connect_timeout: float = 15.0

    # -- Logging --
    verbose: bool = False
    log_level: str = "INFO"
    log_dir: Path | None = None

    def effective_tasks(self) -> list[TaskConfig]:
        """Configured tasks followed by tasks expanded from the legacy fields."""
        tasks = list(self.tasks)
        for remote_path in self.remote_paths:
            for version in self.target_versions:
                tasks.append(
                    TaskConfig(
                        name=f"{Path(remote_path).name or remote_path} ({version})",
                        remote_path=remote_path,
                        rule=VersionMatch(version=version),
                    )
                )
        return tasks

    def enabled_servers(self) -> list[DeploymentTarget]:
        return [s for s in self.servers if s.enabled]

    def find_server(self, target_id: str) -> DeploymentTarget | None:
        for server in self.servers:
            if server.id == target_id or server.name == target_id:
                return server
        return None

    def setup_logging(self) -> None:
        """Configure loguru for the relay."""
        logger.remove()  # Remove default stderr handler

        log_format = (
            "{time:YYYY-MM-DDTHH:mm:ssZ} | {level:<8} | "
            "{extra[stage]:<12} | {message}"
        )

        def _default_extra(record):
            record["extra"].setdefault("stage", "")
            return True

        level = "DEBUG" if self.verbose else self.log_level.upper()
        logger.add(
            sys.stderr,
            format=log_format,
            level=level,
            filter=_default_extra,
        )

        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            logger.add(
                str(self.log_dir / "relay.log"),
                format=log_format,
                level="DEBUG",
                rotation="10 MB",
                retention="30 days",
                filter=_default_extra,
            )


def load_config(path: Path | None = None, **overrides: Any) -> RelayConfig:
    """Load a RelayConfig snapshot from a JSON file plus environment.

    Raises ConfigError when the file is missing, unreadable, not JSON, or
    fails validation. These are fatal at startup.
    """
    data: dict[str, Any] = {}
    if path is not None:
        log.debug(f"Loading config from {path}")
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ConfigError(f"Config file not found: {path}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Failed to read config {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must contain a JSON object")

    data.update(overrides)
    try:
        return RelayConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
