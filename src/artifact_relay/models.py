"""Core enums, constants, and result types for artifact relay.

Enums:
    LogLevel        -- Telemetry log level (info, warn, error, success).
    TransferOutcome -- Terminal state of a local copy (completed, skipped,
                       cancelled, empty).
    HistoryAction   -- Audit entry action type (COPY_START, COPY, CANCEL, ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path

CHUNK_SIZE = 64 * 1024

# Unparseable candidates carry this timestamp so they lose every recency comparison
SENTINEL_TIMESTAMP = datetime.min

HISTORY_LIMIT = 100


class LogLevel(StrEnum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    SUCCESS = "success"


class TransferOutcome(StrEnum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"
    EMPTY = "empty"


class HistoryAction(StrEnum):
    COPY_START = "COPY_START"
    COPY = "COPY"
    CANCEL = "CANCEL"
    PAUSE = "PAUSE"
    RESUME = "RESUME"
    DEPLOY = "DEPLOY"
    CONFIG = "CONFIG"
    SCHEDULER_START = "SCHEDULER_START"
    SCHEDULER_STOP = "SCHEDULER_STOP"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True)
class Candidate:
    """A directory entry considered as a transfer source."""

    path: Path
    name: str
    version: str = ""
    timestamp: datetime = SENTINEL_TIMESTAMP

    @property
    def parsed(self) -> bool:
        return bool(self.version) and self.timestamp != SENTINEL_TIMESTAMP


@dataclass(frozen=True)
class LogEvent:
    message: str
    level: LogLevel = LogLevel.INFO


@dataclass(frozen=True)
class ProgressEvent:
    label: str
    total_bytes: int
    copied_bytes: int
    percentage: float
    speed: float
    eta_seconds: float
    elapsed_seconds: float
    local_path: str = ""
    remote_path: str = ""


@dataclass
class TransferResult:
    """Terminal state of one local copy."""

    outcome: TransferOutcome
    source: Path
    destination: Path
    bytes_copied: int = 0
    total_bytes: int = 0
    files: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def files_copied(self) -> int:
        return len(self.files)


@dataclass
class TargetOutcome:
    """Result of deploying one artifact to one target."""

    target_id: str
    target_name: str
    remote_path: str = ""
    success: bool = False
    cancelled: bool = False
    error: str | None = None
    bytes_uploaded: int = 0
    files_uploaded: int = 0
    elapsed_seconds: float = 0.0
    failed_commands: list[str] = field(default_factory=list)


@dataclass
class DeploymentReport:
    artifact_name: str
    outcomes: list[TargetOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success and not o.cancelled)

    @property
    def cancelled(self) -> bool:
        return any(o.cancelled for o in self.outcomes)


@dataclass
class ScanResult:
    """Aggregate result of one scan cycle.

    ``cancelled`` is reported separately from ``errors``: a cancelled cycle
    returns whatever it accumulated before the cancellation checkpoint.
    """

    started_at: datetime
    finished_at: datetime | None = None
    scanned_paths: int = 0
    found_folders: list[str] = field(default_factory=list)
    copied_folders: list[str] = field(default_factory=list)
    skipped_folders: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    deployments: list[DeploymentReport] = field(default_factory=list)
    cancelled: bool = False
    window_skipped: bool = False

    @property
    def had_errors(self) -> bool:
        return bool(self.errors)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()
