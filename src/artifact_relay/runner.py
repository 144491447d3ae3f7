"""Scan cycle runner -- orchestrates discovery, transfer, and deployment per task."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, assert_never

from loguru import logger

from .config import DateMatch, RelayConfig, TaskConfig, VersionMatch
from .deploy.fanout import DeploymentFanout
from .deploy.transport import Connector, paramiko_connector
from .discovery.matcher import lookup_dated, scan_directory
from .discovery.selector import select_latest
from .discovery.window import in_time_window
from .errors import OperationCancelled, TransferError
from .history import HistoryEntry, system_event
from .models import Candidate, HistoryAction, ScanResult, TransferOutcome, TransferResult
from .transfer.engine import TransferEngine
from .transfer.filters import FilterRules

if TYPE_CHECKING:
    from .concurrency import RunContext
    from .events import EventBus
    from .history import HistoryStore

log = logger.bind(stage="runner")


class ScanRunner:
    """Runs one scan cycle over every configured task.

    Tasks run one after another. Per task: find the candidate (newest
    version-tagged folder, or today's date-named folder), copy it unless it
    already exists locally, then hand a completed copy to the deployment
    fan-out. Errors stay scoped to their task; cancellation stops the cycle
    and returns what was accumulated so far.
    """

    def __init__(
        self,
        config: RelayConfig,
        context: RunContext,
        events: EventBus,
        history: HistoryStore,
        connector: Connector = paramiko_connector,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config
        self.context = context
        self.events = events
        self.history = history
        self.clock = clock
        self.engine = TransferEngine(
            context,
            events.bind("transfer"),
            history,
            chunk_size=config.chunk_size,
            progress_interval=config.progress_interval,
        )
        self.fanout = DeploymentFanout(
            context,
            events.bind("deploy"),
            connector=connector,
            chunk_size=config.chunk_size,
            progress_interval=config.progress_interval,
            connect_timeout=config.ssh_connect_timeout,
        )

    def run(self) -> ScanResult:
        now = self.clock()
        result = ScanResult(started_at=now)

        if not in_time_window(self.config.time_ranges, now):
            self.events.info(
                f"{now:%H:%M} is outside the configured time ranges "
                f"{self.config.time_ranges} -- skipping cycle"
            )
            result.window_skipped = True
            result.finished_at = self.clock()
            return result

        rules = FilterRules.from_config(self.config)
        tasks = self.config.effective_tasks()
        self.events.info(f"Scan started: {len(tasks)} tasks")

        for task in tasks:
            try:
                self.context.checkpoint()
            except OperationCancelled:
                result.cancelled = True
                break
            if not task.enabled:
                log.debug(f"Skipping disabled task: {task.name}")
                continue
            try:
                self._run_task(task, rules, now, result)
            except Exception as e:
                log.opt(exception=e).error(f"Unexpected error in task {task.name}: {e}")
                result.errors.append(f"[{task.name}] Unexpected error: {e}")
            if result.cancelled:
                break

        result.finished_at = self.clock()
        if result.cancelled:
            self.events.warn(
                f"Scan cancelled: {len(result.copied_folders)} folders copied before cancellation"
            )
            self.history.append(system_event(HistoryAction.CANCEL, "Scan cycle cancelled"))
        else:
            self.events.success(
                f"Scan complete: scanned {result.scanned_paths}, "
                f"found {len(result.found_folders)}, copied {len(result.copied_folders)}"
            )
        return result

    def find_candidate(self, task: TaskConfig, now: datetime) -> Candidate | None:
        """Resolve a task's rule to at most one candidate.

        Raises OSError when the share directory cannot be read.
        """
        source = Path(task.remote_path)
        rule = task.rule
        match rule:
            case VersionMatch(version=version):
                return select_latest(scan_directory(source), version, now)
            case DateMatch(date_format=date_format):
                candidate = lookup_dated(source, date_format, now)
                if candidate is None:
                    log.info(f"No folder named {now.strftime(date_format)} in {source}")
                return candidate
            case _:
                assert_never(rule)

    def _run_task(
        self, task: TaskConfig, rules: FilterRules, now: datetime, result: ScanResult
    ) -> None:
        result.scanned_paths += 1
        log.debug(f"Task {task.name}: {task.remote_path}")

        try:
            candidate = self.find_candidate(task, now)
        except OSError as e:
            message = f"Failed to read {task.remote_path}: {e}"
            result.errors.append(message)
            self.events.error(f"[{task.name}] {message}")
            return

        if candidate is None:
            return

        result.found_folders.append(candidate.name)
        self.events.info(f"[{task.name}] Found candidate: {candidate.name}")

        dest_parent = Path(task.local_path) if task.local_path else self.config.local_path
        try:
            transfer = self.engine.copy(candidate.path, dest_parent, rules)
        except TransferError as e:
            result.errors.append(str(e))
            self.events.error(f"[{task.name}] {e}")
            return

        if transfer.outcome == TransferOutcome.SKIPPED:
            result.skipped_folders.append(candidate.name)
        elif transfer.outcome == TransferOutcome.CANCELLED:
            result.cancelled = True
        elif transfer.outcome == TransferOutcome.COMPLETED:
            result.copied_folders.append(candidate.name)
            if self.config.deploy_enabled:
                self._deploy(transfer, result)

    def _deploy(self, transfer: TransferResult, result: ScanResult) -> None:
        """Synchronous hand-off; a failed deployment never undoes the copy."""
        name = transfer.destination.name
        try:
            report = self.fanout.deploy(
                transfer.destination,
                name,
                self.config.enabled_servers(),
                self.config.post_commands,
            )
        except Exception as e:
            self.events.error(f"Deployment of {name} failed: {e}")
            return

        result.deployments.append(report)
        if report.outcomes:
            self.history.append(
                HistoryEntry(
                    action_type=HistoryAction.DEPLOY,
                    description=(
                        f"Deployed {name}: {report.succeeded} succeeded, {report.failed} failed"
                    ),
                    folder_name=name,
                    source_path=str(transfer.destination),
                    target_path=", ".join(o.target_name for o in report.outcomes),
                    copied_files_count=sum(o.files_uploaded for o in report.outcomes),
                    total_size=sum(o.bytes_uploaded for o in report.outcomes),
                )
            )
        if report.cancelled:
            result.cancelled = True
