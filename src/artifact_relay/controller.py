"""Control surface -- start, cancel, pause, resume, connectivity test, manual deploy.

Long-running work executes on a single dedicated worker thread so these
calls return immediately. Telemetry arrives through ``controller.events``;
the returned futures carry only the final result.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from loguru import logger

from .concurrency import RUN_GUARD, RunContext, RunGuard
from .config import DeploymentTarget, RelayConfig
from .deploy.fanout import DeploymentFanout, check_connection
from .deploy.transport import Connector, paramiko_connector
from .events import EventBus
from .history import HistoryStore, MemoryHistory, system_event
from .models import HistoryAction, ScanResult, TargetOutcome
from .runner import ScanRunner

log = logger.bind(stage="controller")


class RelayController:
    """Owns the config snapshot, the worker thread, and the current run context.

    At most one scan cycle or manual deploy runs at a time; a second request
    raises RunInProgressError without touching the active run.
    """

    def __init__(
        self,
        config: RelayConfig,
        history: HistoryStore | None = None,
        connector: Connector = paramiko_connector,
        guard: RunGuard = RUN_GUARD,
    ) -> None:
        self._config = config
        self.history = history if history is not None else MemoryHistory()
        self.connector = connector
        self.events = EventBus("controller")
        self._guard = guard
        self._context: RunContext | None = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="relay-worker")

    # -- Config snapshot --

    @property
    def config(self) -> RelayConfig:
        return self._config

    def update_config(self, config: RelayConfig) -> None:
        """Swap the snapshot; a running cycle keeps the one it started with."""
        self._config = config
        self.history.append(system_event(HistoryAction.CONFIG, "Configuration updated"))

    # -- State --

    @property
    def busy(self) -> bool:
        return self._guard.busy

    @property
    def paused(self) -> bool:
        return self._context is not None and self._context.paused and self.busy

    # -- Runs --

    def start_cycle(self) -> Future[ScanResult]:
        """Start one scan cycle in the background.

        Raises RunInProgressError if a cycle or manual deploy is active.
        """
        self._guard.acquire("scan cycle")
        config = self._config
        context = RunContext(poll_interval=config.pause_poll_interval)
        self._context = context
        try:
            return self._executor.submit(self._run_cycle, config, context)
        except BaseException:
            self._guard.release()
            raise

    def run_cycle(self) -> ScanResult:
        """Blocking convenience wrapper around start_cycle()."""
        return self.start_cycle().result()

    def _run_cycle(self, config: RelayConfig, context: RunContext) -> ScanResult:
        try:
            runner = ScanRunner(
                config, context, self.events.bind("runner"), self.history, self.connector
            )
            return runner.run()
        except Exception as e:
            log.opt(exception=e).error(f"Scan cycle crashed: {e}")
            self.events.error(f"Scan failed: {e}")
            raise
        finally:
            self._guard.release()

    def manual_deploy(
        self,
        target: DeploymentTarget,
        local_path: Path,
        remote_path: str,
        post_commands: list[str] | None = None,
    ) -> Future[TargetOutcome]:
        """Deploy one local file or folder to one target, bypassing task matching.

        Raises RunInProgressError if a cycle or another deploy is active.
        """
        self._guard.acquire("manual deploy")
        config = self._config
        context = RunContext(poll_interval=config.pause_poll_interval)
        self._context = context
        commands = config.post_commands if post_commands is None else post_commands
        try:
            return self._executor.submit(
                self._run_manual, config, context, target, local_path, remote_path, commands
            )
        except BaseException:
            self._guard.release()
            raise

    def _run_manual(
        self,
        config: RelayConfig,
        context: RunContext,
        target: DeploymentTarget,
        local_path: Path,
        remote_path: str,
        commands: list[str],
    ) -> TargetOutcome:
        try:
            fanout = DeploymentFanout(
                context,
                self.events.bind("deploy"),
                connector=self.connector,
                chunk_size=config.chunk_size,
                progress_interval=config.progress_interval,
                connect_timeout=config.ssh_connect_timeout,
            )
            outcome = fanout.deploy_manual(target, local_path, remote_path, commands)
            self.history.append(
                system_event(
                    HistoryAction.DEPLOY,
                    f"Manual deploy {local_path} -> [{target.name}] {outcome.remote_path}: "
                    f"{'ok' if outcome.success else outcome.error}",
                )
            )
            return outcome
        finally:
            self._guard.release()

    def test_connection(self, target: DeploymentTarget) -> str:
        """Connect and authenticate only. Raises DeploymentError on failure."""
        return check_connection(target, self.connector, self._config.ssh_connect_timeout)

    # -- Signals --

    def cancel(self) -> None:
        context = self._context
        if context is None or not self.busy:
            log.debug("cancel: nothing running")
            return
        context.cancel()
        self.events.warn("Cancellation requested")
        self.history.append(system_event(HistoryAction.CANCEL, "Cancellation requested"))

    def pause(self) -> None:
        context = self._context
        if context is None or not self.busy:
            log.debug("pause: nothing running")
            return
        context.pause()
        self.events.info("Paused")
        self.history.append(system_event(HistoryAction.PAUSE, "Run paused"))

    def resume(self) -> None:
        context = self._context
        if context is None or not context.paused:
            log.debug("resume: nothing paused")
            return
        context.resume()
        self.events.info("Resumed")
        self.history.append(system_event(HistoryAction.RESUME, "Run resumed"))

    def shutdown(self, cancel: bool = True) -> None:
        if cancel:
            self.cancel()
        self._executor.shutdown(wait=True)

    def __enter__(self) -> RelayController:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
