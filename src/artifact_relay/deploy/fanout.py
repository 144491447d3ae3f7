"""Sequential fan-out of a finished artifact to SSH/SFTP deployment targets.

Targets are handled strictly one at a time so progress and log streams stay
ordered and attributable. Cancellation is observed between targets only: a
target that has connected runs its upload and commands to the end. Pause is
honoured between chunks and keeps the connection open.

Unlike the local copy, an existing remote directory does not skip the
upload; files are overwritten so a build can be re-pushed on demand.
"""

from __future__ import annotations

import posixpath
import time
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from ..concurrency import RunContext
from ..errors import DeploymentError, RemoteCommandError
from ..models import CHUNK_SIZE, DeploymentReport, TargetOutcome
from ..transfer.filters import walk_files
from ..transfer.progress import ProgressTracker
from .templating import render_commands
from .transport import Connector, RemoteSession, paramiko_connector, remote_join

if TYPE_CHECKING:
    from ..config import DeploymentTarget
    from ..events import EventBus

log = logger.bind(stage="deploy")


def resolve_manual_remote_path(local_path: Path, remote_path: str) -> str:
    """Remote destination for a manual deploy.

    A remote path ending in a separator names a directory: the local
    artifact's name is appended. Backslashes become forward slashes.
    """
    if remote_path.endswith(("/", "\\")):
        remote_path = remote_path.rstrip("/\\") + "/" + local_path.name
    return remote_path.replace("\\", "/")


def check_connection(
    target: DeploymentTarget,
    connector: Connector = paramiko_connector,
    timeout: float = 15.0,
) -> str:
    """Connect and authenticate only. Raises DeploymentError on failure."""
    session = connector(target, timeout)
    session.close()
    return f"Connected to {target.name}"


class DeploymentFanout:
    def __init__(
        self,
        context: RunContext,
        events: EventBus,
        connector: Connector = paramiko_connector,
        chunk_size: int = CHUNK_SIZE,
        progress_interval: float = 0.25,
        connect_timeout: float = 15.0,
    ) -> None:
        self.context = context
        self.events = events
        self.connector = connector
        self.chunk_size = chunk_size
        self.progress_interval = progress_interval
        self.connect_timeout = connect_timeout

    def deploy(
        self,
        artifact_root: Path,
        artifact_name: str,
        targets: list[DeploymentTarget],
        post_commands: list[str],
    ) -> DeploymentReport:
        """Push artifact_root to every enabled target in order.

        Returns one TargetOutcome per enabled target. Targets not started
        because of cancellation are reported with ``cancelled=True``.
        """
        report = DeploymentReport(artifact_name=artifact_name)
        enabled = [t for t in targets if t.enabled]
        if not enabled:
            self.events.warn("Deployment enabled but no servers configured")
            return report

        commands = render_commands(post_commands, artifact_root, artifact_name)
        self.events.info(f"Starting deployment of {artifact_name} to {len(enabled)} servers")

        for target in enabled:
            remote_dest = remote_join(target.remote_path, artifact_name)
            self.context.wait_while_paused()
            if self.context.cancelled:
                self.events.warn(f"[{target.name}] Deployment cancelled before start")
                report.outcomes.append(
                    TargetOutcome(
                        target_id=target.id,
                        target_name=target.name,
                        remote_path=remote_dest,
                        cancelled=True,
                        error="Cancelled before start",
                    )
                )
                continue
            report.outcomes.append(self.deploy_target(target, artifact_root, remote_dest, commands))

        self.events.info(
            f"Deployment of {artifact_name} finished: {report.succeeded} succeeded, "
            f"{report.failed} failed"
        )
        return report

    def deploy_manual(
        self,
        target: DeploymentTarget,
        local_path: Path,
        remote_path: str,
        post_commands: list[str],
    ) -> TargetOutcome:
        """Push one local file or folder to one target, bypassing task matching."""
        if not local_path.exists():
            raise DeploymentError(f"Local path does not exist: {local_path}", target.name)
        remote_dest = resolve_manual_remote_path(local_path, remote_path)
        commands = render_commands(post_commands, local_path, local_path.name)
        self.events.info(
            f"Starting manual deployment: {local_path} -> [{target.name}] "
            f"{target.host}:{remote_dest}"
        )
        return self.deploy_target(target, local_path, remote_dest, commands)

    def deploy_target(
        self,
        target: DeploymentTarget,
        local_root: Path,
        remote_dest: str,
        commands: list[str],
    ) -> TargetOutcome:
        """Connect, upload, and run commands on one target.

        Never raises: every failure is captured in the returned outcome so
        the next target still runs.
        """
        started = time.monotonic()
        outcome = TargetOutcome(target_id=target.id, target_name=target.name, remote_path=remote_dest)

        self.events.info(f"[{target.name}] Connecting to {target.host}:{target.port}")
        try:
            session = self.connector(target, self.connect_timeout)
        except Exception as e:
            outcome.error = str(e)
            outcome.elapsed_seconds = time.monotonic() - started
            self.events.error(f"[{target.name}] Deployment failed: {e}")
            return outcome

        try:
            with session:
                self.events.info(f"[{target.name}] Connected")
                self._prepare_remote(session, target, local_root, remote_dest)
                self._upload(session, target, local_root, remote_dest, outcome)
                self._run_commands(session, target, commands, outcome)
        except Exception as e:
            outcome.error = str(e)
            outcome.elapsed_seconds = time.monotonic() - started
            self.events.error(f"[{target.name}] Deployment failed: {e}")
            return outcome

        outcome.success = True
        outcome.elapsed_seconds = time.monotonic() - started
        self.events.success(
            f"[{target.name}] Deployment successful: {outcome.files_uploaded} files, "
            f"{outcome.bytes_uploaded:,} bytes in {outcome.elapsed_seconds:.1f}s"
        )
        return outcome

    def _prepare_remote(
        self,
        session: RemoteSession,
        target: DeploymentTarget,
        local_root: Path,
        remote_dest: str,
    ) -> None:
        remote_dir = remote_dest if local_root.is_dir() else posixpath.dirname(remote_dest)
        if session.exists(remote_dest):
            self.events.warn(
                f"[{target.name}] Remote {remote_dest} already exists, uploading anyway (overwrite)"
            )
        else:
            self.events.info(f"[{target.name}] Uploading to {remote_dest}")
        if remote_dir:
            session.makedirs(remote_dir)

    def _upload(
        self,
        session: RemoteSession,
        target: DeploymentTarget,
        local_root: Path,
        remote_dest: str,
        outcome: TargetOutcome,
    ) -> None:
        if local_root.is_dir():
            files = [(local_root / rel, remote_join(remote_dest, rel.as_posix())) for rel in walk_files(local_root)]
        else:
            files = [(local_root, remote_dest)]

        total = sum(local.stat().st_size for local, _ in files)
        tracker = ProgressTracker(
            self.events,
            f"[{target.name}] {local_root.name}",
            total,
            min_interval=self.progress_interval,
        )
        created = {remote_dest}
        for local, remote in files:
            parent = posixpath.dirname(remote)
            if parent and parent not in created:
                session.makedirs(parent)
                created.add(parent)
            tracker.set_paths(local_path=str(local), remote_path=remote)
            self._upload_file(session, local, remote, tracker, outcome)
            outcome.files_uploaded += 1
        tracker.finish()

    def _upload_file(
        self,
        session: RemoteSession,
        local: Path,
        remote: str,
        tracker: ProgressTracker,
        outcome: TargetOutcome,
    ) -> None:
        log.debug(f"upload {local} -> {remote}")
        with open(local, "rb") as fin, session.open_write(remote) as fout:
            while True:
                # In-flight targets are not cancelled, only paused
                self.context.wait_while_paused()
                chunk = fin.read(self.chunk_size)
                if not chunk:
                    break
                fout.write(chunk)
                outcome.bytes_uploaded += len(chunk)
                tracker.advance(len(chunk))

    def _run_commands(
        self,
        session: RemoteSession,
        target: DeploymentTarget,
        commands: list[str],
        outcome: TargetOutcome,
    ) -> None:
        """Best-effort: a failing command is logged and the rest still run."""
        if not commands:
            return
        self.events.info(f"[{target.name}] Executing post commands...")
        for command in commands:
            self.events.info(f"[{target.name}] $ {command}")
            try:
                result = session.execute(command)
            except Exception as e:
                outcome.failed_commands.append(command)
                self.events.error(f"[{target.name}] Command {command!r} could not run: {e}")
                continue
            if result.output:
                self.events.info(f"[{target.name}] > {result.output}")
            if result.exit_status != 0:
                outcome.failed_commands.append(command)
                err = RemoteCommandError(command, result.exit_status, result.output, target.name)
                self.events.error(f"Command failed: {err}")
