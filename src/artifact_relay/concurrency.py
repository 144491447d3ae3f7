"""Run guard, per-run cancel/pause context, and disk space checks."""

from __future__ import annotations

import shutil
import threading
from pathlib import Path

from loguru import logger

from .errors import OperationCancelled, RunInProgressError

log = logger.bind(stage="concurrency")

DEFAULT_POLL_INTERVAL = 0.1


class RunGuard:
    """Non-blocking single-active-run guard.

    A second acquire while held raises RunInProgressError instead of waiting.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._owner = ""

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def owner(self) -> str:
        return self._owner

    def acquire(self, owner: str) -> None:
        if not self._lock.acquire(blocking=False):
            log.warning(f"Rejected {owner}: {self._owner} is still running")
            raise RunInProgressError(f"Cannot start {owner}: {self._owner} is already running")
        self._owner = owner
        log.debug(f"Run guard acquired by {owner}")

    def release(self) -> None:
        log.debug(f"Run guard released by {self._owner}")
        self._owner = ""
        self._lock.release()


# One active cycle or manual deploy per process
RUN_GUARD = RunGuard()


class RunContext:
    """Cancel and pause flags for one pipeline run.

    Both flags are level-triggered. Cancellation always wins over pause: a
    paused worker wakes as soon as cancel is set.
    """

    def __init__(self, poll_interval: float = DEFAULT_POLL_INTERVAL) -> None:
        self.poll_interval = poll_interval
        self._cancel = threading.Event()
        self._pause = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def paused(self) -> bool:
        return self._pause.is_set()

    def cancel(self) -> None:
        self._cancel.set()

    def pause(self) -> None:
        self._pause.set()

    def resume(self) -> None:
        self._pause.clear()

    def wait_while_paused(self) -> None:
        """Block while paused; return early once cancellation is requested."""
        while self._pause.is_set():
            if self._cancel.wait(self.poll_interval):
                return

    def checkpoint(self) -> None:
        """Cooperative interruption point.

        Raises OperationCancelled if cancelled, blocks while paused.
        """
        if self._cancel.is_set():
            raise OperationCancelled("Operation cancelled")
        self.wait_while_paused()
        if self._cancel.is_set():
            raise OperationCancelled("Operation cancelled")


def _existing_ancestor(path: Path) -> Path:
    current = path
    while not current.exists() and current != current.parent:
        current = current.parent
    return current


def check_disk_space(required_bytes: int, dest_dir: Path) -> bool:
    """Check that the volume holding dest_dir has required_bytes free.

    dest_dir need not exist yet; its nearest existing ancestor is measured.
    """
    probe = _existing_ancestor(dest_dir)
    usage = shutil.disk_usage(probe)
    result = usage.free >= required_bytes

    log.debug(
        f"Disk space check: required={required_bytes:,} bytes, "
        f"free={usage.free:,} bytes, sufficient={result}"
    )
    return result
