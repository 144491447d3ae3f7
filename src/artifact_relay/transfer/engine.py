"""Chunked, cancellable, pausable copy of a build folder into the local store.

The destination is ``dest_parent/<source folder name>``. An existing
destination is never touched: the copy is skipped, which makes repeated
cycles idempotent.
"""

from __future__ import annotations

import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from ..concurrency import RunContext, check_disk_space
from ..errors import OperationCancelled, TransferError
from ..history import transfer_event
from ..models import CHUNK_SIZE, HistoryAction, TransferOutcome, TransferResult
from .filters import FilterRules, collect_files
from .progress import ProgressTracker

if TYPE_CHECKING:
    from ..events import EventBus
    from ..history import HistoryStore

log = logger.bind(stage="transfer")


@dataclass
class TransferJob:
    """Working state of one copy: selected files and running totals."""

    source: Path
    destination: Path
    rules: FilterRules
    files: list[Path] = field(default_factory=list)
    total_bytes: int = 0

    def to_result(self, outcome: TransferOutcome) -> TransferResult:
        return TransferResult(
            outcome=outcome,
            source=self.source,
            destination=self.destination,
            total_bytes=self.total_bytes,
        )


class TransferEngine:
    """Copies filtered source trees with cooperative cancel/pause checkpoints.

    Every chunk is preceded by ``context.checkpoint()``; a cancellation
    stops the copy where it is, keeps whatever was written, and reports a
    ``cancelled`` outcome with the partial counters.
    """

    def __init__(
        self,
        context: RunContext,
        events: EventBus,
        history: HistoryStore,
        chunk_size: int = CHUNK_SIZE,
        progress_interval: float = 0.25,
    ) -> None:
        self.context = context
        self.events = events
        self.history = history
        self.chunk_size = chunk_size
        self.progress_interval = progress_interval

    def prepare(self, source_dir: Path, dest_parent: Path, rules: FilterRules) -> TransferJob:
        """Select files and total their size.

        Raises TransferError if the source tree cannot be read.
        """
        job = TransferJob(source=source_dir, destination=dest_parent / source_dir.name, rules=rules)
        try:
            job.files = collect_files(source_dir, rules)
            job.total_bytes = sum((source_dir / f).stat().st_size for f in job.files)
        except OSError as e:
            raise TransferError(
                f"Cannot read source {source_dir}: {e}",
                source=str(source_dir),
                destination=str(job.destination),
            ) from e
        return job

    def copy(self, source_dir: Path, dest_parent: Path, rules: FilterRules) -> TransferResult:
        """Copy source_dir into dest_parent.

        Returns a TransferResult whose outcome is completed, skipped (the
        destination already exists), cancelled, or empty (no file passed
        the filters). Raises TransferError on I/O failure.
        """
        destination = dest_parent / source_dir.name

        if destination.exists():
            self.events.info(f"Skipped (exists): {source_dir.name} -> {destination}")
            return TransferResult(
                outcome=TransferOutcome.SKIPPED, source=source_dir, destination=destination
            )

        job = self.prepare(source_dir, dest_parent, rules)
        if not job.files:
            self.events.warn(f"Nothing to copy in {source_dir.name}: no files match the filters")
            return job.to_result(TransferOutcome.EMPTY)

        if not check_disk_space(job.total_bytes, dest_parent):
            raise TransferError(
                f"Not enough free space in {dest_parent} for {job.total_bytes:,} bytes",
                source=str(source_dir),
                destination=str(destination),
            )

        return self.run(job)

    def run(self, job: TransferJob) -> TransferResult:
        """Execute a prepared job. See copy()."""
        result = job.to_result(TransferOutcome.COMPLETED)
        tracker = ProgressTracker(
            self.events, job.source.name, job.total_bytes, min_interval=self.progress_interval
        )
        started = time.monotonic()

        self.events.info(
            f"Copying {job.source.name}: {len(job.files)} files, {job.total_bytes:,} bytes "
            f"-> {job.destination}"
        )
        self.history.append(
            transfer_event(HistoryAction.COPY_START, result, f"Copy started: {job.source.name}")
        )

        try:
            job.destination.mkdir(parents=True, exist_ok=True)
            for rel in job.files:
                self.context.checkpoint()
                src = job.source / rel
                dst = job.destination / rel
                tracker.set_paths(local_path=str(dst))
                self._copy_file(src, dst, tracker, result)
                result.files.append(rel.as_posix())
        except OperationCancelled:
            result.outcome = TransferOutcome.CANCELLED
            result.elapsed_seconds = time.monotonic() - started
            tracker.finish()
            self.events.warn(
                f"Copy cancelled: {job.source.name} after {result.files_copied} files, "
                f"{result.bytes_copied:,} bytes"
            )
            self.history.append(
                transfer_event(HistoryAction.CANCEL, result, f"Copy cancelled: {job.source.name}")
            )
            return result
        except OSError as e:
            result.elapsed_seconds = time.monotonic() - started
            self.history.append(
                transfer_event(HistoryAction.COPY, result, f"Copy failed: {e}")
            )
            raise TransferError(
                f"Failed to copy {job.source.name}: {e}",
                source=str(job.source),
                destination=str(job.destination),
            ) from e

        result.elapsed_seconds = time.monotonic() - started
        tracker.finish()
        self.events.success(
            f"Copied {job.source.name}: {result.files_copied} files, "
            f"{result.bytes_copied:,} bytes in {result.elapsed_seconds:.1f}s"
        )
        self.history.append(
            transfer_event(HistoryAction.COPY, result, f"Copy completed: {job.source.name}")
        )
        return result

    def _copy_file(
        self, src: Path, dst: Path, tracker: ProgressTracker, result: TransferResult
    ) -> None:
        log.debug(f"copy {src} -> {dst}")
        dst.parent.mkdir(parents=True, exist_ok=True)
        with open(src, "rb") as fin, open(dst, "wb") as fout:
            while True:
                self.context.checkpoint()
                chunk = fin.read(self.chunk_size)
                if not chunk:
                    break
                fout.write(chunk)
                result.bytes_copied += len(chunk)
                tracker.advance(len(chunk))
        shutil.copystat(src, dst)
