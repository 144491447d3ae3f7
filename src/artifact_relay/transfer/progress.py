"""Throttled progress telemetry for chunked copies and uploads."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable

from ..models import ProgressEvent

if TYPE_CHECKING:
    from ..events import EventBus


class ProgressTracker:
    """Accumulates copied bytes and emits ProgressEvents at most every
    ``min_interval`` seconds, plus once more on finish().

    Speed is bytes per elapsed second since the tracker started; ETA is the
    remaining bytes at that speed, or 0 when speed is not yet known.
    """

    def __init__(
        self,
        events: EventBus,
        label: str,
        total_bytes: int,
        min_interval: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.events = events
        self.label = label
        self.total_bytes = total_bytes
        self.min_interval = min_interval
        self.copied_bytes = 0
        self.local_path = ""
        self.remote_path = ""
        self._clock = clock
        self._started = clock()
        self._last_emit = self._started

    def set_paths(self, local_path: str = "", remote_path: str = "") -> None:
        self.local_path = local_path
        self.remote_path = remote_path

    def snapshot(self, now: float | None = None) -> ProgressEvent:
        now = self._clock() if now is None else now
        elapsed = max(now - self._started, 0.0)
        speed = self.copied_bytes / elapsed if elapsed > 0 else 0.0
        remaining = max(self.total_bytes - self.copied_bytes, 0)
        eta = remaining / speed if speed > 0 else 0.0
        if self.total_bytes > 0:
            percentage = min(self.copied_bytes / self.total_bytes * 100.0, 100.0)
        else:
            percentage = 100.0
        return ProgressEvent(
            label=self.label,
            total_bytes=self.total_bytes,
            copied_bytes=self.copied_bytes,
            percentage=percentage,
            speed=speed,
            eta_seconds=eta,
            elapsed_seconds=elapsed,
            local_path=self.local_path,
            remote_path=self.remote_path,
        )

    def advance(self, n: int) -> None:
        self.copied_bytes += n
        now = self._clock()
        if now - self._last_emit >= self.min_interval:
            self._last_emit = now
            self.events.progress(self.snapshot(now))

    def finish(self) -> ProgressEvent:
        now = self._clock()
        self._last_emit = now
        event = self.snapshot(now)
        self.events.progress(event)
        return event

    @property
    def elapsed_seconds(self) -> float:
        return self._clock() - self._started
