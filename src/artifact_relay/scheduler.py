"""Interval scheduler -- trigger a scan cycle every N minutes.

The first cycle runs immediately. A trigger that lands while a cycle is still
running is rejected by the controller and logged; triggers never queue.
"""

from __future__ import annotations

from concurrent.futures import Future
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from .errors import RunInProgressError
from .history import system_event
from .models import HistoryAction, ScanResult

if TYPE_CHECKING:
    from .controller import RelayController

log = logger.bind(stage="scheduler")

JOB_ID = "relay-scan"


class Scheduler:
    """Wraps APScheduler's BackgroundScheduler around ``controller.start_cycle``.

    The job only submits the cycle; the cycle itself runs on the
    controller's worker thread, so the scheduler thread is never blocked.
    """

    def __init__(self, controller: RelayController, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.controller = controller
        self.interval_seconds = interval_seconds
        self._scheduler: BackgroundScheduler | None = None
        self.triggered = 0
        self.rejected = 0

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.running:
            return
        self._scheduler = BackgroundScheduler(
            job_defaults={"max_instances": 1, "coalesce": True},
            timezone=timezone.utc,
        )
        self._scheduler.add_job(
            self.trigger,
            IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc),
            id=JOB_ID,
            name="Artifact relay scan",
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler.start()

        message = f"Scheduler started (interval {self.interval_seconds / 60:g} min)"
        self.controller.events.info(message)
        self.controller.history.append(system_event(HistoryAction.SCHEDULER_START, message))

    def stop(self, wait: bool = True) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        message = "Scheduler stopped"
        self.controller.events.info(message)
        self.controller.history.append(system_event(HistoryAction.SCHEDULER_STOP, message))

    def trigger(self) -> Future[ScanResult] | None:
        try:
            future = self.controller.start_cycle()
        except RunInProgressError as e:
            self.rejected += 1
            self.controller.events.warn(f"Scheduled scan skipped: {e}")
            return None
        self.triggered += 1
        future.add_done_callback(self._report)
        return future

    def _report(self, future: Future[ScanResult]) -> None:
        exc = future.exception()
        if exc is not None:
            log.error(f"Scheduled scan failed: {exc}")
