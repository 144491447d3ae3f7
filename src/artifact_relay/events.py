"""Telemetry event bus -- log lines and progress ticks for the control surface.

Listeners are called synchronously on the emitting (worker) thread. A listener
that raises is logged and otherwise ignored so telemetry can never break a
transfer.
"""

from __future__ import annotations

import queue
from typing import Callable

from loguru import logger

from .models import LogEvent, LogLevel, ProgressEvent

Event = LogEvent | ProgressEvent
Listener = Callable[[Event], None]

_LOGURU_LEVELS = {
    LogLevel.INFO: "INFO",
    LogLevel.WARN: "WARNING",
    LogLevel.ERROR: "ERROR",
    LogLevel.SUCCESS: "SUCCESS",
}


class EventBus:
    def __init__(self, stage: str = "events") -> None:
        self._listeners: list[Listener] = []
        self._log = logger.bind(stage=stage)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def bind(self, stage: str) -> EventBus:
        """Return a bus sharing these listeners but logging under another stage."""
        child = EventBus(stage)
        child._listeners = self._listeners
        return child

    def emit(self, event: Event) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                self._log.opt(exception=e).warning(f"Event listener failed: {e}")

    def log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        """Mirror a message into loguru and publish it as a LogEvent."""
        self._log.log(_LOGURU_LEVELS[level], message)
        self.emit(LogEvent(message=message, level=level))

    def info(self, message: str) -> None:
        self.log(message, LogLevel.INFO)

    def warn(self, message: str) -> None:
        self.log(message, LogLevel.WARN)

    def error(self, message: str) -> None:
        self.log(message, LogLevel.ERROR)

    def success(self, message: str) -> None:
        self.log(message, LogLevel.SUCCESS)

    def progress(self, event: ProgressEvent) -> None:
        self.emit(event)


class QueueListener:
    """Collects events into a queue for a consumer polling from another thread."""

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: queue.Queue[Event] = queue.Queue(maxsize=maxsize)

    def __call__(self, event: Event) -> None:
        try:
            self.queue.put_nowait(event)
        except queue.Full:
            # Drop the oldest tick rather than block the worker
            try:
                self.queue.get_nowait()
            except queue.Empty:
                pass
            self.queue.put_nowait(event)

    def drain(self) -> list[Event]:
        events: list[Event] = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events
