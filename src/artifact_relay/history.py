"""Audit history -- newest-first, capped at HISTORY_LIMIT entries.

Persistence belongs to the embedding application; HistoryStore is the seam.
MemoryHistory is the in-process implementation used by default.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Protocol

from loguru import logger

from .models import HISTORY_LIMIT, HistoryAction, TransferResult

log = logger.bind(stage="history")


@dataclass(frozen=True)
class HistoryEntry:
    action_type: HistoryAction
    description: str = ""
    folder_name: str = ""
    source_path: str = ""
    target_path: str = ""
    copied_files_count: int = 0
    total_size: int = 0
    files: list[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=lambda: datetime.now().astimezone().isoformat())

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["action_type"] = str(self.action_type)
        return data


def system_event(action: HistoryAction, description: str) -> HistoryEntry:
    return HistoryEntry(action_type=action, description=description)


def transfer_event(
    action: HistoryAction, result: TransferResult, description: str = ""
) -> HistoryEntry:
    """Build an audit entry from a transfer's current counters."""
    return HistoryEntry(
        action_type=action,
        description=description,
        folder_name=result.source.name,
        source_path=str(result.source),
        target_path=str(result.destination),
        copied_files_count=result.files_copied,
        total_size=result.bytes_copied,
        files=list(result.files),
    )


class HistoryStore(Protocol):
    def append(self, entry: HistoryEntry) -> None: ...

    def entries(self) -> list[HistoryEntry]: ...


class MemoryHistory:
    """Thread-safe in-memory HistoryStore."""

    def __init__(self, limit: int = HISTORY_LIMIT) -> None:
        self.limit = limit
        self._entries: list[HistoryEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: HistoryEntry) -> None:
        log.debug(f"History: {entry.action_type} {entry.folder_name or entry.description}")
        with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self.limit:]

    def entries(self) -> list[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
