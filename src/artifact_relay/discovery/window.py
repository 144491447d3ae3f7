"""Time window gate -- decide whether the wall clock admits a scan cycle."""

from __future__ import annotations

import re
from datetime import datetime, time

from loguru import logger

log = logger.bind(stage="window")

_RANGE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")


def parse_range(text: str) -> tuple[time, time] | None:
    """Parse ``"HH:MM-HH:MM"``; None for anything malformed."""
    match = _RANGE.match(text)
    if not match:
        return None
    h1, m1, h2, m2 = (int(g) for g in match.groups())
    try:
        return time(h1, m1), time(h2, m2)
    except ValueError:
        return None


def _in_range(now: time, start: time, end: time) -> bool:
    if start <= end:
        return start <= now <= end
    # Wraps midnight, e.g. 22:00-02:00
    return now >= start or now <= end


def in_time_window(ranges: list[str], now: datetime) -> bool:
    """True if ``now`` falls within any range, inclusive at both ends.

    An empty list always admits. Malformed entries neither admit nor reject;
    a list with only malformed entries therefore rejects. Comparison is at
    minute resolution.
    """
    if not ranges:
        return True

    current = time(now.hour, now.minute)
    for text in ranges:
        parsed = parse_range(text)
        if parsed is None:
            log.warning(f"Ignoring malformed time range {text!r}")
            continue
        start, end = parsed
        if _in_range(current, start, end):
            log.debug(f"{current:%H:%M} inside {text}")
            return True

    log.debug(f"{current:%H:%M} outside all time ranges {ranges}")
    return False
