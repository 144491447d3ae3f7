"""Recency gate -- pick the newest candidate per version, dated today or yesterday."""

from __future__ import annotations

from datetime import date, datetime, timedelta

from loguru import logger

from ..models import Candidate

log = logger.bind(stage="selector")


def is_recent(candidate: Candidate, now: datetime) -> bool:
    """True when the candidate's date is today or yesterday relative to now."""
    if not candidate.parsed:
        return False
    today: date = now.date()
    return candidate.timestamp.date() in (today, today - timedelta(days=1))


def newest_for_version(candidates: list[Candidate], version: str) -> Candidate | None:
    """Newest parsed candidate whose version tag equals ``version`` exactly.

    sorted() is stable, so equal timestamps keep their listing order.
    """
    matches = [c for c in candidates if c.parsed and c.version == version]
    if not matches:
        return None
    matches = sorted(matches, key=lambda c: c.timestamp, reverse=True)
    return matches[0]


def select_latest(
    candidates: list[Candidate], version: str, now: datetime
) -> Candidate | None:
    """Return the candidate to copy for ``version``, or None.

    The newest match is only eligible if it is dated today or yesterday;
    older builds are skipped silently.
    """
    latest = newest_for_version(candidates, version)
    if latest is None:
        log.debug(f"No folders for version {version}")
        return None

    if not is_recent(latest, now):
        log.info(
            f"Latest build for {version} is {latest.name} "
            f"({latest.timestamp:%Y-%m-%d}), older than yesterday -- skipping"
        )
        return None

    log.debug(f"Selected {latest.name} for version {version}")
    return latest
