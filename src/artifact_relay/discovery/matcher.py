"""Parse build folder names into candidates and scan remote share directories."""

from __future__ import annotations

import os
import re
from datetime import datetime
from pathlib import Path

from loguru import logger

from ..models import Candidate

log = logger.bind(stage="matcher")

# YYYY_MM_DD_HH_MM(VersionToken)
_VERSIONED_NAME = re.compile(r"^(\d{4}_\d{2}_\d{2}_\d{2}_\d{2})\((.+)\)$")
_TIMESTAMP_FORMAT = "%Y_%m_%d_%H_%M"


def parse_candidate(path: Path) -> Candidate:
    """Parse a directory entry into a Candidate.

    Names that do not match the versioned convention, or whose date segment
    is not a real date, come back with an empty version and the sentinel
    timestamp.
    """
    name = path.name
    match = _VERSIONED_NAME.match(name)
    if not match:
        return Candidate(path=path, name=name)

    try:
        timestamp = datetime.strptime(match.group(1), _TIMESTAMP_FORMAT)
    except ValueError:
        log.debug(f"Unparseable date segment in {name!r}")
        return Candidate(path=path, name=name)

    return Candidate(path=path, name=name, version=match.group(2), timestamp=timestamp)


def scan_directory(directory: Path) -> list[Candidate]:
    """List subdirectories of a share as candidates, unparseable ones included.

    Entries are returned in lexical name order so ties between equal
    timestamps resolve the same way on every filesystem.

    Raises OSError if the directory cannot be read.
    """
    log.debug(f"scan_directory({directory})")
    with os.scandir(directory) as entries:
        names = sorted(e.name for e in entries if e.is_dir())

    candidates = [parse_candidate(directory / name) for name in names]
    unparsed = sum(1 for c in candidates if not c.parsed)
    log.debug(f"Found {len(candidates)} folders in {directory} ({unparsed} unparseable)")
    return candidates


def dated_folder_name(date_format: str, now: datetime) -> str:
    return now.strftime(date_format)


def lookup_dated(directory: Path, date_format: str, now: datetime) -> Candidate | None:
    """Direct existence check for the folder named after ``now``.

    Returns None when today's folder does not exist (not an error). Raises
    FileNotFoundError when the share directory itself is unreachable.
    """
    if not directory.is_dir():
        raise FileNotFoundError(f"Share directory not accessible: {directory}")
    name = dated_folder_name(date_format, now)
    path = directory / name
    log.debug(f"lookup_dated({path})")
    if not path.is_dir():
        return None
    return Candidate(
        path=path,
        name=name,
        timestamp=now.replace(hour=0, minute=0, second=0, microsecond=0),
    )
