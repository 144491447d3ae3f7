"""File selection for transfers -- extension and substring filters, tree walks."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from ..config import RelayConfig

log = logger.bind(stage="filters")


def _normalize_extension(ext: str) -> str:
    return ext.strip().lstrip(".").lower()


@dataclass(frozen=True)
class FilterRules:
    """Conjunctive file filters; an empty rule list matches everything.

    Extensions are case-insensitive suffixes accepted as "ext" or ".ext" and
    may span segments ("tar.gz"). Includes are plain substrings of the file
    name.
    """

    extensions: tuple[str, ...] = ()
    includes: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config: RelayConfig) -> FilterRules:
        return cls(
            extensions=tuple(config.file_extensions),
            includes=tuple(config.filename_includes),
        )

    @property
    def suffixes(self) -> tuple[str, ...]:
        normalized = (_normalize_extension(e) for e in self.extensions)
        return tuple(f".{e}" for e in normalized if e)

    @property
    def substrings(self) -> tuple[str, ...]:
        return tuple(s for s in self.includes if s)

    def matches_extension(self, filename: str) -> bool:
        suffixes = self.suffixes
        if not suffixes:
            return True
        lowered = filename.lower()
        return any(lowered.endswith(s) for s in suffixes)

    def matches_include(self, filename: str) -> bool:
        substrings = self.substrings
        if not substrings:
            return True
        return any(s in filename for s in substrings)

    def matches(self, filename: str) -> bool:
        return self.matches_extension(filename) and self.matches_include(filename)


def walk_files(root: Path) -> list[Path]:
    """All regular files under root as relative paths, in sorted order.

    Iterative walk with an explicit pending-directory stack. Symlinked
    directories are not followed.

    Raises OSError if root or any subdirectory cannot be listed.
    """
    files: list[Path] = []
    pending: list[Path] = [Path()]
    while pending:
        rel_dir = pending.pop()
        subdirs: list[Path] = []
        with os.scandir(root / rel_dir) as entries:
            for entry in entries:
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(rel_dir / entry.name)
                elif entry.is_file(follow_symlinks=False):
                    files.append(rel_dir / entry.name)
        # Reverse so the stack pops subdirectories in name order
        pending.extend(sorted(subdirs, reverse=True))
    return sorted(files)


def collect_files(root: Path, rules: FilterRules) -> list[Path]:
    """Relative paths of files under root that pass the filter rules."""
    all_files = walk_files(root)
    selected = [f for f in all_files if rules.matches(f.name)]
    log.debug(
        f"collect_files({root}): {len(selected)}/{len(all_files)} files pass filters "
        f"(extensions={list(rules.extensions)}, includes={list(rules.includes)})"
    )
    return selected
