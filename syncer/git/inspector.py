"""
Repository Inspector — Read-only probes against the destination directory.

Nothing in this module modifies the destination. The recorded origin is
read straight from ``.git/config`` so that existing mirrors keep working
no matter which tool created them.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .runner import GitRunner

logger = logging.getLogger(__name__)

METADATA_DIR = ".git"


@dataclass(frozen=True)
class RepositoryState:
    """Snapshot of the destination, recomputed on every tick."""

    exists: bool
    has_metadata: bool = False
    recorded_origin: Optional[str] = None
    is_valid_clone: bool = False
    is_clean: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_empty(path: Path) -> bool:
    """True if the directory has no entries. A missing directory counts as empty."""
    if not path.exists():
        return True
    return next(path.iterdir(), None) is None


def recorded_origin(path: Path, remote: str = "origin") -> Optional[str]:
    """
    Return the URL recorded for ``remote`` in ``.git/config``.

    Scans for the ``[remote "<remote>"]`` section and returns its first
    ``url`` entry with trailing whitespace removed. Returns None when
    there is no config file, no such section, or no url in it.
    """
    config_path = path / METADATA_DIR / "config"
    if not config_path.is_file():
        return None

    header = f'[remote "{remote}"]'
    in_section = False
    with config_path.open("r", encoding="utf-8", errors="replace") as f:
        for raw in f:
            line = raw.lstrip(" \t")
            if line.startswith("["):
                if in_section:
                    return None
                in_section = line.startswith(header)
                continue
            if not in_section:
                continue
            key, sep, value = line.partition("=")
            if sep and key.strip().lower() == "url":
                return value.strip()

    return None


class RepositoryInspector:
    """Read-only queries against a working tree."""

    def __init__(self, runner: Optional[GitRunner] = None):
        self.runner = runner or GitRunner()

    def is_empty(self, path: Path) -> bool:
        return is_empty(path)

    def recorded_origin(self, path: Path, remote: str = "origin") -> Optional[str]:
        return recorded_origin(path, remote)

    def has_metadata(self, path: Path) -> bool:
        """True if ``.git`` exists and git can resolve HEAD from it."""
        git_dir = path / METADATA_DIR
        if not git_dir.is_dir():
            return False
        # An explicit --git-dir stops git from discovering a parent repository
        result = self.runner.run(
            "--git-dir", str(git_dir), "rev-parse", "--verify", "--quiet", "HEAD",
            check=False,
        )
        return result.returncode == 0

    def is_working_tree_clean(self, path: Path) -> bool:
        """True if there are no new, changed, deleted or staged files."""
        result = self.runner.run("status", "--porcelain", cwd=path)
        return result.stdout.strip() == ""

    def inspect(self, destination: Path, source: str, remote: str = "origin") -> RepositoryState:
        if self.is_empty(destination):
            return RepositoryState(exists=False)

        origin = self.recorded_origin(destination, remote)
        has_metadata = self.has_metadata(destination)
        valid = has_metadata and origin == source

        state = RepositoryState(
            exists=True,
            has_metadata=has_metadata,
            recorded_origin=origin,
            is_valid_clone=valid,
            is_clean=self.is_working_tree_clean(destination) if valid else None,
        )
        logger.debug(f"Inspected {destination}: {state}")
        return state
