"""Destination layout of a backup run.

    <root>/<yyyyMMdd_HHmmss>/<database>_<yyyyMMdd_HHmmss>.bak
"""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path

from sqlbackup.core.errors import PathError

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
BACKUP_EXTENSION = "bak"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def run_timestamp(now: datetime | None = None) -> str:
    """Return the run timestamp used for the run directory and file names."""
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def safe_file_stem(database: str) -> str:
    """Replace characters that are not safe in file names with `_`."""
    stem = _UNSAFE_CHARS.sub("_", database).strip(".")
    return stem or "_"


def backup_file_path(destination_dir: Path, database: str, timestamp: str) -> Path:
    """Return the deterministic backup file path for one database."""
    return (
        Path(destination_dir)
        / f"{safe_file_stem(database)}_{timestamp}.{BACKUP_EXTENSION}"
    )


def create_run_directory(root: Path, timestamp: str) -> Path:
    """
    Create `<root>/<timestamp>` and return it.

    Raises:
        PathError: If the directory cannot be created.
    """
    run_dir = Path(root) / timestamp
    try:
        run_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise PathError(f"Cannot create run directory '{run_dir}': {exc}") from exc
    return run_dir
