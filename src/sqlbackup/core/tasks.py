"""The backup task: one database into one file.

`execute_backup` never raises. Whatever goes wrong while backing up a
database (lost connection, disk full, revoked permission, database dropped
mid-run) is captured into a FAILED BackupOutcome so sibling tasks and the
orchestrator are unaffected.
"""

from __future__ import annotations

import time
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Protocol

from sqlbackup.core.connection import MAX_CONNECT_TIMEOUT
from sqlbackup.core.layout import backup_file_path
from sqlbackup.core.models import BackupOutcome, BackupStatus, BackupTarget


class BackupSession(Protocol):
    def backup_database(self, name: str, file_path: str) -> None:
        ...


class BackupAdapter(Protocol):
    """Interface for running a backup on a dedicated session."""

    def admin_session(
        self, timeout: int = MAX_CONNECT_TIMEOUT
    ) -> AbstractContextManager[BackupSession]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def describe_error(exc: BaseException) -> str:
    """Return a non-empty, human-readable cause for an exception."""
    message = str(exc).strip()
    name = type(exc).__name__
    return f"{name}: {message}" if message else name


def execute_backup(
    adapter: BackupAdapter,
    target: BackupTarget,
    destination_dir: Path,
    timestamp: str,
    *,
    clock: Callable[[], datetime] = _utcnow,
) -> BackupOutcome:
    """
    Back up `target` into `destination_dir` and describe what happened.

    A fresh session is opened for this task only and closed afterwards.
    There is no retry: the first failure is final.

    Args:
        adapter: Server adapter used to open the task's own session.
        target: Database to back up.
        destination_dir: Run directory receiving the backup file.
        timestamp: Run timestamp used in the file name.
        clock: Source of wall-clock timestamps.

    Returns:
        A SUCCEEDED outcome with the file size, or a FAILED outcome with a
        cause string and size 0.
    """
    file_path = backup_file_path(destination_dir, target.name, timestamp)
    started_at = clock()
    t0 = time.monotonic()

    try:
        with adapter.admin_session() as session:
            session.backup_database(target.name, str(file_path))
        size = file_path.stat().st_size
    except Exception as exc:  # noqa: BLE001 - one database must not break the run
        return BackupOutcome(
            database=target.name,
            file_path=file_path,
            size_bytes=0,
            started_at=started_at,
            finished_at=clock(),
            duration_seconds=time.monotonic() - t0,
            status=BackupStatus.FAILED,
            error=describe_error(exc),
        )

    return BackupOutcome(
        database=target.name,
        file_path=file_path,
        size_bytes=size,
        started_at=started_at,
        finished_at=clock(),
        duration_seconds=time.monotonic() - t0,
        status=BackupStatus.SUCCEEDED,
    )
