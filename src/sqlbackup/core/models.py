"""Core domain models for SQL Server backups.

This module defines the data structures shared by the preflight, catalog,
task, orchestration and reporting layers. The models are immutable and
free of pyodbc and CLI concerns so they can be built freely in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class DatabaseInfo:
    """
    One row of the server catalog.

    Attributes:
        name: Database name as reported by the server.
        size_bytes: Allocated size of all data and log files.
        is_system: True for master, model, msdb, tempdb and similar.
        state: Database state description (e.g. ONLINE, OFFLINE, RESTORING).
    """

    name: str
    size_bytes: int = 0
    is_system: bool = False
    state: str = "ONLINE"


@dataclass(frozen=True)
class BackupTarget:
    """
    A database selected for backup in the current run.

    Attributes:
        name: Database name, unique within one run.
        size_bytes: Reported allocated size, used for advisory checks only.
    """

    name: str
    size_bytes: int = 0


class BackupStatus(str, Enum):
    """
    Lifecycle of a backup task.

    Values:
        QUEUED: Submitted to the pool, waiting for a free worker.
        RUNNING: A worker is executing the backup.
        SUCCEEDED: The backup file was written.
        FAILED: The backup raised an error.
    """

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class BackupOutcome:
    """
    Result of exactly one backup task.

    Attributes:
        database: Name of the database that was backed up.
        file_path: Destination file of the backup (may be partial or absent
                   when the backup failed).
        size_bytes: Size of the produced file; 0 for failed backups.
        started_at: When the task started.
        finished_at: When the task reached its terminal state.
        duration_seconds: Elapsed time between start and finish.
        status: SUCCEEDED or FAILED.
        error: Human-readable cause for FAILED outcomes, None otherwise.
    """

    database: str
    file_path: Path
    size_bytes: int
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    status: BackupStatus
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == BackupStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {
            "database": self.database,
            "file_path": str(self.file_path),
            "size_bytes": self.size_bytes,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "status": self.status.value,
            "error": self.error,
        }


@dataclass(frozen=True)
class VolumeUsage:
    """Space figures of the volume holding the destination directory."""

    total_bytes: int
    used_bytes: int
    free_bytes: int

    @property
    def free_ratio(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return self.free_bytes / self.total_bytes


@dataclass(frozen=True)
class PreflightResult:
    """Everything the preflight checks learned about the environment."""

    destination: Path
    volume: VolumeUsage
    login: str
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class CatalogSelection:
    """
    Databases resolved for a run.

    Attributes:
        targets: Databases to back up, in dispatch order.
        missing: Requested names with no matching database.
    """

    targets: tuple[BackupTarget, ...]
    missing: tuple[str, ...] = ()

    @property
    def total_size_bytes(self) -> int:
        return sum(t.size_bytes for t in self.targets)


@dataclass(frozen=True)
class BackupReport:
    """Aggregate view over all outcomes of a run."""

    total: int
    succeeded: int
    failed: int
    total_size_bytes: int
    duration_seconds: float
    failures: tuple[tuple[str, str], ...] = ()

    @property
    def all_failed(self) -> bool:
        return self.total > 0 and self.succeeded == 0
