"""Fatal error types raised by the backup pipeline.

Every error here aborts a run before any backup is attempted. Failures of a
single database backup are never raised; they are recorded as FAILED
outcomes instead (see sqlbackup.core.tasks).
"""


class BackupOpsError(RuntimeError):
    """Base class for fatal, run-aborting errors."""

    component = "backup"


class PathError(BackupOpsError):
    """Raised when the destination path cannot be created or used."""

    component = "preflight"


class ConnectivityError(BackupOpsError):
    """Raised when the SQL Server instance cannot be reached."""

    component = "preflight"


class InsufficientPermissionError(BackupOpsError):
    """Raised when the current login is not allowed to run backups."""

    component = "preflight"


class EmptyCatalogError(BackupOpsError):
    """Raised when no database resolves to a backup target."""

    component = "catalog"


class PoolUnavailableError(BackupOpsError):
    """Raised when the worker pool cannot be started."""

    component = "orchestrator"
