from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

from sqlbackup.core.connection import MAX_CONNECT_TIMEOUT, ServerEndpoint, connect
from sqlbackup.core.models import DatabaseInfo

if TYPE_CHECKING:
    import pyodbc

SYSTEM_DATABASES = frozenset({"master", "model", "msdb", "tempdb"})

_PERMISSION_QUERY = """
SELECT
    CAST(IS_SRVROLEMEMBER('sysadmin') AS int) AS is_sysadmin,
    CAST(IS_ROLEMEMBER('db_backupoperator') AS int) AS is_backup_operator,
    CAST(HAS_PERMS_BY_NAME(DB_NAME(), 'DATABASE', 'BACKUP DATABASE') AS int)
        AS has_backup_grant
"""

_DATABASES_QUERY = """
SELECT
    d.name,
    d.database_id,
    d.state_desc,
    CAST(COALESCE(SUM(CAST(mf.size AS bigint)), 0) * 8192 AS bigint) AS size_bytes
FROM sys.databases AS d
LEFT JOIN sys.master_files AS mf ON mf.database_id = d.database_id
GROUP BY d.name, d.database_id, d.state_desc
ORDER BY d.name
"""


def quote_name(name: str) -> str:
    """Quote an identifier the way T-SQL QUOTENAME does."""
    return "[" + name.replace("]", "]]") + "]"


class SqlServerSession:
    """One open connection to the server, used by a single thread."""

    def __init__(self, conn: pyodbc.Connection) -> None:
        self.conn = conn

    def current_login(self) -> str:
        """Return the login name of the ambient identity."""
        row = self.conn.cursor().execute("SELECT SUSER_SNAME()").fetchone()
        return str(row[0]) if row and row[0] else ""

    def has_backup_permission(self) -> bool:
        """
        Return True if the login may issue BACKUP DATABASE.

        Any of sysadmin membership, db_backupoperator membership or an
        explicit BACKUP DATABASE grant is sufficient.
        """
        row = self.conn.cursor().execute(_PERMISSION_QUERY).fetchone()
        if not row:
            return False
        return any(bool(v) for v in row)

    def list_databases(self) -> list[DatabaseInfo]:
        """List every database on the instance with its allocated size."""
        out: list[DatabaseInfo] = []
        for r in self.conn.cursor().execute(_DATABASES_QUERY).fetchall():
            name = str(r.name)
            out.append(
                DatabaseInfo(
                    name=name,
                    size_bytes=int(r.size_bytes or 0),
                    # database_id 1-4 are master, tempdb, model and msdb
                    is_system=int(r.database_id) <= 4 or name in SYSTEM_DATABASES,
                    state=str(r.state_desc or ""),
                )
            )
        return out

    def backup_database(self, name: str, file_path: str) -> None:
        """
        Run a full backup of `name` into `file_path` and wait for it.

        The server reports progress and errors as separate result sets, so
        every result set is drained; pyodbc raises on the first error.
        """
        cursor = self.conn.cursor()
        cursor.execute(
            f"BACKUP DATABASE {quote_name(name)} TO DISK = ? "
            "WITH INIT, CHECKSUM, NAME = ?",
            file_path,
            f"{name} full backup",
        )
        while cursor.nextset():
            pass
        cursor.close()

    def close(self) -> None:
        self.conn.close()


class SqlServerAdapter:
    """Adapter around pyodbc for the administrative operations we need."""

    def __init__(self, endpoint: ServerEndpoint) -> None:
        self.endpoint = endpoint

    @property
    def server(self) -> str:
        return self.endpoint.server

    @contextmanager
    def admin_session(
        self, timeout: int = MAX_CONNECT_TIMEOUT
    ) -> Iterator[SqlServerSession]:
        """
        Open a session on `master` and close it when the block exits.

        Raises:
            ConnectivityError: If the server cannot be reached in time.
        """
        session = SqlServerSession(connect(self.endpoint, timeout=timeout))
        try:
            yield session
        finally:
            session.close()
