"""Resolution of the databases to back up.

Requested names are matched against the server catalog case-insensitively,
which mirrors SQL Server's default collation for database names. Names that
do not exist are reported back rather than raised; only an empty result
aborts the run.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Iterable, Protocol

from sqlbackup.core.adapters.sqlserver import SYSTEM_DATABASES
from sqlbackup.core.connection import MAX_CONNECT_TIMEOUT
from sqlbackup.core.errors import EmptyCatalogError
from sqlbackup.core.models import BackupTarget, CatalogSelection, DatabaseInfo

ONLINE = "ONLINE"


class CatalogSession(Protocol):
    def list_databases(self) -> list[DatabaseInfo]:
        ...


class CatalogAdapter(Protocol):
    """Interface for reading the server catalog."""

    def admin_session(
        self, timeout: int = MAX_CONNECT_TIMEOUT
    ) -> AbstractContextManager[CatalogSession]:
        ...


def is_user_database(db: DatabaseInfo) -> bool:
    """Return True for databases that belong in the "all user databases" set."""
    return not db.is_system and db.name.lower() not in SYSTEM_DATABASES


def select_targets(
    databases: Iterable[DatabaseInfo],
    requested: Iterable[str] | None = None,
) -> CatalogSelection:
    """
    Resolve backup targets from catalog rows.

    With `requested`, targets follow the requested order (duplicates
    collapse) and unmatched names end up in `missing`. Without it, every
    online user database is selected in catalog order.

    Raises:
        EmptyCatalogError: If no target resolves.
    """
    databases = list(databases)

    if requested is None:
        targets = [
            BackupTarget(name=db.name, size_bytes=db.size_bytes)
            for db in databases
            if is_user_database(db) and db.state.upper() == ONLINE
        ]
        missing: list[str] = []
    else:
        by_name = {db.name.lower(): db for db in databases}
        targets = []
        missing = []
        seen: set[str] = set()
        for raw in requested:
            name = raw.strip()
            key = name.lower()
            if not name or key in seen:
                continue
            seen.add(key)
            db = by_name.get(key)
            if db is None:
                missing.append(name)
                continue
            targets.append(BackupTarget(name=db.name, size_bytes=db.size_bytes))

    if not targets:
        if missing:
            raise EmptyCatalogError(
                "None of the requested databases exist: " + ", ".join(missing)
            )
        raise EmptyCatalogError("No user databases found to back up.")

    return CatalogSelection(targets=tuple(targets), missing=tuple(missing))


def list_databases(
    adapter: CatalogAdapter, *, timeout: int = MAX_CONNECT_TIMEOUT
) -> list[DatabaseInfo]:
    """Return every database on the server."""
    with adapter.admin_session(timeout=timeout) as session:
        return session.list_databases()


def enumerate_targets(
    adapter: CatalogAdapter,
    requested: Iterable[str] | None = None,
    *,
    timeout: int = MAX_CONNECT_TIMEOUT,
) -> CatalogSelection:
    """
    Enumerate the databases to back up on the server behind `adapter`.

    Args:
        adapter: Server adapter used to read the catalog.
        requested: Explicit database names, or None for all user databases.
        timeout: Connect timeout in seconds.

    Returns:
        The resolved targets and the requested names that were not found.

    Raises:
        ConnectivityError: If the server cannot be reached.
        EmptyCatalogError: If no target resolves.
    """
    return select_targets(list_databases(adapter, timeout=timeout), requested)
