from __future__ import annotations

import os
import sys
import threading
import time
from contextlib import contextmanager
from pathlib import Path

import pytest

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

# Wide console so rich does not wrap log lines in CLI output assertions.
os.environ.setdefault("COLUMNS", "200")

from sqlbackup.core.errors import ConnectivityError  # noqa: E402
from sqlbackup.core.models import DatabaseInfo  # noqa: E402


class FakeSession:
    def __init__(self, server: FakeServer) -> None:
        self.server = server

    def current_login(self) -> str:
        return self.server.login

    def has_backup_permission(self) -> bool:
        return self.server.can_backup

    def list_databases(self) -> list[DatabaseInfo]:
        return list(self.server.databases)

    def backup_database(self, name: str, file_path: str) -> None:
        with self.server.lock:
            self.server.backups.append(name)
        if self.server.delay:
            time.sleep(self.server.delay)
        if name in self.server.fail:
            raise RuntimeError(self.server.fail[name])
        Path(file_path).write_bytes(b"x" * self.server.file_size)


class FakeServer:
    """In-memory stand-in for SqlServerAdapter."""

    def __init__(
        self,
        databases=(),
        *,
        login: str = "CORP\\svc_backup",
        can_backup: bool = True,
        reachable: bool = True,
        fail: dict[str, str] | None = None,
        delay: float = 0.0,
        file_size: int = 2048,
    ) -> None:
        self.server = "fake-sql"
        self.databases = [
            db if isinstance(db, DatabaseInfo) else DatabaseInfo(name=db, size_bytes=1024)
            for db in databases
        ]
        self.login = login
        self.can_backup = can_backup
        self.reachable = reachable
        self.fail = fail or {}
        self.delay = delay
        self.file_size = file_size
        self.lock = threading.Lock()
        self.backups: list[str] = []
        self.opened = 0
        self.closed = 0

    @contextmanager
    def admin_session(self, timeout: int = 5):
        if not self.reachable:
            raise ConnectivityError(f"Cannot connect to SQL Server '{self.server}'")
        with self.lock:
            self.opened += 1
        try:
            yield FakeSession(self)
        finally:
            with self.lock:
                self.closed += 1


@pytest.fixture
def fake_server():
    return FakeServer
