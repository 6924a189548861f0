"""Connection helpers for SQL Server.

This module centralizes construction of ODBC connection strings and applies
small normalization rules to the server identifier so callers can pass what
they would type into SSMS (e.g. `tcp:host,1433`, `HOST\\INSTANCE`, `host/`).
Authentication always uses the ambient Windows identity.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlbackup.core.errors import ConnectivityError

if TYPE_CHECKING:
    import pyodbc

DEFAULT_DRIVER = "ODBC Driver 17 for SQL Server"
MAX_CONNECT_TIMEOUT = 5

_DRIVER_ENV = "SQLBACKUP_ODBC_DRIVER"
_TRUST_CERT_ENV = "SQLBACKUP_TRUST_CERT"


def _env_flag(name: str, default: bool) -> bool:
    """Read a yes/no flag from the environment."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _sanitize_server(server: str) -> str:
    """
    Normalize a SQL Server server identifier.

    - Strips surrounding whitespace
    - Removes trailing slashes and backslashes

    Raises:
        ValueError: If nothing is left after normalization.
    """
    server = (server or "").strip().rstrip("/\\")
    if not server:
        raise ValueError("Server name must not be empty.")
    return server


def clamp_timeout(timeout: int) -> int:
    """Clamp a connect timeout to 1..MAX_CONNECT_TIMEOUT seconds."""
    return max(1, min(int(timeout), MAX_CONNECT_TIMEOUT))


@dataclass(frozen=True)
class ServerEndpoint:
    """
    Connection parameters for one SQL Server instance.

    Attributes:
        server: Server identifier (host, host\\instance, tcp:host,port).
        driver: ODBC driver name.
        trust_cert: Accept self-signed server certificates.
    """

    server: str
    driver: str = DEFAULT_DRIVER
    trust_cert: bool = True

    @classmethod
    def from_env(
        cls,
        server: str,
        driver: str | None = None,
        trust_cert: bool | None = None,
    ) -> ServerEndpoint:
        """Build an endpoint, filling unset values from the environment."""
        return cls(
            server=_sanitize_server(server),
            driver=driver or os.getenv(_DRIVER_ENV) or DEFAULT_DRIVER,
            trust_cert=(
                _env_flag(_TRUST_CERT_ENV, True) if trust_cert is None else trust_cert
            ),
        )

    def connection_string(self, database: str = "master") -> str:
        """Return the ODBC connection string for the given database."""
        parts = [
            f"DRIVER={{{self.driver}}}",
            f"SERVER={self.server}",
            f"DATABASE={database}",
            "Trusted_Connection=yes",
            "Application Name=sqlbackup",
        ]
        if self.trust_cert:
            parts.append("TrustServerCertificate=yes")
        return ";".join(parts) + ";"


def connect(
    endpoint: ServerEndpoint,
    *,
    database: str = "master",
    timeout: int = MAX_CONNECT_TIMEOUT,
) -> pyodbc.Connection:
    """
    Open an autocommit connection to the server.

    Autocommit is required because BACKUP DATABASE cannot run inside a
    user transaction. The login timeout is clamped to at most five seconds;
    statements themselves have no timeout.

    Raises:
        ConnectivityError: If the connection cannot be established.
    """
    # deferred: importing pyodbc needs the system ODBC driver manager
    import pyodbc

    try:
        conn = pyodbc.connect(
            endpoint.connection_string(database),
            autocommit=True,
            timeout=clamp_timeout(timeout),
        )
    except pyodbc.Error as exc:
        raise ConnectivityError(
            f"Cannot connect to SQL Server '{endpoint.server}': {exc}"
        ) from exc
    conn.timeout = 0
    return conn
