"""Application context management for the CLI."""

from dataclasses import dataclass

from sqlbackup.cli.common.exits import die
from sqlbackup.core.adapters.sqlserver import SqlServerAdapter
from sqlbackup.core.connection import ServerEndpoint


@dataclass
class BackupAppContext:
    """Application context holding the server endpoint and its adapter."""

    endpoint: ServerEndpoint
    adapter: SqlServerAdapter

    @property
    def server(self) -> str:
        return self.endpoint.server


def build_backup_context(
    server: str,
    *,
    driver: str | None = None,
    trust_cert: bool | None = None,
) -> BackupAppContext:
    """Build the application context for one SQL Server instance.

    Args:
        server: Server identifier as given on the command line.
        driver: Optional ODBC driver override.
        trust_cert: Optional override for TrustServerCertificate.

    Returns:
        BackupAppContext: Context with the endpoint and a configured adapter.
    """
    try:
        endpoint = ServerEndpoint.from_env(server, driver=driver, trust_cert=trust_cert)
    except ValueError as exc:
        die(str(exc), code=2)
    return BackupAppContext(endpoint=endpoint, adapter=SqlServerAdapter(endpoint))
