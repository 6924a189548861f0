"""Common CLI options for the CLI."""

import typer

from sqlbackup.core.connection import DEFAULT_DRIVER, MAX_CONNECT_TIMEOUT
from sqlbackup.core.orchestrator import DEFAULT_MAX_PARALLEL

ServerOpt = typer.Option(
    ...,
    "--server",
    "-S",
    envvar="SQLBACKUP_SERVER",
    help="SQL Server instance (host, host\\instance or tcp:host,port)",
)

PathOpt = typer.Option(
    ...,
    "--path",
    "-d",
    envvar="SQLBACKUP_PATH",
    help="Backup root directory; each run creates a timestamped subdirectory",
    file_okay=False,
    resolve_path=False,
)

DatabaseOpt = typer.Option(
    [],
    "--database",
    "-D",
    help="Database to back up. This is reusable. Defaults to all user databases.",
    show_default=False,
)

ParallelOpt = typer.Option(
    DEFAULT_MAX_PARALLEL,
    "--parallel",
    "-n",
    min=1,
    envvar="SQLBACKUP_PARALLEL",
    help="Number of backups to run in parallel",
)

DriverOpt = typer.Option(
    DEFAULT_DRIVER,
    "--driver",
    envvar="SQLBACKUP_ODBC_DRIVER",
    help="ODBC driver name",
)

TrustCertOpt = typer.Option(
    True,
    "--trust-cert/--no-trust-cert",
    envvar="SQLBACKUP_TRUST_CERT",
    help="Trust the server certificate (TrustServerCertificate=yes)",
)

TimeoutOpt = typer.Option(
    MAX_CONNECT_TIMEOUT,
    "--timeout",
    min=1,
    max=MAX_CONNECT_TIMEOUT,
    help="Connect timeout in seconds",
)

SelectOpt = typer.Option(
    False,
    "--select",
    help="Pick the databases to back up interactively",
)

ConfirmOpt = typer.Option(
    False,
    "--confirm/--no-confirm",
    help="Ask for confirmation before starting backups",
)

DryRunOpt = typer.Option(
    False,
    "--dry-run",
    help="Show which databases would be backed up, but don't back up anything",
)

StrictOpt = typer.Option(
    False,
    "--strict",
    help="Exit with code 1 when any database backup failed",
)

JsonOpt = typer.Option(
    False,
    "--json",
    help="Print the backup outcomes as JSON when done",
)

LogFileOpt = typer.Option(
    None,
    "--log-file",
    help="Write the timestamped log lines to this file",
    dir_okay=False,
)

AllOpt = typer.Option(
    False,
    "--all",
    "-a",
    help="Include system and offline databases",
)
