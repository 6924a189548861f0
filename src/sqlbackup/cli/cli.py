"""CLI application for SQL Server backups."""

import typer

from sqlbackup.cli.commands import backup

app = typer.Typer(
    help="sqlbackup - parallel full backups of SQL Server databases",
    no_args_is_help=True,
)

app.command("run", help="Back up databases in parallel.")(backup.run)
app.command("check", help="Run preflight checks only.")(backup.check)
app.command("list", help="List databases on the server.")(backup.list_)


if __name__ == "__main__":
    app()
