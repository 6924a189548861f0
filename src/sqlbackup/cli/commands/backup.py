"""Commands for backing up SQL Server databases."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.markup import escape

from sqlbackup.cli.common.context import BackupAppContext, build_backup_context
from sqlbackup.cli.common.exits import exit_from_fatal, ok_exit, warn_exit
from sqlbackup.cli.common.options import (
    AllOpt,
    ConfirmOpt,
    DatabaseOpt,
    DriverOpt,
    DryRunOpt,
    JsonOpt,
    LogFileOpt,
    ParallelOpt,
    PathOpt,
    SelectOpt,
    ServerOpt,
    StrictOpt,
    TimeoutOpt,
    TrustCertOpt,
)
from sqlbackup.cli.common.output import console, out
from sqlbackup.cli.common.progress import LiveBackupProgress, LogBackupProgress
from sqlbackup.cli.tui import select_targets
from sqlbackup.core import preflight
from sqlbackup.core.catalog import enumerate_targets, is_user_database, list_databases
from sqlbackup.core.errors import BackupOpsError
from sqlbackup.core.layout import create_run_directory, run_timestamp
from sqlbackup.core.models import BackupOutcome, PreflightResult
from sqlbackup.core.orchestrator import run_backups
from sqlbackup.core.report import format_bytes, summarize


def _preflight_or_exit(
    appctx: BackupAppContext, path: Path, timeout: int
) -> PreflightResult:
    try:
        with out.status("Running preflight checks..."):
            result = preflight.check(path, appctx.adapter, timeout=timeout)
    except BackupOpsError as exc:
        exit_from_fatal(exc)

    volume = result.volume
    out.kv(
        {
            "Server": appctx.server,
            "Login": result.login or "unknown",
            "Destination": result.destination,
            "Volume": (
                f"{format_bytes(volume.free_bytes)} free of "
                f"{format_bytes(volume.total_bytes)} "
                f"({format_bytes(volume.used_bytes)} used)"
            ),
        }
    )
    return result


def _backup(
    *,
    server: str,
    path: Path,
    database: list[str],
    parallel: int,
    driver: str,
    trust_cert: bool,
    timeout: int,
    select: bool,
    confirm: bool,
    dry_run: bool,
    strict: bool,
    as_json: bool,
) -> list[BackupOutcome]:
    appctx = build_backup_context(server, driver=driver, trust_cert=trust_cert)

    out.header(f"SQL Server backup: {escape(appctx.server)}")
    pre = _preflight_or_exit(appctx, path, timeout)
    out.success("Preflight checks passed")

    try:
        with out.status("Enumerating databases..."):
            selection = enumerate_targets(
                appctx.adapter, database or None, timeout=timeout
            )
    except BackupOpsError as exc:
        exit_from_fatal(exc)

    for name in selection.missing:
        out.warn(f"Database '{escape(name)}' not found on {escape(appctx.server)}; skipping")
    for warning in preflight.space_warnings(pre.volume, selection.total_size_bytes):
        out.warn(warning)

    targets = list(selection.targets)
    if select:
        targets = select_targets(targets)
        if not targets:
            warn_exit("No databases selected", code=0)

    out.targets_table(targets, title="Databases to back up")
    out.info(
        f"{len(targets)} database(s), estimated "
        f"{format_bytes(sum(t.size_bytes for t in targets))}, parallel={parallel}"
    )

    if dry_run:
        warn_exit("Dry-run enabled: no backups were started", code=0)

    if confirm and not out.confirm("Start the backups?"):
        ok_exit("Cancelled")

    timestamp = run_timestamp()
    try:
        run_dir = create_run_directory(pre.destination, timestamp)
        out.info(f"Writing backups to {escape(str(run_dir))}")
        if console.is_terminal:
            with LiveBackupProgress(targets) as progress:
                outcomes = run_backups(
                    appctx.adapter,
                    targets,
                    run_dir,
                    timestamp,
                    parallel,
                    observer=progress,
                )
            for o in outcomes:
                if o.ok:
                    out.success(f"{escape(o.database)} backed up to {escape(str(o.file_path))}")
                else:
                    out.error(f"{escape(o.database)} failed: {escape(o.error or '')}")
        else:
            outcomes = run_backups(
                appctx.adapter,
                targets,
                run_dir,
                timestamp,
                parallel,
                observer=LogBackupProgress(),
            )
    except BackupOpsError as exc:
        exit_from_fatal(exc)

    out.outcomes_table(outcomes)
    report = summarize(outcomes)
    out.report(report)

    if report.all_failed:
        out.error(f"All {report.total} backup(s) failed")
    elif report.failed:
        out.warn(f"{report.failed} of {report.total} backup(s) failed")
    else:
        out.success(f"All {report.total} backup(s) completed")

    if as_json:
        typer.echo(json.dumps([o.to_dict() for o in outcomes], indent=2))

    if strict and report.failed:
        raise typer.Exit(1)

    return outcomes


def run(
    server: str = ServerOpt,
    path: Path = PathOpt,
    database: list[str] = DatabaseOpt,
    parallel: int = ParallelOpt,
    driver: str = DriverOpt,
    trust_cert: bool = TrustCertOpt,
    timeout: int = TimeoutOpt,
    select: bool = SelectOpt,
    confirm: bool = ConfirmOpt,
    dry_run: bool = DryRunOpt,
    strict: bool = StrictOpt,
    as_json: bool = JsonOpt,
    log_file: Path | None = LogFileOpt,
) -> list[BackupOutcome]:
    """
    Back up databases: preflight, enumerate, run in parallel, summarize.

    With --json, stdout carries only the outcome list and every log line,
    table and progress display goes to stderr.
    """
    try:
        with out.to_stderr(as_json):
            return _backup(
                server=server,
                path=path,
                database=database,
                parallel=parallel,
                driver=driver,
                trust_cert=trust_cert,
                timeout=timeout,
                select=select,
                confirm=confirm,
                dry_run=dry_run,
                strict=strict,
                as_json=as_json,
            )
    finally:
        if log_file:
            out.save_log(log_file)


def check(
    server: str = ServerOpt,
    path: Path = PathOpt,
    driver: str = DriverOpt,
    trust_cert: bool = TrustCertOpt,
    timeout: int = TimeoutOpt,
):
    """
    Run the preflight checks only (destination, space, connectivity, permission).
    """
    appctx = build_backup_context(server, driver=driver, trust_cert=trust_cert)
    result = _preflight_or_exit(appctx, path, timeout)
    for warning in result.warnings:
        out.warn(warning)
    out.success("Preflight checks passed")


def list_(
    server: str = ServerOpt,
    include_all: bool = AllOpt,
    driver: str = DriverOpt,
    trust_cert: bool = TrustCertOpt,
    timeout: int = TimeoutOpt,
):
    """
    List the databases on the server (user databases unless --all).
    """
    appctx = build_backup_context(server, driver=driver, trust_cert=trust_cert)
    try:
        with out.status("Loading databases..."):
            databases = list_databases(appctx.adapter, timeout=timeout)
    except BackupOpsError as exc:
        exit_from_fatal(exc)

    if not include_all:
        databases = [db for db in databases if is_user_database(db)]

    if not databases:
        warn_exit("No databases found", code=0)

    out.header("Databases")
    out.info(f"Server: {escape(appctx.server)} | Databases: {len(databases)}")
    out.databases_table(databases)
