"""Progress reporting for running backups.

Two observers plug into the orchestrator:
  - LiveBackupProgress: rich Live display with an overall bar and one
    spinner row per database (interactive terminals)
  - LogBackupProgress: timestamped log lines plus periodic "still running"
    heartbeats (CI, redirected output)

Observer callbacks run on worker threads; rich Progress serializes its own
updates.
"""

from __future__ import annotations

from rich.console import Group
from rich.live import Live
from rich.markup import escape
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from sqlbackup.cli.common.output import console, out
from sqlbackup.core.models import BackupOutcome, BackupStatus, BackupTarget
from sqlbackup.core.orchestrator import PoolSnapshot
from sqlbackup.core.report import format_bytes

_MAX_DB_NAME_WIDTH = 48


def _truncate(text: str, max_len: int) -> str:
    """Return text capped at max_len characters using an ASCII ellipsis."""
    if max_len <= 3 or len(text) <= max_len:
        return text[:max_len]
    return f"{text[: max_len - 3]}..."


def _display_db_label(target: BackupTarget, *, name_width: int) -> str:
    """Render `<name>  (<size>)` with the size column aligned."""
    short_name = _truncate(target.name, _MAX_DB_NAME_WIDTH)
    return f"{short_name.ljust(name_width)}  ({format_bytes(target.size_bytes)})"


def _style_for(status: BackupStatus) -> str:
    if status == BackupStatus.SUCCEEDED:
        return "green"
    if status == BackupStatus.FAILED:
        return "red"
    if status == BackupStatus.RUNNING:
        return "yellow"
    return "dim"


class LiveBackupProgress:
    """Rich Live observer; use as a context manager around the run."""

    def __init__(self, targets: list[BackupTarget]) -> None:
        self._failures = 0
        name_width = max(
            (len(_truncate(t.name, _MAX_DB_NAME_WIDTH)) for t in targets), default=0
        )

        self.overall = Progress(
            TextColumn("[bold]Overall[/]"),
            BarColumn(),
            TaskProgressColumn(),
            TextColumn("failures=[bold red]{task.fields[failures]}[/]"),
            TimeElapsedColumn(),
            console=console,
        )
        self.per_db = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.fields[label]}[/]"),
            TextColumn(
                "status=[{task.fields[style]}]{task.fields[status]}[/{task.fields[style]}]"
            ),
            TimeElapsedColumn(),
            console=console,
        )
        self._overall_id = self.overall.add_task(
            "overall", total=max(len(targets), 1), failures=0
        )
        self._task_ids: dict[str, TaskID] = {}
        for t in targets:
            # start=False keeps the elapsed timer frozen while queued
            self._task_ids[t.name] = self.per_db.add_task(
                "",
                total=1,
                start=False,
                label=escape(_display_db_label(t, name_width=name_width)),
                status=BackupStatus.QUEUED.value,
                style=_style_for(BackupStatus.QUEUED),
            )
        self._live = Live(
            Group(self.overall, self.per_db),
            console=console,
            refresh_per_second=10,
            transient=True,
        )

    def __enter__(self) -> LiveBackupProgress:
        self._live.__enter__()
        return self

    def __exit__(self, *exc_info) -> None:
        self._live.__exit__(*exc_info)

    def on_start(self, target: BackupTarget) -> None:
        task_id = self._task_ids[target.name]
        self.per_db.start_task(task_id)
        self.per_db.update(
            task_id,
            status=BackupStatus.RUNNING.value,
            style=_style_for(BackupStatus.RUNNING),
        )

    def on_finish(self, outcome: BackupOutcome) -> None:
        if not outcome.ok:
            self._failures += 1
            self.overall.update(self._overall_id, failures=self._failures)
        done_label = "DONE" if outcome.ok else outcome.status.value
        self.per_db.update(
            self._task_ids[outcome.database],
            status=done_label,
            style=_style_for(outcome.status),
            completed=1,
        )
        self.overall.advance(self._overall_id, 1)

    def on_heartbeat(self, snapshot: PoolSnapshot) -> None:
        # the live display already shows what is running
        return None


class LogBackupProgress:
    """Observer that writes timestamped log lines."""

    def on_start(self, target: BackupTarget) -> None:
        out.info(f"Backing up {escape(target.name)}...")

    def on_finish(self, outcome: BackupOutcome) -> None:
        if outcome.ok:
            out.success(
                f"{escape(outcome.database)} backed up "
                f"({format_bytes(outcome.size_bytes)}, {outcome.duration_seconds:.1f}s)"
            )
        else:
            out.error(
                f"{escape(outcome.database)} failed: {escape(outcome.error or '')}"
            )

    def on_heartbeat(self, snapshot: PoolSnapshot) -> None:
        running = ", ".join(escape(name) for name in snapshot.running) or "-"
        out.info(
            f"Progress {snapshot.completed}/{snapshot.total} "
            f"(queued={snapshot.queued}, failed={snapshot.failed}); "
            f"still running: {running}"
        )
