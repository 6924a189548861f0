"""Output formatting utilities for the CLI.

Every message line is timestamped and tagged with its severity
(INFO, WARNING, ERROR, SUCCESS). The plain text of those lines is kept in a
transcript so it can be written to a log file at the end of a run.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping

import questionary
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from sqlbackup.cli.common.tui_style import (
    QUESTIONARY_STYLE_CONFIRM,
    QUESTIONARY_STYLE_SELECT,
)
from sqlbackup.core.models import BackupOutcome, BackupReport, BackupTarget, DatabaseInfo
from sqlbackup.core.report import format_bytes

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

_LEVEL_STYLES = {
    "INFO": "title",
    "WARNING": "warn",
    "ERROR": "err",
    "SUCCESS": "ok",
}

console = Console(theme=_THEME)


def _format_duration(seconds: float) -> str:
    """Render seconds as `1h 02m 03s`, `2m 05s` or `4.2s`."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    return f"{minutes}m {secs:02d}s"


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    transcript: list[str] = field(default_factory=list)

    def _q(self, message: str) -> str:
        """Prefix Questionary prompts to be SQLBACKUP consistent."""
        return f"[SQLBACKUP] {message}"

    def log(self, level: str, msg: str) -> None:
        """Print one timestamped, severity-tagged line."""
        ts = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        style = _LEVEL_STYLES.get(level, "meta")
        console.print(f"[meta]{ts}[/] [{style}]\\[{level}][/] {msg}")
        self.transcript.append(f"{ts} [{level}] {Text.from_markup(msg).plain}")

    def info(self, msg: str) -> None:
        """Print an info message."""
        self.log("INFO", msg)

    def success(self, msg: str) -> None:
        """Print a success message."""
        self.log("SUCCESS", msg)

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        self.log("WARNING", msg)

    def error(self, msg: str) -> None:
        """Print an error message."""
        self.log("ERROR", msg)

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def header(self, title: str) -> None:
        """Print a header message."""
        console.print(f"[title]{title}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs; values are shown literally, never as markup."""
        for k, v in items.items():
            console.print(f"[meta]{escape(str(k))}[/]: {escape(str(v))}")
            self.transcript.append(f"{k}: {v}")

    @contextmanager
    def to_stderr(self, enabled: bool = True):
        """Send human-readable output to stderr so stdout carries only data."""
        previous = console.stderr
        console.stderr = previous or enabled
        try:
            yield
        finally:
            console.stderr = previous

    def save_log(self, path: Path) -> None:
        """Write the transcript of logged lines to `path`."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(self.transcript) + "\n", encoding="utf-8")

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """Ask the user for confirmation using a standardized Questionary prompt."""
        console.print("[meta]Use y/n then Enter[/]")
        prompt = questionary.confirm(
            self._q(message),
            default=default,
            style=QUESTIONARY_STYLE_CONFIRM,
            qmark="✦",
            auto_enter=False,
        )
        return bool(prompt.ask())

    def select_many(self, message: str, choices: list[questionary.Choice]) -> list:
        """Prompt the user to select multiple items; returns the chosen values."""
        if not choices:
            return []
        picked = questionary.checkbox(
            self._q(message),
            choices=choices,
            style=QUESTIONARY_STYLE_SELECT,
            qmark="✦",
            instruction="Use ↑/↓, space, a (all), i (invert), enter",
        ).ask()
        return list(picked or [])

    def databases_table(
        self, databases: Iterable[DatabaseInfo], title: str = "Databases"
    ) -> None:
        """Render catalog rows (name, size, state, system flag)."""
        t = Table(title=title, show_lines=False)
        t.add_column("Database", style="ok")
        t.add_column("Size", justify="right")
        t.add_column("State", style="meta")
        t.add_column("System", style="meta")

        for db in databases:
            t.add_row(
                escape(db.name),
                format_bytes(db.size_bytes),
                escape(db.state),
                "yes" if db.is_system else "no",
            )

        console.print(t)

    def targets_table(
        self, targets: Iterable[BackupTarget], title: str = "Targets"
    ) -> None:
        """Render the databases selected for backup, in dispatch order."""
        t = Table(title=title, show_lines=False)
        t.add_column("#", style="meta", justify="right")
        t.add_column("Database", style="ok")
        t.add_column("Reported size", justify="right")

        for i, target in enumerate(targets, start=1):
            t.add_row(str(i), escape(target.name), format_bytes(target.size_bytes))

        console.print(t)

    def outcomes_table(
        self, outcomes: Iterable[BackupOutcome], title: str = "Backup results"
    ) -> None:
        """Render one row per outcome with status, size, duration and cause."""
        t = Table(title=title, show_lines=False)
        t.add_column("Database", style="ok")
        t.add_column("Status")
        t.add_column("Size", justify="right")
        t.add_column("Duration", justify="right")
        t.add_column("File / error")

        for o in outcomes:
            style = "ok" if o.ok else "err"
            detail = str(o.file_path) if o.ok else (o.error or "")
            t.add_row(
                escape(o.database),
                f"[{style}]{o.status.value}[/{style}]",
                format_bytes(o.size_bytes),
                _format_duration(o.duration_seconds),
                escape(detail),
            )

        console.print(t)

    def report(self, report: BackupReport) -> None:
        """Print the aggregate summary of a run."""
        self.header("Summary")
        self.kv(
            {
                "Databases": report.total,
                "Succeeded": report.succeeded,
                "Failed": report.failed,
                "Total size": format_bytes(report.total_size_bytes),
                "Elapsed": _format_duration(report.duration_seconds),
            }
        )
        for database, cause in report.failures:
            self.error(f"{escape(database)}: {escape(cause)}")


out = Out()
