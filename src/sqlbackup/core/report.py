"""Aggregation of backup outcomes into a run report."""

from __future__ import annotations

from typing import Iterable

from sqlbackup.core.models import BackupOutcome, BackupReport

_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(size: int) -> str:
    """Render a byte count as a short human-readable string (1024 based)."""
    value = float(max(size, 0))
    for unit in _UNITS[:-1]:
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} {_UNITS[-1]}"


def summarize(outcomes: Iterable[BackupOutcome]) -> BackupReport:
    """
    Summarize a collection of outcomes.

    Only successful outcomes contribute to the total size. The duration is
    the wall-clock span from the earliest start to the latest finish.
    """
    outcomes = list(outcomes)
    succeeded = [o for o in outcomes if o.ok]
    failed = [o for o in outcomes if not o.ok]

    duration = 0.0
    if outcomes:
        start = min(o.started_at for o in outcomes)
        end = max(o.finished_at for o in outcomes)
        duration = max((end - start).total_seconds(), 0.0)

    return BackupReport(
        total=len(outcomes),
        succeeded=len(succeeded),
        failed=len(failed),
        total_size_bytes=sum(o.size_bytes for o in succeeded),
        duration_seconds=duration,
        failures=tuple((o.database, o.error or "unknown error") for o in failed),
    )
