"""Terminal UI utilities for SQL Server backups."""

from __future__ import annotations

import questionary

from sqlbackup.cli.common.output import out
from sqlbackup.core.models import BackupTarget
from sqlbackup.core.report import format_bytes

_MAX_DB_NAME_WIDTH = 96


def _truncate(text: str, max_len: int) -> str:
    """Return text capped at max_len characters using an ASCII ellipsis."""
    if max_len <= 3 or len(text) <= max_len:
        return text[:max_len]
    return f"{text[: max_len - 3]}..."


def _target_choice_title(target: BackupTarget, *, name_width: int) -> str:
    """Format one database choice as `<name>  (<size>)` with aligned sizes."""
    short_name = _truncate(target.name, _MAX_DB_NAME_WIDTH)
    return f"{short_name.ljust(name_width)}  ({format_bytes(target.size_bytes)})"


def select_targets(targets: list[BackupTarget]) -> list[BackupTarget]:
    """Display a checkbox prompt to pick databases, all pre-selected.

    Args:
        targets: Resolved backup targets in dispatch order.

    Returns:
        The selected targets in their original order, or an empty list.
    """
    shown_names = [_truncate(t.name, _MAX_DB_NAME_WIDTH) for t in targets]
    name_width = max((len(name) for name in shown_names), default=0)

    choices = [
        questionary.Choice(
            title=_target_choice_title(t, name_width=name_width),
            value=t,
            checked=True,
        )
        for t in targets
    ]

    picked = out.select_many("Select databases to back up:", choices)
    return [t for t in targets if t in picked]
