"""Preflight checks run before any backup is attempted.

The destination and permission checks gate the run; the space check is
advisory and only produces warnings. Connectivity and permission share one
session which is always closed before returning.
"""

from __future__ import annotations

import os
import shutil
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Protocol

from sqlbackup.core.connection import MAX_CONNECT_TIMEOUT, clamp_timeout
from sqlbackup.core.errors import InsufficientPermissionError, PathError
from sqlbackup.core.models import PreflightResult, VolumeUsage
from sqlbackup.core.report import format_bytes

LOW_FREE_RATIO = 0.10


class PermissionSession(Protocol):
    """Session operations needed by the preflight checks."""

    def current_login(self) -> str:
        ...

    def has_backup_permission(self) -> bool:
        ...


class PreflightAdapter(Protocol):
    """Interface for opening an administrative session."""

    server: str

    def admin_session(
        self, timeout: int = MAX_CONNECT_TIMEOUT
    ) -> AbstractContextManager[PermissionSession]:
        """Open a short-timeout session; raise ConnectivityError on failure."""
        ...


def ensure_destination(destination: Path) -> Path:
    """
    Create the destination directory if needed and verify it is usable.

    Raises:
        PathError: If the path is not a directory, cannot be created, or is
                   not writable.
    """
    path = Path(destination).expanduser()
    if path.exists() and not path.is_dir():
        raise PathError(f"Destination '{path}' exists but is not a directory.")
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise PathError(f"Cannot create destination '{path}': {exc}") from exc
    if not os.access(path, os.W_OK):
        raise PathError(f"Destination '{path}' is not writable.")
    return path.resolve()


def volume_usage(path: Path) -> VolumeUsage:
    """Return total/used/free bytes of the volume containing `path`."""
    usage = shutil.disk_usage(path)
    return VolumeUsage(
        total_bytes=usage.total, used_bytes=usage.used, free_bytes=usage.free
    )


def space_warnings(volume: VolumeUsage, estimated_bytes: int = 0) -> list[str]:
    """Return advisory warnings about free space on the destination volume."""
    warnings: list[str] = []
    if estimated_bytes > 0 and volume.free_bytes < estimated_bytes:
        warnings.append(
            f"Free space {format_bytes(volume.free_bytes)} is below the estimated "
            f"backup size {format_bytes(estimated_bytes)}."
        )
    if volume.total_bytes > 0 and volume.free_ratio < LOW_FREE_RATIO:
        warnings.append(
            f"Destination volume is {100 - volume.free_ratio * 100:.0f}% full "
            f"({format_bytes(volume.free_bytes)} free)."
        )
    return warnings


def check_permissions(
    adapter: PreflightAdapter, *, timeout: int = MAX_CONNECT_TIMEOUT
) -> str:
    """
    Connect to the server and verify the login can run backups.

    Returns:
        The login name of the ambient identity.

    Raises:
        ConnectivityError: If the server cannot be reached.
        InsufficientPermissionError: If the login cannot run backups.
    """
    with adapter.admin_session(timeout=clamp_timeout(timeout)) as session:
        login = session.current_login()
        if not session.has_backup_permission():
            raise InsufficientPermissionError(
                f"Login '{login or 'unknown'}' on '{adapter.server}' needs the "
                "sysadmin or db_backupoperator role, or a BACKUP DATABASE grant."
            )
    return login


def check(
    destination: Path,
    adapter: PreflightAdapter,
    *,
    timeout: int = MAX_CONNECT_TIMEOUT,
    estimated_bytes: int = 0,
) -> PreflightResult:
    """
    Run all preflight checks in order: destination, space, server.

    Raises:
        PathError, ConnectivityError, InsufficientPermissionError
    """
    path = ensure_destination(destination)
    volume = volume_usage(path)
    login = check_permissions(adapter, timeout=timeout)
    return PreflightResult(
        destination=path,
        volume=volume,
        login=login,
        warnings=tuple(space_warnings(volume, estimated_bytes)),
    )
