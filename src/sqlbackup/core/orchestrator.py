"""Bounded-concurrency execution of backup tasks.

This module owns the worker pool that runs one backup task per target. The
pool is a ThreadPoolExecutor sized to `max_parallel`; targets are submitted
in enumeration order and the executor's FIFO work queue admits the next one
as soon as a worker frees up. The caller blocks on the futures (no polling)
until every task is terminal, and gets back exactly one outcome per target.
"""

from __future__ import annotations

import threading
import warnings
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Protocol

from sqlbackup.core.errors import PoolUnavailableError
from sqlbackup.core.layout import backup_file_path
from sqlbackup.core.models import BackupOutcome, BackupStatus, BackupTarget
from sqlbackup.core.tasks import BackupAdapter, describe_error, execute_backup

DEFAULT_MAX_PARALLEL = 3
DEFAULT_PROGRESS_INTERVAL = 10.0

TaskFn = Callable[[BackupAdapter, BackupTarget, Path, str], BackupOutcome]


@dataclass(frozen=True)
class PoolSnapshot:
    """Point-in-time view of the pool, safe to hand to other threads."""

    total: int
    queued: int
    running: tuple[str, ...]
    completed: int
    failed: int
    max_parallel: int

    @property
    def exhausted(self) -> bool:
        return self.completed == self.total


class PoolState:
    """
    Admission and completion bookkeeping of one orchestrator run.

    All mutation happens under a single lock. Tasks are keyed by dispatch
    index so the outcome list can be returned in dispatch order.
    """

    def __init__(self, targets: list[BackupTarget], max_parallel: int) -> None:
        self._lock = threading.Lock()
        self._targets = targets
        self.max_parallel = max_parallel
        self._queued: set[int] = set(range(len(targets)))
        self._running: dict[int, str] = {}
        self._completed: dict[int, BackupOutcome] = {}
        self.peak_running = 0

    def mark_running(self, index: int) -> None:
        """Move a task from queued to running."""
        with self._lock:
            if index not in self._queued:
                raise RuntimeError(f"Task {index} was admitted twice.")
            if len(self._running) >= self.max_parallel:
                raise RuntimeError("Pool admitted more tasks than max_parallel.")
            self._queued.discard(index)
            self._running[index] = self._targets[index].name
            self.peak_running = max(self.peak_running, len(self._running))

    def mark_done(self, index: int, outcome: BackupOutcome) -> None:
        """Record the terminal outcome of a task."""
        with self._lock:
            if index in self._completed:
                raise RuntimeError(f"Task {index} produced two outcomes.")
            self._queued.discard(index)
            self._running.pop(index, None)
            self._completed[index] = outcome

    def is_done(self, index: int) -> bool:
        with self._lock:
            return index in self._completed

    def snapshot(self) -> PoolSnapshot:
        with self._lock:
            return PoolSnapshot(
                total=len(self._targets),
                queued=len(self._queued),
                running=tuple(self._running[i] for i in sorted(self._running)),
                completed=len(self._completed),
                failed=sum(1 for o in self._completed.values() if not o.ok),
                max_parallel=self.max_parallel,
            )

    def outcomes(self) -> list[BackupOutcome]:
        """Return completed outcomes in dispatch order."""
        with self._lock:
            return [self._completed[i] for i in sorted(self._completed)]


class BackupObserver(Protocol):
    """
    Receives progress notifications.

    `on_start` runs on the worker thread; `on_finish` and `on_heartbeat` run
    on the thread that called `run_backups`. An exception raised by a
    callback is reported as a RuntimeWarning and does not stop the run.
    """

    def on_start(self, target: BackupTarget) -> None:
        ...

    def on_finish(self, outcome: BackupOutcome) -> None:
        ...

    def on_heartbeat(self, snapshot: PoolSnapshot) -> None:
        ...


class NullObserver:
    """Observer that ignores every notification."""

    def on_start(self, target: BackupTarget) -> None:
        return None

    def on_finish(self, outcome: BackupOutcome) -> None:
        return None

    def on_heartbeat(self, snapshot: PoolSnapshot) -> None:
        return None


def _failed_outcome(
    target: BackupTarget, destination_dir: Path, timestamp: str, exc: BaseException
) -> BackupOutcome:
    """Build a FAILED outcome for a task that raised instead of returning."""
    now = datetime.now(timezone.utc)
    return BackupOutcome(
        database=target.name,
        file_path=backup_file_path(destination_dir, target.name, timestamp),
        size_bytes=0,
        started_at=now,
        finished_at=now,
        duration_seconds=0.0,
        status=BackupStatus.FAILED,
        error=describe_error(exc),
    )


def _notify(callback: Callable[..., None], *args: object) -> None:
    """Call an observer callback; a failing observer never stops the run."""
    try:
        callback(*args)
    except Exception as exc:  # noqa: BLE001 - progress display is best effort
        warnings.warn(
            f"Progress observer {callback.__name__} failed: {describe_error(exc)}",
            RuntimeWarning,
            stacklevel=2,
        )


def run_backups(
    adapter: BackupAdapter,
    targets: Iterable[BackupTarget],
    destination_dir: Path,
    timestamp: str,
    max_parallel: int = DEFAULT_MAX_PARALLEL,
    *,
    observer: BackupObserver | None = None,
    progress_interval: float = DEFAULT_PROGRESS_INTERVAL,
    task: TaskFn = execute_backup,
) -> list[BackupOutcome]:
    """
    Back up every target with at most `max_parallel` backups at a time.

    Targets are admitted in the given order; completion order is free.
    Each worker records its own completion before it picks up the next
    target, so the running count never exceeds `max_parallel`. The call
    returns only when every task is terminal and the pool has been shut
    down.

    Args:
        adapter: Server adapter; each task opens its own session from it.
        targets: Databases to back up, in dispatch order.
        destination_dir: Run directory receiving the backup files.
        timestamp: Run timestamp used in file names.
        max_parallel: Maximum number of concurrent backups (>= 1).
        observer: Optional progress observer.
        progress_interval: Seconds between heartbeats while tasks run.
        task: Unit of work, `execute_backup` unless overridden.

    Returns:
        Exactly one BackupOutcome per target, in dispatch order.

    Raises:
        ValueError: If max_parallel < 1.
        PoolUnavailableError: If the worker pool cannot be started.
    """
    if max_parallel < 1:
        raise ValueError("max_parallel must be >= 1")
    targets = list(targets)
    if not targets:
        return []

    observer = observer or NullObserver()
    state = PoolState(targets, max_parallel)

    def _work(index: int) -> BackupOutcome:
        target = targets[index]
        state.mark_running(index)
        _notify(observer.on_start, target)
        try:
            outcome = task(adapter, target, destination_dir, timestamp)
        except Exception as exc:  # noqa: BLE001 - one database must not break the run
            outcome = _failed_outcome(target, destination_dir, timestamp, exc)
        state.mark_done(index, outcome)
        return outcome

    try:
        pool = ThreadPoolExecutor(
            max_workers=min(max_parallel, len(targets)),
            thread_name_prefix="sqlbackup",
        )
    except (RuntimeError, ValueError) as exc:
        raise PoolUnavailableError(f"Cannot create worker pool: {exc}") from exc

    with pool:
        try:
            futures = {pool.submit(_work, i): i for i in range(len(targets))}
        except RuntimeError as exc:
            pool.shutdown(wait=True, cancel_futures=True)
            raise PoolUnavailableError(f"Cannot start worker threads: {exc}") from exc

        pending = set(futures)
        while pending:
            done, pending = wait(
                pending, timeout=progress_interval, return_when=FIRST_COMPLETED
            )
            if not done:
                _notify(observer.on_heartbeat, state.snapshot())
                continue
            for f in done:
                index = futures[f]
                exc = f.exception()
                if exc is None:
                    outcome = f.result()
                else:
                    # the worker failed in its own bookkeeping
                    outcome = _failed_outcome(
                        targets[index], destination_dir, timestamp, exc
                    )
                    if not state.is_done(index):
                        state.mark_done(index, outcome)
                _notify(observer.on_finish, outcome)

    return state.outcomes()
