import threading
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from sqlbackup.core.layout import backup_file_path
from sqlbackup.core.models import BackupOutcome, BackupStatus, BackupTarget
from sqlbackup.core import orchestrator
from sqlbackup.core.errors import PoolUnavailableError
from sqlbackup.core.orchestrator import PoolState, run_backups


def _outcome(target: BackupTarget, destination_dir: Path, timestamp: str) -> BackupOutcome:
    now = datetime.now(timezone.utc)
    return BackupOutcome(
        database=target.name,
        file_path=backup_file_path(destination_dir, target.name, timestamp),
        size_bytes=10,
        started_at=now,
        finished_at=now,
        duration_seconds=0.0,
        status=BackupStatus.SUCCEEDED,
    )


def _wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _targets(*names: str) -> list[BackupTarget]:
    return [BackupTarget(n) for n in names]


def test_run_backups_rejects_non_positive_parallel(tmp_path: Path):
    with pytest.raises(ValueError, match="max_parallel"):
        run_backups(None, _targets("A"), tmp_path, "ts", 0)


def test_run_backups_returns_empty_on_empty_input(tmp_path: Path):
    assert run_backups(None, [], tmp_path, "ts", 2) == []


@pytest.mark.parametrize("parallel", [1, 2, 3, 8])
def test_exactly_one_outcome_per_target_and_never_over_parallel(
    tmp_path: Path, parallel: int
):
    lock = threading.Lock()
    running = 0
    peak = 0

    def task(adapter, target, destination_dir, timestamp):
        nonlocal running, peak
        with lock:
            running += 1
            peak = max(peak, running)
        time.sleep(0.01)
        with lock:
            running -= 1
        if target.name.endswith("3"):
            raise RuntimeError("boom")
        return _outcome(target, destination_dir, timestamp)

    names = [f"db{i}" for i in range(8)]
    outcomes = run_backups(None, _targets(*names), tmp_path, "ts", parallel, task=task)

    assert [o.database for o in outcomes] == names
    assert peak <= parallel
    failed = [o for o in outcomes if not o.ok]
    assert [o.database for o in failed] == ["db3"]
    assert failed[0].size_bytes == 0
    assert "boom" in (failed[0].error or "")


def test_third_target_admitted_only_after_a_first_one_finishes(tmp_path: Path):
    lock = threading.Lock()
    started: list[str] = []
    release = {name: threading.Event() for name in "ABC"}

    def task(adapter, target, destination_dir, timestamp):
        with lock:
            started.append(target.name)
        release[target.name].wait(timeout=5)
        return _outcome(target, destination_dir, timestamp)

    results: list[BackupOutcome] = []
    runner = threading.Thread(
        target=lambda: results.extend(
            run_backups(None, _targets("A", "B", "C"), tmp_path, "ts", 2, task=task)
        )
    )
    runner.start()

    assert _wait_until(lambda: len(started) == 2)
    time.sleep(0.05)
    assert started == ["A", "B"]

    release["B"].set()
    assert _wait_until(lambda: len(started) == 3)
    assert started[2] == "C"

    release["A"].set()
    release["C"].set()
    runner.join(timeout=5)

    assert not runner.is_alive()
    assert [o.database for o in results] == ["A", "B", "C"]


def test_sequential_when_parallel_is_one(tmp_path: Path):
    order: list[str] = []

    def task(adapter, target, destination_dir, timestamp):
        order.append(f"start:{target.name}")
        order.append(f"end:{target.name}")
        return _outcome(target, destination_dir, timestamp)

    run_backups(None, _targets("A", "B"), tmp_path, "ts", 1, task=task)

    assert order == ["start:A", "end:A", "start:B", "end:B"]


def test_observer_receives_start_finish_and_heartbeats(tmp_path: Path):
    class _Observer:
        def __init__(self):
            self.started: list[str] = []
            self.finished: list[str] = []
            self.heartbeats = []

        def on_start(self, target):
            self.started.append(target.name)

        def on_finish(self, outcome):
            self.finished.append(outcome.database)

        def on_heartbeat(self, snapshot):
            self.heartbeats.append(snapshot)

    def task(adapter, target, destination_dir, timestamp):
        time.sleep(0.1)
        return _outcome(target, destination_dir, timestamp)

    observer = _Observer()
    run_backups(
        None,
        _targets("A", "B"),
        tmp_path,
        "ts",
        2,
        observer=observer,
        progress_interval=0.01,
        task=task,
    )

    assert sorted(observer.started) == ["A", "B"]
    assert sorted(observer.finished) == ["A", "B"]
    assert observer.heartbeats
    assert all(len(s.running) <= 2 for s in observer.heartbeats)
    assert any(s.running for s in observer.heartbeats)


def test_run_backups_with_real_task_and_fake_server(tmp_path: Path, fake_server):
    server = fake_server(["A", "B", "C"], fail={"B": "database dropped"})

    outcomes = run_backups(server, _targets("A", "B", "C"), tmp_path, "ts", 2)

    assert [(o.database, o.status) for o in outcomes] == [
        ("A", BackupStatus.SUCCEEDED),
        ("B", BackupStatus.FAILED),
        ("C", BackupStatus.SUCCEEDED),
    ]
    assert (tmp_path / "A_ts.bak").exists()
    assert server.opened == server.closed == 3


def test_pool_state_rejects_double_admission_and_double_outcome(tmp_path: Path):
    targets = _targets("A", "B")
    state = PoolState(targets, max_parallel=1)

    state.mark_running(0)
    with pytest.raises(RuntimeError, match="admitted twice"):
        state.mark_running(0)
    with pytest.raises(RuntimeError, match="max_parallel"):
        state.mark_running(1)

    state.mark_done(0, _outcome(targets[0], tmp_path, "ts"))
    with pytest.raises(RuntimeError, match="two outcomes"):
        state.mark_done(0, _outcome(targets[0], tmp_path, "ts"))


def test_pool_state_snapshot_counts(tmp_path: Path):
    targets = _targets("A", "B", "C")
    state = PoolState(targets, max_parallel=2)

    state.mark_running(0)
    state.mark_running(1)
    snap = state.snapshot()
    assert snap.running == ("A", "B")
    assert snap.queued == 1
    assert snap.exhausted is False

    for i, t in enumerate(targets):
        if i == 2:
            state.mark_running(2)
        state.mark_done(i, _outcome(t, tmp_path, "ts"))

    snap = state.snapshot()
    assert snap.exhausted is True
    assert snap.running == ()
    assert [o.database for o in state.outcomes()] == ["A", "B", "C"]


def _counting_task(*, fail_every: int = 0):
    """Zero-duration task that records its peak concurrency."""
    lock = threading.Lock()
    stats = {"running": 0, "peak": 0}

    def task(adapter, target, destination_dir, timestamp):
        with lock:
            stats["running"] += 1
            stats["peak"] = max(stats["peak"], stats["running"])
        try:
            index = int(target.name[2:])
            if fail_every and index % fail_every == 0:
                raise RuntimeError(f"instant failure {target.name}")
            return _outcome(target, destination_dir, timestamp)
        finally:
            with lock:
                stats["running"] -= 1

    return task, stats


@pytest.mark.parametrize("parallel", [1, 2, 3])
def test_instant_tasks_never_fail_on_pool_bookkeeping(tmp_path: Path, parallel: int):
    names = [f"db{i}" for i in range(20)]

    for _ in range(50):
        task, stats = _counting_task()
        outcomes = run_backups(
            None, _targets(*names), tmp_path, "ts", parallel, task=task
        )

        assert [o.database for o in outcomes] == names
        assert all(o.ok for o in outcomes), [o.error for o in outcomes if not o.ok]
        assert stats["peak"] <= parallel


@pytest.mark.parametrize("parallel", [1, 2, 3, 8])
def test_instant_failures_still_yield_one_outcome_each(tmp_path: Path, parallel: int):
    names = [f"db{i}" for i in range(16)]

    for _ in range(20):
        task, stats = _counting_task(fail_every=2)
        outcomes = run_backups(
            None, _targets(*names), tmp_path, "ts", parallel, task=task
        )

        assert len({o.database for o in outcomes}) == len(names)
        assert [o.database for o in outcomes] == names
        failed = [o.database for o in outcomes if not o.ok]
        assert failed == [n for i, n in enumerate(names) if i % 2 == 0]
        assert all("instant failure" in (o.error or "") for o in outcomes if not o.ok)
        assert stats["peak"] <= parallel


def test_instant_backups_against_fake_server(tmp_path: Path, fake_server):
    names = [f"db{i}" for i in range(12)]
    server = fake_server(names, file_size=0, fail={"db5": "disk full"})

    outcomes = run_backups(server, _targets(*names), tmp_path, "ts", 3)

    assert [o.database for o in outcomes] == names
    assert [o.database for o in outcomes if not o.ok] == ["db5"]
    assert sorted(server.backups) == sorted(names)
    assert server.opened == server.closed == len(names)


def test_raising_observer_does_not_stop_the_run(tmp_path: Path):
    class _BrokenObserver:
        def on_start(self, target):
            raise RuntimeError("start display broken")

        def on_finish(self, outcome):
            raise RuntimeError("finish display broken")

        def on_heartbeat(self, snapshot):
            raise RuntimeError("heartbeat display broken")

    def task(adapter, target, destination_dir, timestamp):
        time.sleep(0.05)
        return _outcome(target, destination_dir, timestamp)

    with pytest.warns(RuntimeWarning, match="display broken"):
        outcomes = run_backups(
            None,
            _targets("A", "B", "C"),
            tmp_path,
            "ts",
            2,
            observer=_BrokenObserver(),
            progress_interval=0.01,
            task=task,
        )

    assert [o.database for o in outcomes] == ["A", "B", "C"]
    assert all(o.ok for o in outcomes)


class _NoThreadsExecutor(orchestrator.ThreadPoolExecutor):
    def submit(self, fn, /, *args, **kwargs):
        raise RuntimeError("can't start new thread")


class _NoPoolExecutor:
    def __init__(self, *args, **kwargs):
        raise RuntimeError("can't create pool")


@pytest.mark.parametrize(
    "executor, message",
    [
        (_NoThreadsExecutor, "Cannot start worker threads"),
        (_NoPoolExecutor, "Cannot create worker pool"),
    ],
)
def test_pool_start_failure_raises_pool_unavailable(
    tmp_path: Path, monkeypatch, executor, message
):
    monkeypatch.setattr(orchestrator, "ThreadPoolExecutor", executor)
    calls: list[str] = []

    def task(adapter, target, destination_dir, timestamp):
        calls.append(target.name)
        return _outcome(target, destination_dir, timestamp)

    with pytest.raises(PoolUnavailableError, match=message) as excinfo:
        run_backups(None, _targets("A", "B"), tmp_path, "ts", 2, task=task)

    assert excinfo.value.component == "orchestrator"
    assert calls == []
