from datetime import datetime, timezone
from pathlib import Path

from sqlbackup.core.models import BackupStatus, BackupTarget
from sqlbackup.core.tasks import describe_error, execute_backup

_T0 = datetime(2026, 10, 17, 2, 0, 0, tzinfo=timezone.utc)


def _clock():
    return _T0


def test_successful_backup_records_file_size(tmp_path: Path, fake_server):
    server = fake_server(["Sales"], file_size=4096)

    outcome = execute_backup(
        server, BackupTarget("Sales"), tmp_path, "20261017_020000", clock=_clock
    )

    assert outcome.status == BackupStatus.SUCCEEDED
    assert outcome.ok is True
    assert outcome.error is None
    assert outcome.size_bytes == 4096
    assert outcome.file_path == tmp_path / "Sales_20261017_020000.bak"
    assert outcome.started_at == outcome.finished_at == _T0
    assert outcome.duration_seconds >= 0
    assert server.opened == server.closed == 1


def test_failed_backup_is_captured_as_outcome(tmp_path: Path, fake_server):
    server = fake_server(["Sales"], fail={"Sales": "disk full"})

    outcome = execute_backup(server, BackupTarget("Sales"), tmp_path, "ts")

    assert outcome.status == BackupStatus.FAILED
    assert outcome.size_bytes == 0
    assert outcome.error == "RuntimeError: disk full"
    assert outcome.finished_at >= outcome.started_at
    assert server.opened == server.closed == 1


def test_connectivity_loss_is_captured_as_outcome(tmp_path: Path, fake_server):
    server = fake_server(["Sales"], reachable=False)

    outcome = execute_backup(server, BackupTarget("Sales"), tmp_path, "ts")

    assert outcome.status == BackupStatus.FAILED
    assert "ConnectivityError" in (outcome.error or "")


def test_describe_error_never_empty():
    assert describe_error(OSError()) == "OSError"
    assert describe_error(ValueError("bad")) == "ValueError: bad"


def test_outcome_to_dict_is_json_friendly(tmp_path: Path, fake_server):
    outcome = execute_backup(
        fake_server(["HR"]), BackupTarget("HR"), tmp_path, "ts", clock=_clock
    )

    data = outcome.to_dict()

    assert data["database"] == "HR"
    assert data["status"] == "SUCCEEDED"
    assert data["file_path"] == str(tmp_path / "HR_ts.bak")
    assert data["started_at"] == _T0.isoformat()
