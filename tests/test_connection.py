import pytest

from sqlbackup.core.adapters.sqlserver import quote_name
from sqlbackup.core.connection import (
    DEFAULT_DRIVER,
    ServerEndpoint,
    _sanitize_server,
    clamp_timeout,
)
from sqlbackup.core.errors import ConnectivityError


def test_sanitize_server_strips_trailing_separators():
    assert _sanitize_server("  sql01\\PROD\\ ") == "sql01\\PROD"
    assert _sanitize_server("tcp:sql01,1433/") == "tcp:sql01,1433"


def test_sanitize_server_rejects_empty():
    with pytest.raises(ValueError):
        _sanitize_server("  ")


def test_connection_string_uses_integrated_security():
    conn_str = ServerEndpoint("sql01").connection_string()

    assert conn_str.startswith(f"DRIVER={{{DEFAULT_DRIVER}}};")
    assert "SERVER=sql01;" in conn_str
    assert "DATABASE=master;" in conn_str
    assert "Trusted_Connection=yes;" in conn_str
    assert "TrustServerCertificate=yes;" in conn_str


def test_from_env_reads_driver_and_trust_flag(monkeypatch):
    monkeypatch.setenv("SQLBACKUP_ODBC_DRIVER", "ODBC Driver 18 for SQL Server")
    monkeypatch.setenv("SQLBACKUP_TRUST_CERT", "no")

    endpoint = ServerEndpoint.from_env("sql01/")

    assert endpoint.server == "sql01"
    assert endpoint.driver == "ODBC Driver 18 for SQL Server"
    assert endpoint.trust_cert is False
    assert "TrustServerCertificate" not in endpoint.connection_string()


@pytest.mark.parametrize(("given", "expected"), [(0, 1), (3, 3), (60, 5)])
def test_clamp_timeout(given: int, expected: int):
    assert clamp_timeout(given) == expected


def test_quote_name_escapes_closing_bracket():
    assert quote_name("odd]name") == "[odd]]name]"


def test_connect_maps_driver_errors(monkeypatch):
    pyodbc = pytest.importorskip("pyodbc")
    from sqlbackup.core.connection import connect

    def _refuse(*args, **kwargs):
        raise pyodbc.OperationalError("08001", "login timeout expired")

    monkeypatch.setattr(pyodbc, "connect", _refuse)

    with pytest.raises(ConnectivityError, match="sql01"):
        connect(ServerEndpoint("sql01"), timeout=30)
