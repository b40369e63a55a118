from unittest.mock import MagicMock

import pytest

from firebird_export import connection as fbconn
from firebird_export.connection import FirebirdConnection, open_dsn, parse_dsn
from firebird_export.errors import SourceConnectionError


@pytest.mark.parametrize(
    "dsn,expected",
    [
        ("/data/db.fdb", (None, None, "/data/db.fdb")),
        ("C:\\data\\db.fdb", (None, None, "C:\\data\\db.fdb")),
        ("dbhost:/data/db.fdb", ("dbhost", None, "/data/db.fdb")),
        ("dbhost/3051:/data/db.fdb", ("dbhost", 3051, "/data/db.fdb")),
        ("dbhost:C:\\data\\db.fdb", ("dbhost", None, "C:\\data\\db.fdb")),
        ("employee", (None, None, "employee")),
    ],
)
def test_parse_dsn(dsn, expected):
    assert parse_dsn(dsn) == expected


def test_parse_dsn_rejects_bad_port():
    with pytest.raises(SourceConnectionError, match="port"):
        parse_dsn("dbhost/abc:/data/db.fdb")


def test_open_dsn_builds_params(monkeypatch):
    captured = {}
    monkeypatch.setattr(FirebirdConnection, "open", classmethod(lambda cls, params: captured.setdefault("params", params)))

    open_dsn("/data/db.fdb", user="SYSDBA", password="masterkey", charset="WIN1252")

    params = captured["params"]
    assert (params.host, params.port, params.database) == ("localhost", 3050, "/data/db.fdb")
    assert params.charset == "WIN1252"
    assert params.auth.user == "SYSDBA"
    assert params.auth.password == "masterkey"


def _params():
    return fbconn.FBConnParams(host="localhost", port=3050, database="/data/db.fdb", auth=fbconn.FBAuth("SYSDBA", "pw"))


def _raw_with_version(version):
    raw = MagicMock()
    raw.cursor.return_value.fetchone.return_value = (version,)
    return raw


def test_open_prefers_firebird_driver(monkeypatch):
    raw = _raw_with_version("5.0.1")
    monkeypatch.setattr(fbconn, "_HAS_FB_DRIVER", True)
    monkeypatch.setattr(fbconn, "_connect_firebird_driver", lambda params: raw)

    conn = FirebirdConnection.open(_params())

    assert conn.engine() == "firebird-driver"
    assert conn.server_version() == "5.0.1"


def test_open_switches_to_firebirdsql_for_25(monkeypatch):
    raw = _raw_with_version("2.5.9")
    legacy = MagicMock()
    monkeypatch.setattr(fbconn, "_HAS_FB_DRIVER", True)
    monkeypatch.setattr(fbconn, "_HAS_FIREBIRDSQL", True)
    monkeypatch.setattr(fbconn, "_connect_firebird_driver", lambda params: raw)
    monkeypatch.setattr(fbconn, "_connect_firebirdsql", lambda params: legacy)

    conn = FirebirdConnection.open(_params())

    assert conn.engine() == "firebirdsql"
    raw.close.assert_called_once()


def test_open_falls_back_when_driver_connect_fails(monkeypatch):
    legacy = MagicMock()

    def refuse(params):
        raise RuntimeError("fbclient library not found")

    monkeypatch.setattr(fbconn, "_HAS_FB_DRIVER", True)
    monkeypatch.setattr(fbconn, "_HAS_FIREBIRDSQL", True)
    monkeypatch.setattr(fbconn, "_connect_firebird_driver", refuse)
    monkeypatch.setattr(fbconn, "_connect_firebirdsql", lambda params: legacy)

    assert FirebirdConnection.open(_params()).engine() == "firebirdsql"


def test_open_reports_connect_failure(monkeypatch):
    def refuse(params):
        raise RuntimeError("Your user name and password are not defined")

    monkeypatch.setattr(fbconn, "_HAS_FB_DRIVER", True)
    monkeypatch.setattr(fbconn, "_HAS_FIREBIRDSQL", False)
    monkeypatch.setattr(fbconn, "_connect_firebird_driver", refuse)

    with pytest.raises(SourceConnectionError, match="password are not defined") as exc:
        FirebirdConnection.open(_params())

    assert exc.value.phase == "connect"


def test_open_without_drivers(monkeypatch):
    monkeypatch.setattr(fbconn, "_HAS_FB_DRIVER", False)
    monkeypatch.setattr(fbconn, "_HAS_FIREBIRDSQL", False)

    with pytest.raises(SourceConnectionError, match="pip install"):
        FirebirdConnection.open(_params())


def test_cursor_after_close(monkeypatch):
    conn = FirebirdConnection(_params(), "firebird-driver", MagicMock())
    conn.close()

    with pytest.raises(SourceConnectionError):
        conn.cursor()
