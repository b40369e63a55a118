from typing import List, Optional, Sequence

import pytest

from firebird_export.config import ExportSpec
from firebird_export.errors import NotConnectedError, QueryError


class FakeSource:
    """In-memory RowSource used in place of a database."""

    def __init__(self, columns: Sequence[str], rows: Sequence[Sequence[Optional[str]]], fail_after: Optional[int] = None):
        self.columns = list(columns)
        self.rows = [list(r) for r in rows]
        self.fail_after = fail_after
        self.connected = False
        self.closed = False
        self.discover_calls = 0
        self.stream_calls = 0

    def connect(self) -> None:
        self.connected = True

    def close(self) -> None:
        self.closed = True

    def discover_columns(self, query: str) -> List[str]:
        if not self.connected:
            raise NotConnectedError("not connected")
        self.discover_calls += 1
        return list(self.columns)

    def stream_query(self, query: str, on_row) -> List[str]:
        if not self.connected:
            raise NotConnectedError("not connected")
        self.stream_calls += 1
        for i, row in enumerate(self.rows):
            if self.fail_after is not None and i == self.fail_after:
                raise QueryError("connection reset by peer")
            on_row(["" if v is None else v for v in row])
        return list(self.columns)


@pytest.fixture
def fake_source():
    def _make(columns=("id", "name"), rows=(("1", "Alice"), ("2", None)), **kw):
        src = FakeSource(columns, rows, **kw)
        src.connect()
        return src
    return _make


@pytest.fixture
def make_spec(tmp_path):
    def _make(name="out.csv", **overrides):
        values = dict(query="SELECT ID, NAME FROM CUSTOMERS", output_file=str(tmp_path / name), delimiter=",")
        values.update(overrides)
        return ExportSpec(**values)
    return _make
