"""
Row sources.

:class:`RowSource` is the capability the export pipeline needs from a
database: connect, read result metadata, and stream rows in order. Exactly one
adapter is wired up (:class:`FirebirdSource`); further backends are added by
implementing the protocol and registering the class in :data:`SOURCES`.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, runtime_checkable

from .config import SourceConfig
from .connection import FirebirdConnection, open_dsn
from .errors import ConfigError, EncodingError, NotConnectedError, QueryError

logger = logging.getLogger(__name__)

Row = List[str]
RowCallback = Callable[[Row], None]


@runtime_checkable
class RowSource(Protocol):
    """Contract for data source adapters."""

    def connect(self) -> None:
        """Open a session using the configured descriptor and credentials."""
        ...

    def discover_columns(self, query: str) -> List[str]:
        """Execute ``query`` only to read the result column names."""
        ...

    def stream_query(self, query: str, on_row: RowCallback) -> List[str]:
        """
        Execute ``query`` and call ``on_row`` for every row, in result order.

        Returns the column names once all rows were delivered. An exception
        raised by ``on_row`` stops the stream and propagates unchanged.
        """
        ...

    def close(self) -> None:
        """Release the session."""
        ...


def to_text(value: Any) -> str:
    """Convert a driver value to its text form; NULL becomes ``""``."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncodingError(f"Binary value is not valid UTF-8: {e}") from e
    return str(value)


def _column_names(cur) -> List[str]:
    names = []
    for i, d in enumerate(getattr(cur, "description", None) or []):
        name = getattr(d, "name", None) or (d[0] if isinstance(d, (list, tuple)) else None)
        names.append(str(name) if name is not None else f"COLUMN_{i + 1}")
    return names


class FirebirdSource:
    """Firebird adapter built on the unified connection layer."""

    def __init__(self, config: SourceConfig):
        self.config = config
        self._conn: Optional[FirebirdConnection] = None

    def __str__(self):
        return f"{self.config.db_type} ({self.config.connection_string})"

    def connect(self) -> None:
        self._conn = open_dsn(
            self.config.connection_string,
            user=self.config.username,
            password=self.config.password,
            charset=self.config.charset,
        )
        logger.info("Connected to %s via %s", self, self._conn.engine())
        try:
            logger.debug("Server version: %s", self._conn.server_version())
        except Exception as e:
            logger.debug("Server version unavailable: %s", e)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "FirebirdSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _execute(self, query: str, arraysize: int):
        if self._conn is None:
            raise NotConnectedError(f"Not connected to {self}; call connect() first")
        try:
            cur = self._conn.cursor()
        except Exception as e:
            raise QueryError(f"Cannot open cursor on {self}: {e}") from e
        try:
            cur.arraysize = arraysize
            cur.execute(query)
        except Exception as e:
            _close_quietly(cur)
            raise QueryError(f"Query failed: {e}") from e
        return cur

    def discover_columns(self, query: str) -> List[str]:
        cur = self._execute(query, 1)
        try:
            return _column_names(cur)
        finally:
            _close_quietly(cur)

    def _fetch_rows(self, cur, col_count: int) -> Iterator[Row]:
        fetch_size = self.config.fetch_size
        while True:
            try:
                batch = cur.fetchmany(fetch_size)
            except Exception as e:
                raise QueryError(f"Fetching rows failed: {e}") from e
            if not batch:
                return
            for record in batch:
                yield [to_text(record[i]) for i in range(col_count)]

    def stream_query(self, query: str, on_row: RowCallback) -> List[str]:
        cur = self._execute(query, self.config.fetch_size)
        try:
            columns = _column_names(cur)
            for row in self._fetch_rows(cur, len(columns)):
                on_row(row)
            return columns
        finally:
            _close_quietly(cur)


def _close_quietly(cur) -> None:
    try:
        cur.close()
    except Exception as e:
        logger.debug("Ignoring error while closing cursor: %s", e)


SOURCES: Dict[str, Callable[[SourceConfig], RowSource]] = {
    "firebird": FirebirdSource,
}


def create_source(config: SourceConfig) -> RowSource:
    """Instantiate the adapter registered for ``config.db_type``."""
    try:
        cls = SOURCES[config.db_type.lower()]
    except KeyError:
        supported = ", ".join(sorted(SOURCES))
        raise ConfigError(f"Unsupported database type {config.db_type!r} (supported: {supported})") from None
    return cls(config)
