"""
Unified Firebird connection layer with automatic version detection.

This module provides a context-managed connection wrapper that supports both
Firebird 3.0+ (via ``firebird-driver``) and Firebird 2.5 (via ``firebirdsql``).

Features:
  - Auto-detection of the server version to select the appropriate driver.
  - Classic DSN parsing (``host[/port]:path`` or a local path).
  - Raw DB-API cursors for batched, streaming reads.

Example usage::

    from firebird_export.connection import open_dsn

    with open_dsn("localhost/3050:/data/sales.fdb", user="SYSDBA", password="masterkey") as conn:
        print("Engine:", conn.engine())
        print("Server version:", conn.server_version())
        cur = conn.cursor()
        cur.execute("SELECT ID, NAME FROM CUSTOMERS")
        rows = cur.fetchmany(1000)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Tuple

from .errors import SourceConnectionError

try:
    # Firebird 3.0+ driver
    from firebird.driver import connect as fb_connect  # type: ignore
    _HAS_FB_DRIVER = True
except Exception:
    _HAS_FB_DRIVER = False

try:
    # Firebird 2.5 driver
    import firebirdsql  # type: ignore
    _HAS_FIREBIRDSQL = True
except Exception:
    _HAS_FIREBIRDSQL = False

logger = logging.getLogger(__name__)

Engine = Literal["firebird-driver", "firebirdsql"]

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 3050


@dataclass
class FBAuth:
    """Authentication parameters for connecting to a Firebird server."""
    user: str
    password: str
    role: Optional[str] = None


@dataclass
class FBConnParams:
    """
    Connection parameters for a Firebird server.

    :param host: Server hostname.
    :param port: Server port number.
    :param database: Path to the database or alias name.
    :param charset: Character set to use; defaults to UTF8.
    :param auth: Optional authentication information.
    :param connect_timeout: Connection timeout in seconds.
    """
    host: str
    port: int
    database: str
    charset: str = "UTF8"
    auth: Optional[FBAuth] = None
    connect_timeout: Optional[int] = 15


class FirebirdConnection:
    """
    Unified connection wrapper.

    Use :meth:`open` (or :func:`open_dsn`) to obtain a context-managed
    instance. Depending on the detected server version and installed drivers,
    it uses either ``firebird-driver`` (Firebird 3.0+) or ``firebirdsql``
    (Firebird 2.5).
    """

    def __init__(self, params: FBConnParams, engine: Engine, raw_conn: Any):
        self._params = params
        self._engine = engine
        self._raw = raw_conn

    @classmethod
    def open(cls, params: FBConnParams) -> "FirebirdConnection":
        """
        Establish a connection to the database.

        The logic is:
          1. If ``firebird-driver`` is available, attempt to connect; fall back
             to ``firebirdsql`` if that connect fails.
          2. Detect the server version. If it's 2.5, prefer ``firebirdsql``.
          3. If no suitable driver is installed, raise
             :class:`SourceConnectionError`.
        """
        if not _HAS_FB_DRIVER and not _HAS_FIREBIRDSQL:
            raise SourceConnectionError(
                "Neither 'firebird-driver' nor 'firebirdsql' is installed. "
                "Install at least one driver: 'pip install firebird-driver' (FB 3-5) "
                "or 'pip install firebirdsql' (FB 2.5)."
            )
        if not _HAS_FB_DRIVER:
            return cls(params, "firebirdsql", _connect_firebirdsql(params))

        try:
            raw = _connect_firebird_driver(params)
        except Exception as e:
            if not _HAS_FIREBIRDSQL:
                raise SourceConnectionError(f"Failed to connect to {params.host}/{params.port}:{params.database}: {e}") from e
            logger.debug("firebird-driver connect failed (%s); trying firebirdsql", e)
            return cls(params, "firebirdsql", _connect_firebirdsql(params))

        # a failed version probe is not a reason to switch drivers
        try:
            ver = _detect_server_version(raw)
        except Exception as e:
            logger.debug("Server version detection failed: %s", e)
            return cls(params, "firebird-driver", raw)

        if _is_25(ver):
            if not _HAS_FIREBIRDSQL:
                raw.close()
                raise SourceConnectionError(
                    "Server is Firebird 2.5, but 'firebirdsql' is not installed. "
                    "Please install it via 'pip install firebirdsql'."
                )
            raw.close()
            return cls(params, "firebirdsql", _connect_firebirdsql(params))
        return cls(params, "firebird-driver", raw)

    def __enter__(self) -> "FirebirdConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying connection."""
        if self._raw is None:
            return
        raw, self._raw = self._raw, None
        try:
            raw.close()
        except Exception as e:
            logger.debug("Ignoring error while closing connection: %s", e)

    def engine(self) -> Engine:
        """Return the driver in use."""
        return self._engine

    def server_version(self) -> str:
        """Return the server version string."""
        return _detect_server_version(self._raw)

    def cursor(self) -> Any:
        """Return a new raw DB-API cursor."""
        if self._raw is None:
            raise SourceConnectionError("Connection is closed")
        return self._raw.cursor()


def _is_25(version_str: str) -> bool:
    """Return True if the version string indicates Firebird 2.5."""
    vs = version_str.strip().lower()
    return vs.startswith("2.5") or "firebird 2.5" in vs or "wi-v2.5" in vs


def _fetch_scalar(conn, sql: str) -> Optional[str]:
    cur = conn.cursor()
    try:
        cur.execute(sql)
        row = cur.fetchone()
        if row and row[0]:
            return str(row[0]).strip()
        return None
    finally:
        cur.close()


def _detect_server_version(conn) -> str:
    """Detect the server version; works with both drivers."""
    try:
        ver = _fetch_scalar(conn, "SELECT rdb$get_context('SYSTEM','ENGINE_VERSION') FROM rdb$database")
        if ver:
            return ver
    except Exception as e:
        logger.debug("ENGINE_VERSION lookup failed: %s", e)
    # Fallback: MON$ATTACHMENTS (Firebird 2.1+)
    ver = _fetch_scalar(
        conn,
        """
        SELECT MON$SERVER_VERSION
        FROM MON$ATTACHMENTS
        WHERE MON$ATTACHMENT_ID = CURRENT_CONNECTION
        """,
    )
    return ver or "unknown"


def _connect_firebird_driver(params: FBConnParams):
    dsn = f"{params.host}/{params.port}:{params.database}"
    kwargs: Dict[str, Any] = {"charset": params.charset}
    if params.auth:
        kwargs["user"] = params.auth.user
        kwargs["password"] = params.auth.password
        if params.auth.role:
            kwargs["role"] = params.auth.role
    return fb_connect(dsn, **kwargs)


def _connect_firebirdsql(params: FBConnParams):
    kw: Dict[str, Any] = dict(
        host=params.host,
        port=params.port,
        database=params.database,
        charset=params.charset,
    )
    if params.auth:
        kw.update(user=params.auth.user, password=params.auth.password)
        if params.auth.role:
            kw.update(role=params.auth.role)
    if params.connect_timeout:
        kw.update(timeout=params.connect_timeout)
    try:
        return firebirdsql.connect(**kw)
    except Exception as e:
        raise SourceConnectionError(f"Failed to connect to {params.host}/{params.port}:{params.database}: {e}") from e


def parse_dsn(dsn: str) -> Tuple[Optional[str], Optional[int], str]:
    """
    Split a classic Firebird DSN into ``(host, port, database)``.

    Accepted forms:

      - ``/data/db.fdb`` or ``C:\\data\\db.fdb`` (local path, no host)
      - ``dbhost:/data/db.fdb`` (host + path)
      - ``dbhost/3051:/data/db.fdb`` (host/port + path)

    :raises SourceConnectionError: if the port is not a number.
    """
    if re.match(r"^[A-Za-z]:\\", dsn):  # Windows local path
        return None, None, dsn
    if ":" not in dsn:
        return None, None, dsn
    host_part, database = dsn.split(":", 1)
    port: Optional[int] = None
    if "/" in host_part:
        host_part, port_str = host_part.split("/", 1)
        try:
            port = int(port_str)
        except ValueError:
            raise SourceConnectionError(f"Invalid port in DSN: {dsn!r}") from None
    return host_part or None, port, database


def open_dsn(
    dsn: str,
    user: Optional[str] = None,
    password: Optional[str] = None,
    *,
    role: Optional[str] = None,
    charset: str = "UTF8",
    timeout: int = 15,
) -> FirebirdConnection:
    """
    Open a connection from a classic DSN string (see :func:`parse_dsn`).

    A missing host defaults to ``localhost`` and a missing port to 3050.

    :return: A :class:`FirebirdConnection` instance.
    """
    host, port, database = parse_dsn(dsn)
    auth = FBAuth(user=user or "SYSDBA", password=password or "", role=role) if user or password or role else None
    params = FBConnParams(
        host=host or DEFAULT_HOST,
        port=port or DEFAULT_PORT,
        database=database,
        charset=charset,
        auth=auth,
        connect_timeout=timeout,
    )
    return FirebirdConnection.open(params)
