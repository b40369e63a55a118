"""
Error types raised by the export pipeline.

Every error carries the phase in which it happened so the CLI can tell the
operator where a run stopped. Nothing in the pipeline retries: the first error
raised aborts the run.
"""

from __future__ import annotations


class ExportError(RuntimeError):
    """Base class for all export failures."""

    phase = "export"


class ConfigError(ExportError):
    """Raised when the merged configuration is missing or invalid."""

    phase = "config"


class SourceConnectionError(ExportError):
    """Raised when a session with the data source cannot be established."""

    phase = "connect"


class QueryError(ExportError):
    """Raised when query execution or metadata retrieval fails."""

    phase = "query"


class NotConnectedError(QueryError):
    """Raised when a query operation is attempted before ``connect()``."""


class OutputError(ExportError):
    """Raised when the output file cannot be created, written or flushed."""

    phase = "write"

    def __init__(self, message: str, path: str):
        super().__init__(f"{message}: {path}")
        self.path = path


class EncodingError(ExportError):
    """Raised when a value cannot be represented in the output format."""

    phase = "encode"
