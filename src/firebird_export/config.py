"""
Configuration models and resolution.

A run is configured from an optional TOML file with three sections::

    [database]
    db_type = "firebird"
    connection_string = "localhost/3050:/data/sales.fdb"
    username = "SYSDBA"
    password = "masterkey"
    fetch_size = 5000

    [export]
    query = "queries/orders.sql"
    output_file = "orders.csv.gz"
    format = "csv"
    delimiter = ","
    include_header = true
    compression = "gzip"

    [logging]
    log_file = "export.log"
    verbose = false

and command-line overrides. :func:`resolve_config` merges both into a single
frozen :class:`ResolvedConfig`.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError

DEFAULT_DB_TYPE = "firebird"
DEFAULT_FETCH_SIZE = 1000
# ETX control character
DEFAULT_DELIMITER = "\x03"
DEFAULT_BUFFER_SIZE = 1024 * 1024
DEFAULT_PROGRESS_INTERVAL = 1_000_000


class ExportFormat(str, Enum):
    csv = "csv"
    tsv = "tsv"
    custom = "custom"


class CompressionType(str, Enum):
    none = "none"
    gzip = "gzip"


def select_delimiter(fmt: ExportFormat, delimiter: str) -> str:
    """
    Pick the field delimiter for a run.

    TSV always uses a tab. CSV and custom use the configured delimiter when it
    is exactly one byte long, and fall back to a comma otherwise.
    """
    if fmt == ExportFormat.tsv:
        return "\t"
    if len(delimiter.encode("utf-8")) == 1:
        return delimiter
    return ","


class SourceConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    db_type: str = DEFAULT_DB_TYPE
    connection_string: str
    username: str
    password: str
    fetch_size: int = Field(DEFAULT_FETCH_SIZE, ge=1)
    charset: str = "UTF8"


class ExportSpec(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    query: str
    output_file: str
    format: ExportFormat = ExportFormat.csv
    delimiter: str = DEFAULT_DELIMITER
    show_progress: bool = False
    include_header: bool = False
    buffer_size: int = Field(DEFAULT_BUFFER_SIZE, ge=1)
    compression: CompressionType = CompressionType.none
    progress_interval: int = Field(DEFAULT_PROGRESS_INTERVAL, ge=1)

    @property
    def field_delimiter(self) -> str:
        """The delimiter actually written, after format rules and fallback."""
        return select_delimiter(self.format, self.delimiter)


class TelemetryConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    log_file: Optional[str] = None
    verbose: bool = False


class ResolvedConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    database: SourceConfig
    export: ExportSpec
    logging: TelemetryConfig = Field(default_factory=TelemetryConfig)


@dataclass
class CliOverrides:
    """
    Raw values from the command line.

    Fields left at ``None`` were not given. Fields with a hard-coded default
    only take effect when they differ from it, because a flag passed with its
    default value cannot be told apart from an absent flag.
    """
    db_type: Optional[str] = None
    conn: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    charset: Optional[str] = None
    fetch: int = DEFAULT_FETCH_SIZE
    query: Optional[str] = None
    output: Optional[str] = None
    format: ExportFormat = ExportFormat.csv
    delimiter: Optional[str] = None
    progress: bool = False
    header: bool = False
    buffer_size: int = DEFAULT_BUFFER_SIZE
    compression: CompressionType = CompressionType.none
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL
    log_file: Optional[str] = None
    verbose: bool = False


def load_config_file(path: str) -> Dict[str, Any]:
    """Read a TOML config file into a plain dict of sections."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Cannot parse config file {path}: {e}") from e
    for section, values in data.items():
        if not isinstance(values, dict):
            raise ConfigError(f"Config section [{section}] must be a table in {path}")
    return data


def read_query_or_file(value: str) -> str:
    """
    Return the query text for ``value``.

    If ``value`` names an existing regular file its trimmed contents are the
    query, otherwise ``value`` itself is.
    """
    if not os.path.isfile(value):
        return value
    try:
        with open(value, "r", encoding="utf-8") as f:
            return f.read().strip()
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read query file {value}: {e}") from e


def _apply_overrides(sections: Dict[str, Dict[str, Any]], cli: CliOverrides) -> None:
    database = sections["database"]
    export = sections["export"]
    logging_ = sections["logging"]

    optional = (
        (database, "db_type", cli.db_type),
        (database, "connection_string", cli.conn),
        (database, "username", cli.username),
        (database, "password", cli.password),
        (database, "charset", cli.charset),
        (export, "query", cli.query),
        (export, "output_file", cli.output),
        (export, "delimiter", cli.delimiter),
        (logging_, "log_file", cli.log_file),
    )
    for section, key, value in optional:
        if value is not None:
            section[key] = value

    defaulted = (
        (database, "fetch_size", cli.fetch, DEFAULT_FETCH_SIZE),
        (export, "format", cli.format, ExportFormat.csv),
        (export, "buffer_size", cli.buffer_size, DEFAULT_BUFFER_SIZE),
        (export, "compression", cli.compression, CompressionType.none),
        (export, "progress_interval", cli.progress_interval, DEFAULT_PROGRESS_INTERVAL),
    )
    for section, key, value, default in defaulted:
        if value != default:
            section[key] = value

    if cli.progress:
        export["show_progress"] = True
    if cli.header:
        export["include_header"] = True
    if cli.verbose:
        logging_["verbose"] = True


def _format_validation_error(err: ValidationError) -> str:
    problems = []
    for item in err.errors():
        field = ".".join(str(p) for p in item["loc"])
        if item["type"] == "missing":
            problems.append(f"{field} is required")
        else:
            problems.append(f"{field}: {item['msg']}")
    return "; ".join(problems)


def resolve_config(config_path: Optional[str], cli: CliOverrides) -> ResolvedConfig:
    """
    Merge the optional config file with command-line overrides.

    :raises ConfigError: if the file cannot be loaded or a required value is
        missing or invalid after the merge.
    """
    raw = load_config_file(config_path) if config_path else {}
    sections: Dict[str, Dict[str, Any]] = {
        name: dict(raw.get(name, {})) for name in ("database", "export", "logging")
    }
    unknown = sorted(set(raw) - set(sections))
    if unknown:
        raise ConfigError(f"Unknown config section(s): {', '.join(unknown)}")

    _apply_overrides(sections, cli)

    # resolved once, after every override is in place
    query = sections["export"].get("query")
    if isinstance(query, str):
        sections["export"]["query"] = read_query_or_file(query)

    try:
        return ResolvedConfig.model_validate(sections)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {_format_validation_error(e)}") from e


def describe_config(cfg: ResolvedConfig) -> Iterator[str]:
    """Yield human readable configuration lines; the password is masked."""
    db = cfg.database
    exp = cfg.export
    yield "Configuration Details:"
    yield f"  Database type: {db.db_type}"
    yield f"  Connection string: {db.connection_string}"
    yield f"  Username: {db.username}"
    yield f"  Password: {'*' * 8 if db.password else '(empty)'}"
    yield f"  Fetch size: {db.fetch_size}"
    yield f"  Output file: {exp.output_file}"
    yield f"  Format: {exp.format.value}"
    yield f"  Delimiter: {exp.field_delimiter!r}"
    yield f"  Show progress: {exp.show_progress}"
    yield f"  Include header: {exp.include_header}"
    yield f"  Buffer size: {exp.buffer_size} bytes"
    yield f"  Compression: {exp.compression.value}"
    yield f"  Progress interval: {exp.progress_interval} rows"
    yield "Query SQL:"
    yield exp.query
