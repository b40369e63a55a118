"""Logging configuration for the CLI."""

from __future__ import annotations

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .errors import ConfigError

LEVEL_ENV = "FIREBIRD_EXPORT_LOG"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(verbosity: int = 0, log_file: Optional[str] = None) -> None:
    """
    Configure the root logger.

    ``verbosity`` > 0 selects DEBUG, otherwise INFO. The ``FIREBIRD_EXPORT_LOG``
    environment variable (e.g. ``WARNING``) takes precedence over both. With
    ``log_file`` set, records are appended to that file instead of the console;
    a file that cannot be opened raises :class:`ConfigError`.
    """
    level_name = os.environ.get(LEVEL_ENV)
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    if level_name:
        level = logging.getLevelName(level_name.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if log_file:
        try:
            os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
            handler: logging.Handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot open log file {log_file}: {e.strerror or e}") from e
        handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    else:
        handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    logging.basicConfig(level=level, handlers=[handler], force=True)
