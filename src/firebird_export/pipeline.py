"""
Streaming export pipeline.

:class:`Exporter` pulls rows from a :class:`~firebird_export.source.RowSource`
one at a time, encodes each into a delimited record and writes it to an
:class:`~firebird_export.sink.OutputSink`. Rows are never buffered beyond the
one being processed, so memory stays bounded by the source fetch size and the
output buffer.

Time spent inside the per-row callback (encode + write) is accumulated as
write time; the rest of the streaming wall time is attributed to the source.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .config import ExportSpec
from .encoder import RowEncoder
from .errors import EncodingError
from .sink import OutputSink
from .source import Row, RowSource
from .stats import ExportStats, RunCounters, compute_stats

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    CONNECTED = "connected"
    EXPORTING = "exporting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    rows: int
    elapsed_secs: float

    @property
    def rows_per_sec(self) -> float:
        return self.rows / self.elapsed_secs if self.elapsed_secs > 0 else 0.0


def log_progress(event: ProgressEvent) -> None:
    logger.info("Exported %d rows (%.0f rows/s)", event.rows, event.rows_per_sec)


class Exporter:
    """
    Export the result of ``spec.query`` to ``spec.output_file``.

    :param spec: Resolved export settings.
    :param on_progress: Observer called every ``spec.progress_interval`` rows
        when ``spec.show_progress`` is set. Defaults to an INFO log line.
    """

    def __init__(self, spec: ExportSpec, on_progress: Optional[Callable[[ProgressEvent], None]] = None):
        self.spec = spec
        self.on_progress = on_progress or log_progress
        self.state = PipelineState.IDLE
        self.counters = RunCounters()

    def run(self, source: RowSource) -> ExportStats:
        """Connect ``source`` and export; see :meth:`export`."""
        try:
            source.connect()
        except Exception:
            self.state = PipelineState.FAILED
            raise
        self.state = PipelineState.CONNECTED
        return self.export(source)

    def export(self, source: RowSource) -> ExportStats:
        """
        Stream the query result of an already connected ``source`` to the output.

        The first error from the source, the encoder or the sink aborts the
        run and propagates; the partial output file is left on disk.
        """
        self.state = PipelineState.CONNECTED
        self.counters = RunCounters()
        try:
            stats = self._export(source)
        except Exception:
            self.state = PipelineState.FAILED
            raise
        self.state = PipelineState.COMPLETED
        return stats

    def _export(self, source: RowSource) -> ExportStats:
        spec = self.spec
        counters = self.counters
        start = time.perf_counter()
        encoder = RowEncoder(spec.field_delimiter)
        sink = OutputSink(spec.output_file, spec.compression, spec.buffer_size)

        logger.info("Starting export to %s", spec.output_file)
        with sink:
            self.state = PipelineState.EXPORTING
            columns: Optional[List[str]] = None
            if spec.include_header:
                columns = source.discover_columns(spec.query)
                logger.debug("Columns: %s", ", ".join(columns))
                sink.write(encoder.encode(columns))

            interval = spec.progress_interval if spec.show_progress else 0
            stream_start = time.perf_counter()

            def on_row(row: Row) -> None:
                counters.rows += 1
                if interval and counters.rows % interval == 0:
                    self.on_progress(ProgressEvent(counters.rows, time.perf_counter() - stream_start))
                if columns is not None and len(row) != len(columns):
                    raise EncodingError(
                        f"Row {counters.rows} has {len(row)} fields, expected {len(columns)}"
                    )
                t0 = time.perf_counter()
                sink.write(encoder.encode(row))
                counters.io_write_secs += time.perf_counter() - t0

            source.stream_query(spec.query, on_row)
            counters.db_read_secs = max(0.0, time.perf_counter() - stream_start - counters.io_write_secs)

        file_size = sink.size_bytes()
        duration = time.perf_counter() - start
        if spec.show_progress:
            logger.info("Export completed: %d rows", counters.rows)
        return compute_stats(counters, duration, file_size)
