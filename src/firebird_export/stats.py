"""Export statistics and the end-of-run summary."""

from __future__ import annotations

from dataclasses import dataclass

from rich import print

MB = 1024 * 1024


@dataclass
class RunCounters:
    """Mutable counters owned by the pipeline for one run."""
    rows: int = 0
    db_read_secs: float = 0.0
    io_write_secs: float = 0.0


def _ratio(num: float, den: float) -> float:
    return num / den if den > 0 else 0.0


@dataclass(frozen=True)
class ExportStats:
    rows_exported: int
    duration_secs: float
    file_size_bytes: int
    db_read_time_secs: float
    io_write_time_secs: float
    avg_row_size_bytes: float

    @property
    def file_size_mb(self) -> float:
        return self.file_size_bytes / MB

    @property
    def rows_per_sec(self) -> float:
        return _ratio(self.rows_exported, self.duration_secs)

    @property
    def mb_per_sec(self) -> float:
        if self.rows_exported == 0:
            return 0.0
        return _ratio(self.file_size_mb, self.duration_secs)

    @property
    def db_read_pct(self) -> float:
        return _ratio(self.db_read_time_secs, self.duration_secs) * 100.0

    @property
    def io_write_pct(self) -> float:
        return _ratio(self.io_write_time_secs, self.duration_secs) * 100.0


def compute_stats(counters: RunCounters, duration_secs: float, file_size_bytes: int) -> ExportStats:
    return ExportStats(
        rows_exported=counters.rows,
        duration_secs=duration_secs,
        file_size_bytes=file_size_bytes,
        db_read_time_secs=counters.db_read_secs,
        io_write_time_secs=counters.io_write_secs,
        avg_row_size_bytes=_ratio(file_size_bytes, counters.rows),
    )


def render_summary(stats: ExportStats) -> str:
    lines = [
        "=== Export Summary ===",
        f"Rows exported: {stats.rows_exported}",
        f"Duration: {stats.duration_secs:.2f} seconds",
        f"File size: {stats.file_size_bytes} bytes ({stats.file_size_mb:.2f} MB)",
        f"Speed: {stats.rows_per_sec:.2f} rows/second",
        "",
        "=== Performance Details ===",
        f"DB read time: {stats.db_read_time_secs:.2f} seconds ({stats.db_read_pct:.1f}%)",
        f"I/O write time: {stats.io_write_time_secs:.2f} seconds ({stats.io_write_pct:.1f}%)",
        f"Average row size: {stats.avg_row_size_bytes:.2f} bytes",
        f"Throughput: {stats.mb_per_sec:.2f} MB/second",
    ]
    return "\n".join(lines)


def print_summary(stats: ExportStats) -> None:
    print()
    print(f"[bold]{render_summary(stats)}[/]")
