import logging
import typer
from typing import Optional
from rich import print
from rich.console import Console
from rich.markup import escape
from .logging_setup import setup_logging
from .config import (
    CliOverrides,
    CompressionType,
    ExportFormat,
    DEFAULT_BUFFER_SIZE,
    DEFAULT_FETCH_SIZE,
    DEFAULT_PROGRESS_INTERVAL,
    describe_config,
    resolve_config,
)
from .errors import ExportError
from .pipeline import Exporter
from .progress import ProgressDisplay
from .source import create_source
from .stats import print_summary
from . import __version__

logger = logging.getLogger("firebird_export")
err_console = Console(stderr=True)

app = typer.Typer(add_completion=False, help="Firebird Export CLI — stream query results to delimited files")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose (debug) logging"),
    version: Optional[bool] = typer.Option(
        None, "--version",
        callback=lambda v: _version_callback(v),
        is_eager=True,
        help="Show version and exit",
    ),
):
    ctx.obj = {"verbose": verbose}


def _version_callback(value: Optional[bool]):
    if value:
        typer.echo(f"firebird-export {__version__}")
        raise typer.Exit()


def _fail(err: ExportError):
    err_console.print(f"[red]Export failed ({err.phase}):[/] {escape(str(err))}")
    raise typer.Exit(code=1)


def _run(cfg, source):
    # the live display is for the console; log-file runs keep the progress log lines
    if not cfg.export.show_progress or cfg.logging.log_file:
        return Exporter(cfg.export).run(source)
    with ProgressDisplay(err_console) as display:
        stats = Exporter(cfg.export, on_progress=display).run(source)
        display.finish(stats.rows_exported)
    return stats


@app.command()
def export(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(None, "-c", "--config", help="TOML config file"),
    db_type: Optional[str] = typer.Option(None, "--db-type", help="Database type (firebird)"),
    conn: Optional[str] = typer.Option(None, "--conn", help="Connection string, e.g. localhost/3050:/data/db.fdb"),
    username: Optional[str] = typer.Option(None, "--username"),
    password: Optional[str] = typer.Option(None, "--password"),
    charset: Optional[str] = typer.Option(None, "--charset", help="Connection character set (default UTF8)"),
    fetch: int = typer.Option(DEFAULT_FETCH_SIZE, "--fetch", help="Rows fetched per round trip"),
    query: Optional[str] = typer.Option(None, "--query", help="Query SQL or path to a SQL file"),
    output: Optional[str] = typer.Option(None, "-o", "--output", help="Output file"),
    format: ExportFormat = typer.Option(ExportFormat.csv, "--format", case_sensitive=False),
    delimiter: Optional[str] = typer.Option(None, "--delimiter", help="Single-character delimiter (csv/custom)"),
    progress: bool = typer.Option(False, "--progress", help="Report progress every --progress-interval rows"),
    header: bool = typer.Option(False, "--header", help="Write column names as the first record"),
    buffer_size: int = typer.Option(DEFAULT_BUFFER_SIZE, "--buffer-size", help="Output buffer size in bytes"),
    compression: CompressionType = typer.Option(CompressionType.none, "--compression", case_sensitive=False),
    progress_interval: int = typer.Option(DEFAULT_PROGRESS_INTERVAL, "--progress-interval", help="Progress interval in rows"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Append log output to this file"),
):
    """Export the result of a query to a delimited (optionally gzipped) file."""
    overrides = CliOverrides(
        db_type=db_type,
        conn=conn,
        username=username,
        password=password,
        charset=charset,
        fetch=fetch,
        query=query,
        output=output,
        format=format,
        delimiter=delimiter,
        progress=progress,
        header=header,
        buffer_size=buffer_size,
        compression=compression,
        progress_interval=progress_interval,
        log_file=log_file,
        verbose=bool(ctx.obj and ctx.obj.get("verbose")),
    )
    # configuration errors are reported before logging is set up or a connection attempted
    try:
        cfg = resolve_config(config, overrides)
    except ExportError as e:
        _fail(e)

    try:
        setup_logging(1 if cfg.logging.verbose else 0, cfg.logging.log_file)
    except ExportError as e:
        _fail(e)
    if config:
        logger.info("Loading configuration from: %s", config)
    for line in describe_config(cfg):
        logger.debug(line)

    try:
        source = create_source(cfg.database)
        logger.info("Connecting to %s database...", cfg.database.db_type)
        try:
            stats = _run(cfg, source)
        finally:
            source.close()
    except ExportError as e:
        if cfg.logging.log_file:
            logger.error("Export failed during %s: %s", e.phase, e)
        _fail(e)

    print_summary(stats)
    logger.info("Export completed successfully!")
    print(f"[bold green]Export complete[/]: {stats.rows_exported} rows -> [cyan]{escape(cfg.export.output_file)}[/]")


if __name__ == "__main__":
    app()
