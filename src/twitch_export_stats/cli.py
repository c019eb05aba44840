"""CLI entrypoints for Twitch data export statistics."""

from __future__ import annotations

import logging
from pathlib import Path

import orjson
import typer
from rich.console import Console

from .ingestion.errors import AggregateStoreError
from .ingestion.repository import AggregateStore
from .ingestion.schemas import BatchProgress, PipelineSettings
from .ingestion.service import IngestionService
from .paths import get_default_database_path
from .stats.render import render_files, render_messages, render_overview
from .stats.service import OverviewService

LOGGER = logging.getLogger(__name__)
DEFAULT_DATABASE_PATH = get_default_database_path()

TYPER_APP = typer.Typer(help="Twitch data export statistics.")


@TYPER_APP.callback()
def main() -> None:
    """Root CLI callback."""


@TYPER_APP.command("ingest")
def ingest_command(
    archive_path: Path = typer.Argument(..., help="Zip archive downloaded from the Twitch data export."),
    database_path: Path = typer.Option(
        DEFAULT_DATABASE_PATH,
        "--database-path",
        "-d",
        help="DuckDB file path for the aggregate snapshot and chat messages.",
    ),
    min_token_length: int = typer.Option(
        1,
        "--min-token-length",
        min=1,
        help="Shortest word counted in word frequency.",
    ),
    batch_size: int = typer.Option(10_000, "--batch-size", min=1, help="Rows processed between progress checks."),
    as_json: bool = typer.Option(False, "--json", help="Print the pipeline result as JSON instead of tables."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Aggregate an export archive and replace the stored snapshot."""
    _configure_logging(verbose)
    if not archive_path.is_file():
        raise typer.BadParameter(f"Archive file not found: {archive_path}")

    settings = PipelineSettings(batch_size=batch_size, min_token_length=min_token_length)
    database_path.parent.mkdir(parents=True, exist_ok=True)

    LOGGER.info("Start ingesting %s.", archive_path)
    store = _open_store(database_path)
    try:
        service = IngestionService(store=store, settings=settings, progress=_log_progress)
        result = service.run(archive_path.read_bytes())
    finally:
        store.close()
    LOGGER.info("Finished ingesting %s.", archive_path)

    if as_json:
        typer.echo(orjson.dumps(result.to_dict(), option=orjson.OPT_INDENT_2).decode("utf-8"))
    if result.error is not None:
        if not as_json:
            typer.echo(f"error={result.error}", err=True)
        raise typer.Exit(code=1)
    if as_json:
        return

    console = Console()
    render_files(result.files, console)
    console.print("\n")
    _emit_overview(database_path, top=10, search=None, console=console)


@TYPER_APP.command("stats")
def stats_command(
    database_path: Path = typer.Option(
        DEFAULT_DATABASE_PATH,
        "--database-path",
        "-d",
        help="DuckDB file path for the aggregate snapshot and chat messages.",
    ),
    top: int = typer.Option(10, "--top", min=1, help="Number of game categories to list."),
    search: str | None = typer.Option(None, "--search", "-s", help="Filter channel and word tables by label."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Print overview statistics for the stored snapshot."""
    _configure_logging(verbose)
    _require_database(database_path)
    _emit_overview(database_path, top=top, search=search, console=Console())


@TYPER_APP.command("messages")
def messages_command(
    channel: str = typer.Argument(..., help="Channel whose chat messages to page through."),
    database_path: Path = typer.Option(
        DEFAULT_DATABASE_PATH,
        "--database-path",
        "-d",
        help="DuckDB file path for the aggregate snapshot and chat messages.",
    ),
    limit: int = typer.Option(100, "--limit", "-n", min=0, help="Messages per page."),
    offset: int = typer.Option(0, "--offset", "-o", min=0, help="Position of the first message to show."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Print one page of a channel's messages in server-time order."""
    _configure_logging(verbose)
    _require_database(database_path)
    store = _open_store(database_path)
    try:
        messages = store.get_messages(channel, limit=limit, offset=offset)
        total = store.get_message_count(channel)
    except AggregateStoreError as exc:
        raise typer.BadParameter(str(exc)) from exc
    finally:
        store.close()

    render_messages(channel, messages, offset=offset, total=total, console=Console())


@TYPER_APP.command("channels")
def channels_command(
    database_path: Path = typer.Option(
        DEFAULT_DATABASE_PATH,
        "--database-path",
        "-d",
        help="DuckDB file path for the aggregate snapshot and chat messages.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """List channels with stored messages, busiest first."""
    _configure_logging(verbose)
    _require_database(database_path)
    store = _open_store(database_path)
    try:
        channels = store.list_channels()
    except AggregateStoreError as exc:
        raise typer.BadParameter(str(exc)) from exc
    finally:
        store.close()

    for channel, message_count in channels:
        typer.echo(f"{channel}={message_count}")


@TYPER_APP.command("clear")
def clear_command(
    database_path: Path = typer.Option(
        DEFAULT_DATABASE_PATH,
        "--database-path",
        "-d",
        help="DuckDB file path for the aggregate snapshot and chat messages.",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable info-level logging."),
) -> None:
    """Discard the stored snapshot and all chat messages."""
    _configure_logging(verbose)
    _require_database(database_path)
    if not yes:
        typer.confirm(f"Remove all stored data in {database_path}?", abort=True)
    store = _open_store(database_path)
    try:
        store.clear()
    except AggregateStoreError as exc:
        raise typer.BadParameter(str(exc)) from exc
    finally:
        store.close()
    typer.echo("Cleared stored data.")


def _emit_overview(database_path: Path, top: int, search: str | None, console: Console) -> None:
    """Load the stored snapshot and render overview tables."""
    store = _open_store(database_path)
    try:
        report = OverviewService(store, top=top, search=search).collect_overview()
    except AggregateStoreError as exc:
        raise typer.BadParameter(str(exc)) from exc
    finally:
        store.close()

    if report is None:
        console.print("No data found in the database. Run `twitch-export-stats ingest` first.")
        return
    render_overview(report, console)


def _open_store(database_path: Path) -> AggregateStore:
    try:
        return AggregateStore(database_path)
    except AggregateStoreError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _require_database(database_path: Path) -> None:
    if not database_path.exists():
        raise typer.BadParameter(f"Database file not found: {database_path}")


def _log_progress(progress: BatchProgress) -> None:
    LOGGER.info("%s: %d/%d rows", progress.path, progress.rows_processed, progress.rows_total)


def _configure_logging(verbose: bool) -> None:
    """Initialize default logging for CLI usage."""
    level = logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="[%(asctime)s][%(levelname)s][%(name)s] %(message)s",
    )


def module_cli_entry_point():
    TYPER_APP()
