"""Rich rendering helpers for export statistics."""

from __future__ import annotations

import math

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..ingestion.schemas import ChatMessage, FileRecord
from .schemas import OverviewStatistics, RankedEntry

TABLE_ROW_STYLES = ["white", "yellow"]


def format_duration(minutes: float) -> str:
    """Format minutes as `45m` or `2h 5m`."""
    hours = math.floor(minutes / 60)
    remaining_minutes = math.floor(minutes % 60 + 0.5)
    if hours == 0:
        return f"{remaining_minutes}m"
    return f"{hours}h {remaining_minutes}m"


def render_overview(report: OverviewStatistics, console: Console) -> None:
    """Render headline numbers and ranked tables."""
    summary = Table(title="Overview", title_justify="left", show_header=False)
    summary.add_column("Metric", justify="left")
    summary.add_column("Value", justify="right")
    summary.add_row("Total Watch Time", format_duration(report.total_watch_minutes))
    summary.add_row("Total Messages", f"{report.total_messages:,}")
    if report.most_active_channel is not None:
        summary.add_row(
            "Most Active Channel",
            f"{escape(report.most_active_channel.label)} ({int(report.most_active_channel.value):,})",
        )
    if report.most_used_word is not None:
        summary.add_row(
            "Most Used Word",
            f"{escape(report.most_used_word.label)} ({int(report.most_used_word.value):,})",
        )
    if report.last_updated is not None:
        summary.add_row("Last Updated", report.last_updated.isoformat(timespec="seconds"))
    console.print(summary)
    console.print("\n")

    _print_ranked_table("Top Game Categories", "Game", "Time Watched", report.top_games, console, duration=True)
    _print_ranked_table("Platform Usage", "Platform", "Sessions", report.platforms, console)
    _print_ranked_table("Chat Messages by Channel", "Channel", "Messages", report.chat_channels, console)
    _print_ranked_table(
        "Minutes Watched by Channel", "Channel", "Time Watched", report.watched_channels, console, duration=True
    )
    _print_ranked_table("Word Frequency", "Word", "Count", report.top_words, console)

    if report.usernames:
        table = Table(title="Usernames", title_justify="left")
        table.add_column("Username", justify="left")
        table.add_column("First Seen", justify="left")
        table.add_column("Last Seen", justify="left")
        for index, record in enumerate(report.usernames):
            style = TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)]
            table.add_row(escape(record.username), record.first_seen, record.last_seen, style=style)
        console.print(table)


def render_files(files: list[FileRecord], console: Console) -> None:
    """Render the per-entry file list with any error annotations."""
    table = Table(title="Archive Files", title_justify="left")
    table.add_column("Path", justify="left")
    table.add_column("Type", justify="left")
    table.add_column("Columns", justify="right")
    table.add_column("Error", justify="left", style="red")
    for index, record in enumerate(files):
        style = TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)]
        table.add_row(
            escape(record.path), record.extension, str(len(record.headers)), escape(record.error or ""), style=style
        )
    console.print(table)


def render_messages(
    channel: str,
    messages: list[ChatMessage],
    offset: int,
    total: int,
    console: Console,
) -> None:
    """Render one page of a channel's messages."""
    if not messages:
        console.print(f"No messages found for channel {escape(channel)} at offset {offset}.")
        return

    first = offset + 1
    last = offset + len(messages)
    table = Table(title=f"Messages for {escape(channel)} ({first}-{last} of {total:,})", title_justify="left")
    table.add_column("#", justify="right")
    table.add_column("Server Time", justify="left")
    table.add_column("Message", justify="left")
    for index, message in enumerate(messages):
        style = TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)]
        table.add_row(str(first + index), message.server_timestamp, escape(message.body), style=style)
    console.print(table)


def _print_ranked_table(
    title: str,
    label_header: str,
    value_header: str,
    entries: list[RankedEntry],
    console: Console,
    duration: bool = False,
) -> None:
    """Render one label/value table with a total footer."""
    if not entries:
        return

    table = Table(title=title, show_footer=True, title_justify="left")
    table.add_column(label_header, footer="Total", justify="left")
    table.add_column(value_header, footer_style="bold", justify="right")

    total = 0.0
    for index, entry in enumerate(entries):
        total += entry.value
        style = TABLE_ROW_STYLES[index % len(TABLE_ROW_STYLES)]
        table.add_row(escape(entry.label), _format_value(entry.value, duration), style=style)

    table.columns[1].footer = _format_value(total, duration)
    console.print(table)
    console.print("\n")


def _format_value(value: float, duration: bool) -> str:
    if duration:
        return format_duration(value)
    return f"{int(value):,}"
