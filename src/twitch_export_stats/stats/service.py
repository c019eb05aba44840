"""Overview statistics over the stored aggregate snapshot."""

from __future__ import annotations

from collections.abc import Mapping

from ..ingestion.repository import AggregateStore
from ..ingestion.schemas import AggregateSnapshot
from .schemas import OverviewStatistics, RankedEntry

DEFAULT_TABLE_LIMIT = 200


class OverviewService:
    """Collect headline numbers and ranked tables from the aggregate store."""

    def __init__(self, store: AggregateStore, top: int = 10, search: str | None = None) -> None:
        self._store = store
        self._top = top
        self._search = search

    def collect_overview(self) -> OverviewStatistics | None:
        """Return overview statistics, or None when nothing has been ingested."""
        stored = self._store.read_snapshot(preview_limit=0)
        if stored is None:
            return None
        return build_overview(stored.snapshot, top=self._top, search=self._search)


def build_overview(
    snapshot: AggregateSnapshot,
    top: int = 10,
    search: str | None = None,
    table_limit: int = DEFAULT_TABLE_LIMIT,
) -> OverviewStatistics:
    """Summarize one snapshot; `search` filters the channel and word tables."""
    chat_channels = rank_table(snapshot.chat_channel_frequency)
    words = rank_table(snapshot.word_frequency)
    return OverviewStatistics(
        total_watch_minutes=sum(snapshot.minutes_watched_frequency.values()),
        total_messages=sum(snapshot.chat_channel_frequency.values()),
        most_active_channel=chat_channels[0] if chat_channels else None,
        most_used_word=words[0] if words else None,
        top_games=rank_table(snapshot.game_stats, limit=top),
        platforms=rank_table(snapshot.platform_stats),
        chat_channels=filter_ranked(chat_channels, search, table_limit),
        watched_channels=filter_ranked(rank_table(snapshot.minutes_watched_frequency), search, table_limit),
        top_words=filter_ranked(words, search, table_limit),
        usernames=sorted(snapshot.usernames, key=lambda record: record.first_seen),
        last_updated=snapshot.last_updated,
    )


def rank_table(table: Mapping[str, float], limit: int | None = None) -> list[RankedEntry]:
    """Sort a frequency table by value descending, then label ascending."""
    ranked = sorted(table.items(), key=lambda item: (-item[1], item[0]))
    if limit is not None:
        ranked = ranked[:limit]
    return [RankedEntry(label=label, value=value) for label, value in ranked]


def filter_ranked(entries: list[RankedEntry], search: str | None, limit: int) -> list[RankedEntry]:
    """Keep labels containing `search` (case-insensitive); cap the list only when not searching."""
    if search:
        needle = search.lower()
        return [entry for entry in entries if needle in entry.label.lower()]
    return entries[:limit]
