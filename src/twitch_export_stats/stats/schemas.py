"""Typed schemas used by the overview statistics."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ..ingestion.schemas import UsernameRecord


@dataclass(frozen=True)
class RankedEntry:
    """One label with its count or duration, in display rank order."""

    label: str
    value: float


@dataclass(frozen=True)
class OverviewStatistics:
    """Headline numbers and ranked tables for one snapshot."""

    total_watch_minutes: float
    total_messages: int
    most_active_channel: RankedEntry | None
    most_used_word: RankedEntry | None
    top_games: list[RankedEntry] = field(default_factory=list)
    platforms: list[RankedEntry] = field(default_factory=list)
    chat_channels: list[RankedEntry] = field(default_factory=list)
    watched_channels: list[RankedEntry] = field(default_factory=list)
    top_words: list[RankedEntry] = field(default_factory=list)
    usernames: list[UsernameRecord] = field(default_factory=list)
    last_updated: datetime | None = None
