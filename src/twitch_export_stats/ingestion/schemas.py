"""Typed schemas used by the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


CHAT_MESSAGES_PATH = "request/site_history/chat_messages.csv"
MINUTE_WATCHED_PATH = "request/site_history/minute_watched.csv"


class FileKind(str, Enum):
    """Coarse content type of an archive entry."""

    CSV = "csv"
    JSON = "json"
    OTHER = "other"


@dataclass(frozen=True)
class PipelineSettings:
    """Tunables for one pipeline run."""

    batch_size: int = 10_000
    min_token_length: int = 1
    preview_message_limit: int = 100
    sample_row_limit: int = 3
    max_workers: int = 4

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}.")
        if self.min_token_length < 1:
            raise ValueError(f"min_token_length must be at least 1, got {self.min_token_length}.")
        if self.preview_message_limit < 0:
            raise ValueError(f"preview_message_limit must not be negative, got {self.preview_message_limit}.")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}.")


@dataclass(frozen=True)
class ArchiveEntry:
    """One file read out of the uploaded archive; `read_error` is set when decompression failed."""

    path: str
    raw_bytes: bytes
    read_error: str | None = None


@dataclass(frozen=True)
class FileRecord:
    """Per-entry result returned to the caller."""

    path: str
    kind: FileKind
    extension: str
    headers: list[str] = field(default_factory=list)
    sample_rows: list[dict[str, str]] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "path": self.path,
            "kind": self.kind.value,
            "type": self.extension,
            "headers": self.headers,
            "sampleRows": self.sample_rows,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class ChatMessage:
    """One chat row kept for per-channel browsing."""

    channel: str
    body: str
    timestamp: str
    server_timestamp: str

    def to_dict(self) -> dict[str, str]:
        return {
            "body": self.body,
            "timestamp": self.timestamp,
            "serverTimestamp": self.server_timestamp,
        }


@dataclass
class UsernameRecord:
    """Date range in which one login name shows up in the watch log."""

    username: str
    first_seen: str
    last_seen: str

    def observe(self, day: str) -> None:
        """Widen the range to include `day` (ISO dates compare as strings)."""
        if day < self.first_seen:
            self.first_seen = day
        if day > self.last_seen:
            self.last_seen = day

    def to_dict(self) -> dict[str, str]:
        return {"username": self.username, "firstSeen": self.first_seen, "lastSeen": self.last_seen}


@dataclass
class ChatAggregation:
    """Accumulator filled by the chat aggregator."""

    channel_frequency: dict[str, int] = field(default_factory=dict)
    word_frequency: dict[str, int] = field(default_factory=dict)
    messages_by_channel: dict[str, list[ChatMessage]] = field(default_factory=dict)

    @property
    def rows_counted(self) -> int:
        """Return the number of data rows attributed to a channel."""
        return sum(self.channel_frequency.values())


@dataclass
class WatchTimeAggregation:
    """Accumulator filled by the watch-time aggregator."""

    minutes_watched_frequency: dict[str, float] = field(default_factory=dict)
    game_stats: dict[str, float] = field(default_factory=dict)
    platform_stats: dict[str, int] = field(default_factory=dict)
    usernames: dict[str, UsernameRecord] = field(default_factory=dict)


@dataclass(frozen=True)
class AggregateSnapshot:
    """Complete set of aggregate tables replaced as one unit."""

    chat_channel_frequency: dict[str, int] = field(default_factory=dict)
    minutes_watched_frequency: dict[str, float] = field(default_factory=dict)
    word_frequency: dict[str, int] = field(default_factory=dict)
    game_stats: dict[str, float] = field(default_factory=dict)
    platform_stats: dict[str, int] = field(default_factory=dict)
    usernames: list[UsernameRecord] = field(default_factory=list)
    last_updated: datetime | None = None

    def tables_payload(self) -> dict[str, Any]:
        """Return the table fields in their persisted shape."""
        return {
            "chatChannelFrequency": self.chat_channel_frequency,
            "minutesWatchedFrequency": self.minutes_watched_frequency,
            "wordFrequency": self.word_frequency,
            "gameStats": self.game_stats,
            "platformStats": self.platform_stats,
            "usernames": [record.to_dict() for record in self.usernames],
        }

    @classmethod
    def from_tables_payload(cls, payload: dict[str, Any], last_updated: datetime | None) -> AggregateSnapshot:
        """Rebuild a snapshot from its persisted table payload."""
        return cls(
            chat_channel_frequency=dict(payload.get("chatChannelFrequency") or {}),
            minutes_watched_frequency=dict(payload.get("minutesWatchedFrequency") or {}),
            word_frequency=dict(payload.get("wordFrequency") or {}),
            game_stats=dict(payload.get("gameStats") or {}),
            platform_stats=dict(payload.get("platformStats") or {}),
            usernames=[
                UsernameRecord(
                    username=item["username"],
                    first_seen=item["firstSeen"],
                    last_seen=item["lastSeen"],
                )
                for item in payload.get("usernames") or []
            ],
            last_updated=last_updated,
        )


@dataclass(frozen=True)
class StoredSnapshot:
    """Snapshot plus the first page of messages for each channel."""

    snapshot: AggregateSnapshot
    streamer_messages: dict[str, list[ChatMessage]]


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pipeline run; `error` alone when the run failed."""

    files: list[FileRecord] = field(default_factory=list)
    chat_channel_frequency: dict[str, int] = field(default_factory=dict)
    minutes_watched_frequency: dict[str, float] = field(default_factory=dict)
    word_frequency: dict[str, int] = field(default_factory=dict)
    streamer_messages: dict[str, list[ChatMessage]] = field(default_factory=dict)
    game_stats: dict[str, float] = field(default_factory=dict)
    platform_stats: dict[str, int] = field(default_factory=dict)
    usernames: list[UsernameRecord] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def failed(cls, error: str) -> PipelineResult:
        return cls(error=error)

    def to_dict(self) -> dict[str, Any]:
        """Return the caller-facing payload (no partial tables on failure)."""
        if self.error is not None:
            return {"error": self.error}
        return {
            "files": [record.to_dict() for record in self.files],
            "chatChannelFrequency": self.chat_channel_frequency,
            "minutesWatchedFrequency": self.minutes_watched_frequency,
            "wordFrequency": self.word_frequency,
            "streamerMessages": {
                channel: [message.to_dict() for message in messages]
                for channel, messages in self.streamer_messages.items()
            },
            "gameStats": self.game_stats,
            "platformStats": self.platform_stats,
            "usernames": [record.to_dict() for record in self.usernames],
        }


@dataclass(frozen=True)
class BatchProgress:
    """Progress report emitted after each processed batch of rows."""

    path: str
    rows_processed: int
    rows_total: int
