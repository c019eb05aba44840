"""DuckDB store for the aggregate snapshot and the ordered chat messages."""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

import duckdb
import orjson

from ..database import parse_utc_timestamp
from .errors import AggregateStoreError
from .schemas import AggregateSnapshot, ChatMessage, StoredSnapshot

LOGGER = logging.getLogger(__name__)
CURRENT_SNAPSHOT_ID = "current"
INSERT_BATCH_SIZE = 10_000


class AggregateStore:
    """DuckDB-backed store holding at most one snapshot and its messages.

    Messages are unique per `(channel, message_timestamp)`; a missing
    timestamp is stored as NULL and never collides. Each channel's messages
    carry a contiguous `channel_position` starting at 0 in ascending
    server-timestamp order, and the `(channel, channel_position)` key serves
    paginated reads.

    All calls on the shared connection are serialized by one lock, so a
    reader never observes a replacement in progress.
    """

    def __init__(self, database_path: Path | str) -> None:
        self._database_path = database_path
        self._lock = threading.RLock()
        try:
            self._connection = duckdb.connect(str(database_path))
        except duckdb.Error as exc:
            raise AggregateStoreError(f"Failed to open aggregate store at {database_path}: {exc}") from exc
        self.ensure_schema()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        with self._lock:
            self._connection.close()

    def ensure_schema(self) -> None:
        """Create store tables when missing."""
        with self._lock:
            try:
                self._create_tables()
            except duckdb.Error as exc:
                raise AggregateStoreError(f"Failed to create aggregate store schema: {exc}") from exc

    def _create_tables(self) -> None:
        _ = self._connection.execute(
            """
CREATE TABLE IF NOT EXISTS aggregate_snapshot (
    snapshot_id VARCHAR PRIMARY KEY,
    tables_json VARCHAR NOT NULL,
    last_updated TIMESTAMPTZ NOT NULL
)
            """
        )
        _ = self._connection.execute(
            """
CREATE TABLE IF NOT EXISTS chat_messages (
    channel VARCHAR NOT NULL,
    message_timestamp VARCHAR,
    server_timestamp VARCHAR NOT NULL,
    body VARCHAR NOT NULL,
    channel_position BIGINT NOT NULL,
    PRIMARY KEY (channel, channel_position),
    UNIQUE (channel, message_timestamp)
)
            """
        )

    def _drop_tables(self) -> None:
        _ = self._connection.execute("DROP TABLE IF EXISTS chat_messages")
        _ = self._connection.execute("DROP TABLE IF EXISTS aggregate_snapshot")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Open a DB transaction scope holding the store lock."""
        with self._lock:
            _ = self._connection.execute("BEGIN TRANSACTION")
            try:
                yield
            except Exception:
                _ = self._connection.execute("ROLLBACK")
                raise
            else:
                _ = self._connection.execute("COMMIT")

    def replace_all(
        self,
        snapshot: AggregateSnapshot,
        messages_by_channel: Mapping[str, Sequence[ChatMessage]],
    ) -> AggregateSnapshot:
        """Swap the stored snapshot and messages for new ones in one transaction.

        `messages_by_channel` must already be in display order. Later messages
        replace earlier ones sharing the same `(channel, timestamp)` key; messages
        without a timestamp are all kept.
        Returns the snapshot stamped with its `last_updated` time.
        """
        stored = dataclasses.replace(snapshot, last_updated=datetime.now(UTC))
        message_rows = _build_message_rows(messages_by_channel)
        try:
            with self.transaction():
                # Recreating the tables keeps re-inserted keys clear of the deleted ones.
                self._drop_tables()
                self._create_tables()
                _ = self._connection.execute(
                    """
INSERT INTO aggregate_snapshot (snapshot_id, tables_json, last_updated)
VALUES (?, ?, ?)
                    """,
                    [
                        CURRENT_SNAPSHOT_ID,
                        orjson.dumps(stored.tables_payload()).decode("utf-8"),
                        stored.last_updated,
                    ],
                )
                for start in range(0, len(message_rows), INSERT_BATCH_SIZE):
                    _ = self._connection.executemany(
                        """
INSERT INTO chat_messages (
    channel,
    message_timestamp,
    server_timestamp,
    body,
    channel_position
)
VALUES (?, ?, ?, ?, ?)
                        """,
                        message_rows[start : start + INSERT_BATCH_SIZE],
                    )
        except duckdb.Error as exc:
            raise AggregateStoreError(f"Failed to replace aggregate snapshot: {exc}") from exc

        LOGGER.info(
            "Stored snapshot with %d messages across %d channels.",
            len(message_rows),
            len(messages_by_channel),
        )
        return stored

    def read_snapshot(self, preview_limit: int = 100) -> StoredSnapshot | None:
        """Return the stored snapshot and up to `preview_limit` messages per channel, or None."""
        _validate_window(preview_limit, 0)
        with self._lock:
            try:
                row = self._connection.execute(
                    """
SELECT tables_json, CAST(timezone('UTC', last_updated) AS VARCHAR)
FROM aggregate_snapshot
WHERE snapshot_id = ?
                    """,
                    [CURRENT_SNAPSHOT_ID],
                ).fetchone()
                if row is None:
                    return None
                message_rows = self._connection.execute(
                    """
SELECT channel, body, message_timestamp, server_timestamp
FROM chat_messages
WHERE channel_position < ?
ORDER BY channel, channel_position
                    """,
                    [preview_limit],
                ).fetchall()
            except duckdb.Error as exc:
                raise AggregateStoreError(f"Failed to read aggregate snapshot: {exc}") from exc

        snapshot = AggregateSnapshot.from_tables_payload(orjson.loads(row[0]), parse_utc_timestamp(row[1]))
        streamer_messages: dict[str, list[ChatMessage]] = {}
        for message in (_row_to_message(message_row) for message_row in message_rows):
            streamer_messages.setdefault(message.channel, []).append(message)
        return StoredSnapshot(snapshot=snapshot, streamer_messages=streamer_messages)

    def get_messages(self, channel: str, limit: int = 100, offset: int = 0) -> list[ChatMessage]:
        """Return up to `limit` messages of `channel` starting at position `offset`."""
        _validate_window(limit, offset)
        if limit == 0:
            return []
        with self._lock:
            try:
                rows = self._connection.execute(
                    """
SELECT channel, body, message_timestamp, server_timestamp
FROM chat_messages
WHERE channel = ?
  AND channel_position >= ?
  AND channel_position < ?
ORDER BY channel_position
                    """,
                    [channel, offset, offset + limit],
                ).fetchall()
            except duckdb.Error as exc:
                raise AggregateStoreError(f"Failed to read messages for channel {channel}: {exc}") from exc
        return [_row_to_message(row) for row in rows]

    def get_message_count(self, channel: str) -> int:
        """Return the number of stored messages for `channel`."""
        with self._lock:
            try:
                row = self._connection.execute(
                    "SELECT COUNT(*) FROM chat_messages WHERE channel = ?",
                    [channel],
                ).fetchone()
            except duckdb.Error as exc:
                raise AggregateStoreError(f"Failed to count messages for channel {channel}: {exc}") from exc
        return int(row[0]) if row is not None else 0

    def list_channels(self) -> list[tuple[str, int]]:
        """Return `(channel, message_count)` pairs sorted by count, then name."""
        with self._lock:
            try:
                rows = self._connection.execute(
                    """
SELECT channel, COUNT(*) AS message_count
FROM chat_messages
GROUP BY channel
ORDER BY message_count DESC, channel
                    """
                ).fetchall()
            except duckdb.Error as exc:
                raise AggregateStoreError(f"Failed to list channels: {exc}") from exc
        return [(str(row[0]), int(row[1])) for row in rows]

    def clear(self) -> None:
        """Remove the snapshot and every stored message."""
        try:
            with self.transaction():
                self._drop_tables()
                self._create_tables()
        except duckdb.Error as exc:
            raise AggregateStoreError(f"Failed to clear aggregate store: {exc}") from exc
        LOGGER.info("Cleared aggregate store at %s.", self._database_path)


def _build_message_rows(messages_by_channel: Mapping[str, Sequence[ChatMessage]]) -> list[list[object]]:
    """Flatten messages into insert rows with contiguous per-channel positions."""
    rows: list[list[object]] = []
    for channel, messages in messages_by_channel.items():
        kept = keep_last_per_timestamp(messages)
        for position, message in enumerate(kept):
            rows.append([channel, message.timestamp or None, message.server_timestamp, message.body, position])
    return rows


def keep_last_per_timestamp(messages: Sequence[ChatMessage]) -> list[ChatMessage]:
    """Drop all but the last message for each non-empty timestamp, keeping survivors in order."""
    seen: set[str] = set()
    kept_reversed: list[ChatMessage] = []
    for message in reversed(messages):
        if message.timestamp:
            if message.timestamp in seen:
                continue
            seen.add(message.timestamp)
        kept_reversed.append(message)
    kept_reversed.reverse()
    return kept_reversed


def _row_to_message(row: tuple[object, ...]) -> ChatMessage:
    return ChatMessage(
        channel=str(row[0]),
        body=str(row[1]),
        timestamp="" if row[2] is None else str(row[2]),
        server_timestamp=str(row[3]),
    )


def _validate_window(limit: int, offset: int) -> None:
    if limit < 0:
        raise ValueError(f"limit must not be negative, got {limit}.")
    if offset < 0:
        raise ValueError(f"offset must not be negative, got {offset}.")
