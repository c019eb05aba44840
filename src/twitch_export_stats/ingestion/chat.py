"""Streaming aggregation of the chat message log."""

from __future__ import annotations

import logging

from .columns import CHAT_MESSAGES_POLICY, require_columns
from .progress import ProgressHook, iter_batches
from .schemas import ChatAggregation, ChatMessage, CHAT_MESSAGES_PATH, PipelineSettings
from .tokenizer import field_at, parse_csv_line, split_nonempty_lines

LOGGER = logging.getLogger(__name__)
UNKNOWN_CHANNEL = "unknown"


def tokenize_words(text: str, min_token_length: int = 1) -> list[str]:
    """Lowercase, drop punctuation and symbols, and split on whitespace."""
    cleaned = "".join(char for char in text.lower() if char.isalnum() or char.isspace())
    return [word for word in cleaned.split() if len(word) >= min_token_length]


def aggregate_chat_messages(
    text: str,
    settings: PipelineSettings | None = None,
    hook: ProgressHook | None = None,
    path: str = CHAT_MESSAGES_PATH,
) -> tuple[list[str], ChatAggregation]:
    """Count messages per channel and words, and collect per-channel messages.

    Returns the parsed header row and the filled accumulator. Messages for
    each channel are sorted by server timestamp, ties kept in file order.
    """
    settings = settings or PipelineSettings()
    aggregation = ChatAggregation()
    lines = split_nonempty_lines(text)
    if not lines:
        return [], aggregation

    headers = parse_csv_line(lines[0])
    columns = require_columns(headers, CHAT_MESSAGES_POLICY, path)
    channel_index = columns.required_index("channel")
    body_index = columns.index("body")
    timestamp_index = columns.index("timestamp")
    server_timestamp_index = columns.index("server_timestamp")

    rows_skipped = 0
    for batch in iter_batches(lines[1:], settings.batch_size, path, hook):
        for line in batch:
            values = parse_csv_line(line)
            if len(values) <= channel_index:
                rows_skipped += 1
                continue

            channel = values[channel_index] or UNKNOWN_CHANNEL
            aggregation.channel_frequency[channel] = aggregation.channel_frequency.get(channel, 0) + 1

            body = field_at(values, body_index)
            if body is None:
                continue

            for word in tokenize_words(body, settings.min_token_length):
                aggregation.word_frequency[word] = aggregation.word_frequency.get(word, 0) + 1

            timestamp = field_at(values, timestamp_index) or ""
            server_timestamp = field_at(values, server_timestamp_index)
            aggregation.messages_by_channel.setdefault(channel, []).append(
                ChatMessage(
                    channel=channel,
                    body=body,
                    timestamp=timestamp,
                    server_timestamp=server_timestamp if server_timestamp is not None else timestamp,
                )
            )

    for messages in aggregation.messages_by_channel.values():
        messages.sort(key=lambda message: message.server_timestamp)

    LOGGER.debug(
        "Aggregated %s: %d rows counted, %d short rows skipped, %d channels, %d distinct words",
        path,
        aggregation.rows_counted,
        rows_skipped,
        len(aggregation.channel_frequency),
        len(aggregation.word_frequency),
    )
    return headers, aggregation
