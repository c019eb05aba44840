"""Streaming aggregation of the minute-watched log."""

from __future__ import annotations

import logging
import math

from .chat import UNKNOWN_CHANNEL
from .columns import MINUTE_WATCHED_POLICY, require_columns
from .progress import ProgressHook, iter_batches
from .schemas import MINUTE_WATCHED_PATH, PipelineSettings, UsernameRecord, WatchTimeAggregation
from .tokenizer import field_at, parse_csv_line, split_nonempty_lines

LOGGER = logging.getLogger(__name__)
UNKNOWN_LABEL = "Unknown"


def parse_minutes(value: str | None) -> float:
    """Parse a minutes value; unparseable, non-finite, or missing values count as 0."""
    if not value or "_" in value:
        return 0.0
    try:
        minutes = float(value)
    except ValueError:
        return 0.0
    if not math.isfinite(minutes):
        return 0.0
    return minutes


def aggregate_watch_time(
    text: str,
    settings: PipelineSettings | None = None,
    hook: ProgressHook | None = None,
    path: str = MINUTE_WATCHED_PATH,
) -> tuple[list[str], WatchTimeAggregation]:
    """Sum minutes per channel and game, count platform sessions, and track login date ranges."""
    settings = settings or PipelineSettings()
    aggregation = WatchTimeAggregation()
    lines = split_nonempty_lines(text)
    if not lines:
        return [], aggregation

    headers = parse_csv_line(lines[0])
    columns = require_columns(headers, MINUTE_WATCHED_POLICY, path)
    channel_index = columns.required_index("channel_name")
    minutes_index = columns.required_index("minutes_watched_unadjusted")
    game_index = columns.index("game_name")
    user_index = columns.index("user_login")
    platform_index = columns.index("platform")
    day_index = columns.index("day")
    min_row_length = max(channel_index, minutes_index) + 1

    minutes_by_channel = aggregation.minutes_watched_frequency
    minutes_by_game = aggregation.game_stats
    sessions_by_platform = aggregation.platform_stats
    usernames = aggregation.usernames
    rows_skipped = 0

    for batch in iter_batches(lines[1:], settings.batch_size, path, hook):
        for line in batch:
            values = parse_csv_line(line)
            if len(values) < min_row_length:
                rows_skipped += 1
                continue

            channel = values[channel_index] or UNKNOWN_CHANNEL
            minutes = parse_minutes(values[minutes_index])
            minutes_by_channel[channel] = minutes_by_channel.get(channel, 0.0) + minutes

            game = field_at(values, game_index)
            if game is not None:
                game = game or UNKNOWN_LABEL
                minutes_by_game[game] = minutes_by_game.get(game, 0.0) + minutes

            platform = field_at(values, platform_index)
            if platform is not None:
                platform = platform or UNKNOWN_LABEL
                sessions_by_platform[platform] = sessions_by_platform.get(platform, 0) + 1

            username = field_at(values, user_index)
            day = field_at(values, day_index)
            if username and day:
                record = usernames.get(username)
                if record is None:
                    usernames[username] = UsernameRecord(username=username, first_seen=day, last_seen=day)
                else:
                    record.observe(day)

    LOGGER.debug(
        "Aggregated %s: %d channels, %d games, %d platforms, %d usernames, %d short rows skipped",
        path,
        len(minutes_by_channel),
        len(minutes_by_game),
        len(sessions_by_platform),
        len(usernames),
        rows_skipped,
    )
    return headers, aggregation
