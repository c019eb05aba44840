"""Header-to-column resolution policies for the known export schemas."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import MissingColumnsError


@dataclass(frozen=True)
class ColumnRule:
    """How one semantic column is located in a header row.

    `names` are tried in order with case-insensitive exact matching. When none
    matches, `fallback_index` is used as a fixed position, then
    `fallback_key` borrows the index already resolved for another key.
    """

    key: str
    names: tuple[str, ...]
    fallback_index: int | None = None
    fallback_key: str | None = None


@dataclass(frozen=True)
class ColumnPolicy:
    """Ordered rules for one export schema version."""

    schema: str
    version: str
    rules: tuple[ColumnRule, ...]
    required: tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolvedColumns:
    """Zero-based column indexes keyed by semantic name; None when absent."""

    schema: str
    indexes: dict[str, int | None]
    required: tuple[str, ...]

    def index(self, key: str) -> int | None:
        return self.indexes.get(key)

    def required_index(self, key: str) -> int:
        index = self.indexes.get(key)
        if index is None:
            raise MissingColumnsError(f"Column {key} is not resolved for {self.schema}.")
        return index

    def missing_required(self) -> list[str]:
        return [key for key in self.required if self.indexes.get(key) is None]


CHAT_MESSAGES_POLICY = ColumnPolicy(
    schema="chat_messages",
    version="2",
    rules=(
        # Older exports without a channel header carried it in column 10.
        ColumnRule("channel", ("channel",), fallback_index=10),
        # `body_full` was the body column name in earlier exports.
        ColumnRule("body", ("body", "body_full")),
        ColumnRule("timestamp", ("timestamp",)),
        ColumnRule("server_timestamp", ("server_timestamp",), fallback_key="timestamp"),
    ),
    required=("channel",),
)

MINUTE_WATCHED_POLICY = ColumnPolicy(
    schema="minute_watched",
    version="1",
    rules=(
        ColumnRule("channel_name", ("channel_name",)),
        ColumnRule("minutes_watched_unadjusted", ("minutes_watched_unadjusted",)),
        ColumnRule("game_name", ("game_name",)),
        ColumnRule("user_login", ("user_login",)),
        ColumnRule("platform", ("platform",)),
        ColumnRule("day", ("day",)),
    ),
    required=("channel_name", "minutes_watched_unadjusted"),
)


def find_header(headers: list[str], name: str) -> int | None:
    """Return the first index whose header equals `name` ignoring case."""
    wanted = name.lower()
    for index, header in enumerate(headers):
        if header.lower() == wanted:
            return index
    return None


def resolve_columns(headers: list[str], policy: ColumnPolicy) -> ResolvedColumns:
    """Apply every rule of `policy` to `headers` in declaration order."""
    indexes: dict[str, int | None] = {}
    for rule in policy.rules:
        resolved: int | None = None
        for name in rule.names:
            resolved = find_header(headers, name)
            if resolved is not None:
                break
        if resolved is None and rule.fallback_index is not None:
            resolved = rule.fallback_index
        if resolved is None and rule.fallback_key is not None:
            resolved = indexes.get(rule.fallback_key)
        indexes[rule.key] = resolved
    return ResolvedColumns(schema=policy.schema, indexes=indexes, required=policy.required)


def require_columns(headers: list[str], policy: ColumnPolicy, path: str) -> ResolvedColumns:
    """Resolve columns and fail when any required column is missing."""
    columns = resolve_columns(headers, policy)
    missing = columns.missing_required()
    if missing:
        raise MissingColumnsError(f"Missing required columns in {path}: {', '.join(missing)}")
    return columns
