"""DuckDB value conversions shared by the store."""

from __future__ import annotations

from datetime import UTC, datetime


def parse_utc_timestamp(value: str | None) -> datetime | None:
    """Parse a `TIMESTAMP` rendered as text in UTC into an aware datetime.

    The store selects `TIMESTAMPTZ` columns through `timezone('UTC', ...)`, so
    the text carries no offset and is read as UTC.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"Expected timestamp text from DuckDB, got {type(value).__name__}.")
    parsed = datetime.fromisoformat(value.strip().replace(" ", "T", 1))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
