"""Tests for store location and timestamp conversion helpers."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from twitch_export_stats.database import parse_utc_timestamp
from twitch_export_stats.paths import get_default_database_path


def test_default_database_path_uses_xdg_data_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("TWITCH_EXPORT_STATS_DATABASE", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
    assert get_default_database_path() == tmp_path / "twitch-export-stats" / "aggregates.duckdb"


def test_default_database_path_prefers_override(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TWITCH_EXPORT_STATS_DATABASE", str(tmp_path / "custom.duckdb"))
    assert get_default_database_path() == tmp_path / "custom.duckdb"


def test_parse_utc_timestamp() -> None:
    """Naive text is read as UTC; offsets are converted."""
    assert parse_utc_timestamp(None) is None
    assert parse_utc_timestamp("2024-01-02 03:04:05.123456") == datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=UTC)
    assert parse_utc_timestamp("2024-01-02 05:04:05+02:00") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
    with pytest.raises(TypeError):
        parse_utc_timestamp(12)  # type: ignore[arg-type]
