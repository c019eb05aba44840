"""Default filesystem locations for twitch-export-stats."""

from __future__ import annotations

import os
from pathlib import Path

DATABASE_PATH_ENV = "TWITCH_EXPORT_STATS_DATABASE"
APP_DIRECTORY = "twitch-export-stats"
DATABASE_FILENAME = "aggregates.duckdb"


def get_default_database_path() -> Path:
    """Return the store path from `TWITCH_EXPORT_STATS_DATABASE` or the XDG data directory."""
    override = os.environ.get(DATABASE_PATH_ENV)
    if override:
        return Path(override).expanduser()
    data_home = Path(os.environ.get("XDG_DATA_HOME") or "~/.local/share").expanduser()
    return data_home / APP_DIRECTORY / DATABASE_FILENAME
