"""Archive enumeration and routing of entries to their handlers."""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath

from .errors import ArchiveError
from .schemas import CHAT_MESSAGES_PATH, MINUTE_WATCHED_PATH, ArchiveEntry, FileKind

LOGGER = logging.getLogger(__name__)


class EntryRoute(str, Enum):
    """Handler an archive entry is dispatched to."""

    CHAT_MESSAGES = "chat_messages"
    MINUTE_WATCHED = "minute_watched"
    GENERIC_CSV = "generic_csv"
    JSON = "json"
    OTHER = "other"


@dataclass(frozen=True)
class EntryClassification:
    """Routing decision for one archive path."""

    route: EntryRoute
    kind: FileKind
    extension: str


def entry_extension(path: str) -> str:
    """Return the lowercased extension without the dot, or `"unknown"`."""
    suffix = PurePosixPath(path).suffix
    return suffix[1:].lower() if suffix else "unknown"


def classify_entry(path: str) -> EntryClassification:
    """Route a path by extension, then by the known export locations (case-sensitive)."""
    extension = entry_extension(path)
    if extension == "csv":
        if CHAT_MESSAGES_PATH in path:
            route = EntryRoute.CHAT_MESSAGES
        elif MINUTE_WATCHED_PATH in path:
            route = EntryRoute.MINUTE_WATCHED
        else:
            route = EntryRoute.GENERIC_CSV
        return EntryClassification(route=route, kind=FileKind.CSV, extension=extension)
    if extension == "json":
        return EntryClassification(route=EntryRoute.JSON, kind=FileKind.JSON, extension=extension)
    return EntryClassification(route=EntryRoute.OTHER, kind=FileKind.OTHER, extension=extension)


def read_archive_entries(archive: bytes) -> list[ArchiveEntry]:
    """Decompress every non-directory entry of a zip archive, in archive order.

    Only failures to open the archive raise; an entry that cannot be
    decompressed comes back with `read_error` set and empty bytes.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(archive)) as zip_ref:
            entries = [_read_entry(zip_ref, info) for info in zip_ref.infolist() if not info.is_dir()]
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as exc:
        raise ArchiveError(f"Failed to open archive: {exc}") from exc

    LOGGER.info("Read %d entries from archive.", len(entries))
    return entries


def _read_entry(zip_ref: zipfile.ZipFile, info: zipfile.ZipInfo) -> ArchiveEntry:
    try:
        return ArchiveEntry(path=info.filename, raw_bytes=zip_ref.read(info))
    except (zipfile.BadZipFile, NotImplementedError, RuntimeError, EOFError, zlib.error) as exc:
        LOGGER.error("Failed to read %s from archive: %s", info.filename, exc)
        return ArchiveEntry(path=info.filename, raw_bytes=b"", read_error=str(exc))
