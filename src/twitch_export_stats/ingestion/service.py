"""Service orchestration for archive ingestion."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from .chat import aggregate_chat_messages
from .classifier import EntryClassification, EntryRoute, classify_entry, read_archive_entries
from .errors import (
    AggregateStoreError,
    ArchiveError,
    EntryDecodeError,
    EntryError,
    EntryReadError,
    PipelineCancelledError,
)
from .progress import CancellationToken, ProgressCallback, ProgressHook
from .repository import AggregateStore, keep_last_per_timestamp
from .sampler import sample_tabular_file
from .schemas import (
    AggregateSnapshot,
    ArchiveEntry,
    ChatAggregation,
    ChatMessage,
    FileRecord,
    PipelineResult,
    PipelineSettings,
    WatchTimeAggregation,
)
from .watch_time import aggregate_watch_time

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessedEntry:
    """File record plus whichever accumulator its handler produced."""

    record: FileRecord
    route: EntryRoute
    chat: ChatAggregation | None = None
    watch_time: WatchTimeAggregation | None = None


@dataclass(frozen=True)
class ArchiveSummary:
    """Aggregation output of one archive, before persistence."""

    files: list[FileRecord]
    snapshot: AggregateSnapshot
    messages_by_channel: dict[str, list[ChatMessage]]


class IngestionService:
    """Coordinates archive reading, per-entry aggregation, and persistence."""

    def __init__(
        self,
        store: AggregateStore,
        settings: PipelineSettings | None = None,
        progress: ProgressCallback | None = None,
        cancellation: CancellationToken | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or PipelineSettings()
        self._hook = ProgressHook(callback=progress, cancellation=cancellation)

    def run(self, archive: bytes) -> PipelineResult:
        """Aggregate `archive`, replace the stored snapshot, and return the caller payload.

        Fatal failures (unreadable archive, store write, cancellation) come back
        as an error-only result; per-file failures are annotated on the files.
        """
        try:
            summary = summarize_archive(archive, self._settings, self._hook)
            snapshot = self._store.replace_all(summary.snapshot, summary.messages_by_channel)
        except ArchiveError as exc:
            LOGGER.error("Archive could not be read: %s", exc)
            return PipelineResult.failed(str(exc))
        except AggregateStoreError as exc:
            LOGGER.error("Aggregate store update failed: %s", exc)
            return PipelineResult.failed(str(exc))
        except PipelineCancelledError as exc:
            LOGGER.warning("Pipeline cancelled: %s", exc)
            return PipelineResult.failed(str(exc))

        preview_limit = self._settings.preview_message_limit
        return PipelineResult(
            files=summary.files,
            chat_channel_frequency=snapshot.chat_channel_frequency,
            minutes_watched_frequency=snapshot.minutes_watched_frequency,
            word_frequency=snapshot.word_frequency,
            streamer_messages={
                channel: messages[:preview_limit] for channel, messages in summary.messages_by_channel.items()
            },
            game_stats=snapshot.game_stats,
            platform_stats=snapshot.platform_stats,
            usernames=snapshot.usernames,
        )


def summarize_archive(
    archive: bytes,
    settings: PipelineSettings | None = None,
    hook: ProgressHook | None = None,
) -> ArchiveSummary:
    """Read and aggregate every archive entry without touching the store."""
    settings = settings or PipelineSettings()
    entries = read_archive_entries(archive)

    with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
        processed = list(executor.map(lambda entry: process_entry(entry, settings, hook), entries))

    chat_aggregation = next((entry.chat for entry in processed if entry.chat is not None), ChatAggregation())
    watch_aggregation = next(
        (entry.watch_time for entry in processed if entry.watch_time is not None),
        WatchTimeAggregation(),
    )

    snapshot = AggregateSnapshot(
        chat_channel_frequency=chat_aggregation.channel_frequency,
        minutes_watched_frequency=watch_aggregation.minutes_watched_frequency,
        word_frequency=chat_aggregation.word_frequency,
        game_stats=watch_aggregation.game_stats,
        platform_stats=watch_aggregation.platform_stats,
        usernames=list(watch_aggregation.usernames.values()),
    )
    files = [entry.record for entry in processed]
    LOGGER.info(
        "Processed %d files (%d with errors).",
        len(files),
        sum(1 for record in files if record.error is not None),
    )
    messages_by_channel = {
        channel: keep_last_per_timestamp(messages) for channel, messages in chat_aggregation.messages_by_channel.items()
    }
    return ArchiveSummary(files=files, snapshot=snapshot, messages_by_channel=messages_by_channel)


def process_entry(
    entry: ArchiveEntry,
    settings: PipelineSettings,
    hook: ProgressHook | None = None,
) -> ProcessedEntry:
    """Decode one entry and run its handler; entry-level failures land on the record."""
    classification = classify_entry(entry.path)
    route = classification.route
    headers: list[str] = []
    sample_rows: list[dict[str, str]] = []
    chat: ChatAggregation | None = None
    watch_time: WatchTimeAggregation | None = None

    try:
        if entry.read_error is not None:
            raise EntryReadError(f"Failed to read {entry.path} from archive: {entry.read_error}")
        if route is EntryRoute.CHAT_MESSAGES:
            headers, chat = aggregate_chat_messages(_decode_entry(entry), settings, hook, path=entry.path)
        elif route is EntryRoute.MINUTE_WATCHED:
            headers, watch_time = aggregate_watch_time(_decode_entry(entry), settings, hook, path=entry.path)
        elif route is EntryRoute.GENERIC_CSV:
            headers, sample_rows = sample_tabular_file(_decode_entry(entry), settings.sample_row_limit)
    except PipelineCancelledError:
        raise
    except EntryError as exc:
        LOGGER.error("Failed to process %s: %s", entry.path, exc)
        return _failed_entry(entry, classification, route, headers, str(exc))
    except Exception as exc:
        LOGGER.exception("Unexpected failure while processing %s.", entry.path)
        return _failed_entry(entry, classification, route, headers, f"Failed to process {entry.path}: {exc}")

    record = FileRecord(
        path=entry.path,
        kind=classification.kind,
        extension=classification.extension,
        headers=headers,
        sample_rows=sample_rows,
    )
    return ProcessedEntry(record=record, route=route, chat=chat, watch_time=watch_time)


def _decode_entry(entry: ArchiveEntry) -> str:
    """Decode entry bytes as UTF-8, dropping a leading byte order mark."""
    try:
        return entry.raw_bytes.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise EntryDecodeError(f"Failed to decode {entry.path} as UTF-8: {exc}") from exc


def _failed_entry(
    entry: ArchiveEntry,
    classification: EntryClassification,
    route: EntryRoute,
    headers: list[str],
    error: str,
) -> ProcessedEntry:
    record = FileRecord(
        path=entry.path,
        kind=classification.kind,
        extension=classification.extension,
        headers=headers,
        error=error,
    )
    return ProcessedEntry(record=record, route=route)
