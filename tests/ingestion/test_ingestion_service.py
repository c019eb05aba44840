"""Integration tests for the archive ingestion service."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path

import pytest

from twitch_export_stats.ingestion.errors import AggregateStoreError
from twitch_export_stats.ingestion.progress import CancellationToken
from twitch_export_stats.ingestion.repository import AggregateStore
from twitch_export_stats.ingestion.schemas import AggregateSnapshot, ChatMessage, PipelineSettings
from twitch_export_stats.ingestion.service import IngestionService, summarize_archive

CHAT_PATH = "request/site_history/chat_messages.csv"
WATCH_PATH = "request/site_history/minute_watched.csv"


def test_run_aggregates_archive_and_persists_snapshot(tmp_path: Path) -> None:
    """A full archive should yield every file, all tables, and stored messages."""
    archive = _build_zip(
        {
            CHAT_PATH: _chat_csv(
                [
                    '2024-01-01T00:00:05Z,me,foo,"hello world",2024-01-01T00:00:06Z',
                    '2024-01-01T00:00:01Z,me,foo,"hello there",2024-01-01T00:00:02Z',
                    "2024-01-01T00:00:03Z,me,bar,gg,2024-01-01T00:00:03Z",
                ]
            ),
            WATCH_PATH: _watch_csv(
                [
                    "2024-01-01,alice,foo,Chess,web,10",
                    "2024-01-05,alice,foo,Chess,web,2.5",
                    "2024-01-03,alice,bar,,ios,x",
                ]
            ),
            "request/site_history/follows.csv": "channel,followed_at,count\nfoo,2024-01-01,007\n",
            "request/account/profile.json": '{"login": "alice"}',
            "request/README": "hello",
        }
    )

    store = AggregateStore(tmp_path / "aggregates.duckdb")
    try:
        result = IngestionService(store=store).run(archive)
        stored = store.read_snapshot()
        foo_messages = store.get_messages("foo")
    finally:
        store.close()

    assert result.error is None
    assert [record.path for record in result.files] == [
        CHAT_PATH,
        WATCH_PATH,
        "request/site_history/follows.csv",
        "request/account/profile.json",
        "request/README",
    ]
    assert all(record.error is None for record in result.files)
    assert [record.extension for record in result.files] == ["csv", "csv", "csv", "json", "unknown"]
    assert result.files[2].sample_rows == [{"channel": "foo", "followed_at": "2024-01-01", "count": "7"}]

    assert result.chat_channel_frequency == {"foo": 2, "bar": 1}
    assert result.word_frequency == {"hello": 2, "world": 1, "there": 1, "gg": 1}
    assert result.minutes_watched_frequency == {"foo": 12.5, "bar": 0.0}
    assert result.game_stats == {"Chess": 12.5, "Unknown": 0.0}
    assert result.platform_stats == {"web": 2, "ios": 1}
    assert [(record.username, record.first_seen, record.last_seen) for record in result.usernames] == [
        ("alice", "2024-01-01", "2024-01-05")
    ]
    assert [message.body for message in result.streamer_messages["foo"]] == ["hello there", "hello world"]

    assert stored is not None
    assert stored.snapshot.chat_channel_frequency == result.chat_channel_frequency
    assert stored.snapshot.minutes_watched_frequency == result.minutes_watched_frequency
    assert foo_messages == result.streamer_messages["foo"]


def test_run_limits_returned_messages_but_stores_all(tmp_path: Path) -> None:
    """The caller receives a preview page while the store keeps every message."""
    rows = [f"t{index:03d},me,foo,msg {index},s{index:03d}" for index in range(7)]
    archive = _build_zip({CHAT_PATH: _chat_csv(rows)})

    store = AggregateStore(tmp_path / "aggregates.duckdb")
    try:
        result = IngestionService(store=store, settings=PipelineSettings(preview_message_limit=3)).run(archive)
        count = store.get_message_count("foo")
        page = store.get_messages("foo", limit=3, offset=3)
    finally:
        store.close()

    assert len(result.streamer_messages["foo"]) == 3
    assert count == 7
    assert [message.body for message in page] == ["msg 3", "msg 4", "msg 5"]


def test_missing_watch_columns_are_reported_on_the_file(tmp_path: Path) -> None:
    """A watch log without required columns is annotated and siblings still aggregate."""
    archive = _build_zip(
        {
            WATCH_PATH: "day,channel_name\n2024-01-01,foo\n",
            CHAT_PATH: _chat_csv(["t1,me,foo,hi,s1"]),
        }
    )

    store = AggregateStore(tmp_path / "aggregates.duckdb")
    try:
        result = IngestionService(store=store).run(archive)
    finally:
        store.close()

    assert result.error is None
    watch_record = result.files[0]
    assert watch_record.error is not None
    assert "minutes_watched_unadjusted" in watch_record.error
    assert result.minutes_watched_frequency == {}
    assert result.chat_channel_frequency == {"foo": 1}


def test_undecodable_entry_is_reported_on_the_file(tmp_path: Path) -> None:
    """Invalid UTF-8 in one CSV should not abort sibling files."""
    archive = _build_zip(
        {
            "request/site_history/broken.csv": b"\xff\xfe\xfa not utf-8",
            CHAT_PATH: _chat_csv(["t1,me,foo,hi,s1"]),
        }
    )

    store = AggregateStore(tmp_path / "aggregates.duckdb")
    try:
        result = IngestionService(store=store).run(archive)
    finally:
        store.close()

    assert result.error is None
    assert result.files[0].error is not None
    assert result.files[1].error is None
    assert result.chat_channel_frequency == {"foo": 1}


def test_corrupted_entry_is_reported_without_failing_the_run(tmp_path: Path) -> None:
    """An entry failing its CRC check should be recorded on that file only."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_STORED) as archive:
        archive.writestr(CHAT_PATH, _chat_csv(["t1,me,foo,hi,s1"]))
        archive.writestr("other/bad.csv", "id\nintact-row\n")
    corrupted = buffer.getvalue().replace(b"intact-row", b"broken-row", 1)

    store = AggregateStore(tmp_path / "aggregates.duckdb")
    try:
        result = IngestionService(store=store).run(corrupted)
    finally:
        store.close()

    assert result.error is None
    assert [record.path for record in result.files] == [CHAT_PATH, "other/bad.csv"]
    assert result.files[0].error is None
    assert result.files[1].error is not None
    assert "other/bad.csv" in result.files[1].error
    assert result.chat_channel_frequency == {"foo": 1}


def test_oversized_numeric_value_is_sampled_verbatim(tmp_path: Path) -> None:
    """Very long digit strings should not break sampling or sibling files."""
    archive = _build_zip({"misc/big.csv": "id\n" + "9" * 5000 + "\n", CHAT_PATH: _chat_csv(["t1,me,foo,hi,s1"])})

    store = AggregateStore(tmp_path / "aggregates.duckdb")
    try:
        result = IngestionService(store=store).run(archive)
    finally:
        store.close()

    assert result.error is None
    assert result.files[0].error is None
    assert result.files[0].sample_rows == [{"id": "9" * 5000}]
    assert result.chat_channel_frequency == {"foo": 1}


def test_unexpected_handler_failure_is_reported_on_the_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Any handler exception other than cancellation should land on the file record."""

    def _fail_sampling(text: str, sample_row_limit: int = 3) -> tuple[list[str], list[dict[str, str]]]:
        raise ValueError("sampling exploded")

    monkeypatch.setattr("twitch_export_stats.ingestion.service.sample_tabular_file", _fail_sampling)
    archive = _build_zip({"misc/other.csv": "a,b\n1,2\n", CHAT_PATH: _chat_csv(["t1,me,foo,hi,s1"])})

    store = AggregateStore(tmp_path / "aggregates.duckdb")
    try:
        result = IngestionService(store=store).run(archive)
    finally:
        store.close()

    assert result.error is None
    assert result.files[0].error is not None
    assert "sampling exploded" in result.files[0].error
    assert result.chat_channel_frequency == {"foo": 1}


def test_messages_without_timestamps_are_all_kept(tmp_path: Path) -> None:
    """A chat log lacking a timestamp column keeps every message in encounter order."""
    archive = _build_zip({CHAT_PATH: "channel,body\nfoo,one\nfoo,two\nfoo,three\n"})

    store = AggregateStore(tmp_path / "aggregates.duckdb")
    try:
        result = IngestionService(store=store).run(archive)
        stored_count = store.get_message_count("foo")
        stored_page = store.get_messages("foo", limit=10)
        stored = store.read_snapshot()
    finally:
        store.close()

    assert result.chat_channel_frequency == {"foo": 3}
    assert [message.body for message in result.streamer_messages["foo"]] == ["one", "two", "three"]
    assert stored_count == 3
    assert [message.body for message in stored_page] == ["one", "two", "three"]
    assert all(message.timestamp == "" for message in stored_page)
    assert stored is not None
    assert stored.streamer_messages == result.streamer_messages


def test_duplicate_timestamps_are_collapsed_in_result_and_store(tmp_path: Path) -> None:
    """The returned messages should match what the store persists."""
    archive = _build_zip({CHAT_PATH: _chat_csv(["t1,me,foo,early,s1", "t1,me,foo,late,s2", "t2,me,foo,other,s3"])})

    store = AggregateStore(tmp_path / "aggregates.duckdb")
    try:
        result = IngestionService(store=store).run(archive)
        stored_page = store.get_messages("foo", limit=10)
    finally:
        store.close()

    assert [message.body for message in result.streamer_messages["foo"]] == ["late", "other"]
    assert stored_page == result.streamer_messages["foo"]


def test_bad_archive_returns_error_only_and_keeps_previous_snapshot(tmp_path: Path) -> None:
    """An unreadable archive should produce an error-only result and leave the store alone."""
    store = AggregateStore(tmp_path / "aggregates.duckdb")
    try:
        store.replace_all(AggregateSnapshot(chat_channel_frequency={"foo": 1}), {})
        result = IngestionService(store=store).run(b"not a zip")
        stored = store.read_snapshot()
    finally:
        store.close()

    assert result.error is not None
    assert result.to_dict() == {"error": result.error}
    assert stored is not None
    assert stored.snapshot.chat_channel_frequency == {"foo": 1}


def test_store_failure_becomes_pipeline_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A failed store write must not be reported as success."""
    archive = _build_zip({CHAT_PATH: _chat_csv(["t1,me,foo,hi,s1"])})
    store = AggregateStore(tmp_path / "aggregates.duckdb")

    def _fail(_snapshot: AggregateSnapshot, _messages: dict[str, list[ChatMessage]]) -> AggregateSnapshot:
        raise AggregateStoreError("disk full")

    monkeypatch.setattr(store, "replace_all", _fail)
    try:
        result = IngestionService(store=store).run(archive)
    finally:
        store.close()

    assert result.to_dict() == {"error": "disk full"}


def test_cancellation_returns_error(tmp_path: Path) -> None:
    """A cancelled run surfaces as a top-level error and writes nothing."""
    archive = _build_zip({CHAT_PATH: _chat_csv(["t1,me,foo,hi,s1"])})
    token = CancellationToken()
    token.cancel()

    store = AggregateStore(tmp_path / "aggregates.duckdb")
    try:
        result = IngestionService(store=store, cancellation=token).run(archive)
        stored = store.read_snapshot()
    finally:
        store.close()

    assert result.error is not None
    assert "cancelled" in result.error
    assert stored is None


def test_summarize_archive_uses_first_chat_log_for_tables() -> None:
    """When two entries match the chat path the first one feeds the snapshot."""
    archive = _build_zip(
        {
            f"a/{CHAT_PATH}": _chat_csv(["t1,me,first,hi,s1"]),
            f"b/{CHAT_PATH}": _chat_csv(["t1,me,second,hi,s1"]),
        }
    )

    summary = summarize_archive(archive)

    assert len(summary.files) == 2
    assert summary.snapshot.chat_channel_frequency == {"first": 1}


def test_result_to_dict_uses_caller_field_names(tmp_path: Path) -> None:
    """The serialized result should expose the caller-facing keys."""
    archive = _build_zip({CHAT_PATH: _chat_csv(["t1,me,foo,hi,s1"])})

    store = AggregateStore(tmp_path / "aggregates.duckdb")
    try:
        payload = IngestionService(store=store).run(archive).to_dict()
    finally:
        store.close()

    assert set(payload) == {
        "files",
        "chatChannelFrequency",
        "minutesWatchedFrequency",
        "wordFrequency",
        "streamerMessages",
        "gameStats",
        "platformStats",
        "usernames",
    }
    assert payload["streamerMessages"]["foo"] == [{"body": "hi", "timestamp": "t1", "serverTimestamp": "s1"}]
    assert payload["files"][0]["kind"] == "csv"


def _build_zip(files: dict[str, str | bytes]) -> bytes:
    """Build an in-memory zip archive from path -> content."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path, content in files.items():
            archive.writestr(path, content)
    return buffer.getvalue()


def _chat_csv(rows: list[str]) -> str:
    """Build chat log text with the standard header."""
    return "\n".join(["timestamp,user_login,channel,body,server_timestamp", *rows]) + "\n"


def _watch_csv(rows: list[str]) -> str:
    """Build watch log text with the standard header."""
    return "\n".join(["day,user_login,channel_name,game_name,platform,minutes_watched_unadjusted", *rows]) + "\n"
