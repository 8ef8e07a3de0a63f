"""Tests for the SQLite-backed message store."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from support_threads.core.config import StoreSettings
from support_threads.core.interfaces import StoreQueryError
from support_threads.core.models import HeaderFormat
from support_threads.storage import SqliteMessageStore

START = datetime(2025, 1, 10, 12, 0, tzinfo=UTC)


def _store(tmp_path: Path) -> SqliteMessageStore:
    store = SqliteMessageStore(StoreSettings(db_path=tmp_path / "threads.db"))
    store.add_conversation(
        "conv-1",
        customer_email="casey@example.com",
        customer_name="Casey Customer",
        inbox_id="inbox-1",
    )
    return store


def test_store_round_trips_message_columns(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        store.add_message(
            "conv-1",
            "m-1",
            created_at=START,
            content="<p>Hello</p>",
            content_type="text/html",
            attachments=[{"filename": "log.txt"}],
            email_subject="Router",
            email_headers=[
                {"name": "Message-ID", "value": "<m1@example.com>"},
                {"name": "From", "value": "Casey <casey@example.com>"},
            ],
            external_id="ext-1",
        )

        (record,) = store.list_messages("conv-1", limit=5)

    assert record.id == "m-1"
    assert record.content_type == "text/html"
    assert record.attachments == ({"filename": "log.txt"},)
    assert record.headers.format is HeaderFormat.PAIRS
    assert record.headers.message_id == "m1@example.com"
    assert record.external_id == "ext-1"
    assert record.conversation is not None
    assert record.conversation.customer_email == "casey@example.com"
    assert record.conversation.inbox_id == "inbox-1"
    assert record.created_at == "2025-01-10T12:00:00.000000+00:00"


def test_raw_header_text_is_decoded(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        store.add_message(
            "conv-1",
            "m-1",
            created_at=START,
            email_headers="Message-ID: <raw@example.com>\r\nSubject: Hi\r\n",
        )
        (record,) = store.list_messages("conv-1", limit=1)

    assert record.headers.format is HeaderFormat.RAW
    assert record.headers.message_id == "raw@example.com"


def test_pages_are_newest_first_and_respect_cursor(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        for index in range(5):
            store.add_message(
                "conv-1", f"m-{index}", created_at=START - timedelta(minutes=index)
            )

        first = store.list_messages("conv-1", limit=2)
        older = store.list_messages(
            "conv-1", limit=10, before=START - timedelta(minutes=1)
        )
        recent = store.list_messages(
            "conv-1", limit=10, since=START - timedelta(minutes=2)
        )
        total = store.count_sync("conv-1")
        recent_total = store.count_sync("conv-1", since=START - timedelta(minutes=2))

    assert [record.id for record in first] == ["m-0", "m-1"]
    assert [record.id for record in older] == ["m-2", "m-3", "m-4"]
    assert [record.id for record in recent] == ["m-0", "m-1", "m-2"]
    assert total == 5
    assert recent_total == 3


def test_unparsable_timestamp_is_stored_verbatim(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        store.add_message("conv-1", "bad", created_at="not-a-date")
        store.add_message("conv-1", "good", created_at=START)
        records = store.list_messages("conv-1", limit=5)

    assert [(record.id, record.created_at) for record in records] == [
        ("bad", "not-a-date"),
        ("good", "2025-01-10T12:00:00.000000+00:00"),
    ]


def test_messages_require_a_conversation(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        with pytest.raises(sqlite3.IntegrityError):
            store.add_message("missing", "m-1", created_at=START)


def test_query_errors_are_wrapped(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.close_sync()

    with pytest.raises(StoreQueryError):
        store.list_messages("conv-1", limit=1)


def test_migrations_create_indexes(tmp_path: Path) -> None:
    _store(tmp_path).close_sync()

    with sqlite3.connect(tmp_path / "threads.db") as conn:
        names = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")
        }
    assert "idx_messages_conversation_created" in names


@pytest.mark.asyncio
async def test_async_api_runs_queries_in_threads(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.add_message("conv-1", "m-1", created_at=START)

    records = await store.fetch_messages_page("conv-1", limit=5)
    count = await store.count_messages("conv-1")
    await store.close()

    assert [record.id for record in records] == ["m-1"]
    assert count == 1
