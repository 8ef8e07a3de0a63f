"""Shared fixtures for the support thread tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from support_threads.core.config import load_app_settings
from support_threads.core.datetime_utils import serialize_datetime
from support_threads.core.interfaces import StoreQueryError
from support_threads.core.models import (
    ConversationRef,
    EmailHeaders,
    HeaderFormat,
    NormalizedMessage,
    RawMessageRecord,
)
from support_threads.ingestion.normalizer import (
    NormalizationContext,
    normalize_message,
)

BASE_TIME = datetime(2025, 1, 10, 12, 0, tzinfo=UTC)


def minutes_ago(minutes: int) -> datetime:
    """Return a timestamp ``minutes`` before the fixed test clock."""
    return BASE_TIME - timedelta(minutes=minutes)


class FakeMessageStore:
    """In-memory store that orders rows the way the SQLite store does.

    ``created_at`` values are compared as strings, so a row with an
    unparsable timestamp sorts where SQLite would put it.
    """

    def __init__(self, records: Sequence[RawMessageRecord] = ()) -> None:
        self.records: list[RawMessageRecord] = list(records)
        self.fetch_calls: list[dict[str, Any]] = []
        self.count_calls: list[dict[str, Any]] = []
        self.failures_remaining = 0
        self.count_failures_remaining = 0
        self.total_override: int | None = None
        self.closed = False
        self._gates: dict[str, asyncio.Event] = {}

    def add(self, *records: RawMessageRecord) -> None:
        self.records.extend(records)

    def fail_next(self, times: int = 1) -> None:
        self.failures_remaining = times

    def hold_older_pages(self, conversation_id: str) -> asyncio.Event:
        """Block cursor fetches for ``conversation_id`` until the event is set."""
        gate = asyncio.Event()
        self._gates[conversation_id] = gate
        return gate

    async def fetch_messages_page(
        self,
        conversation_id: str,
        *,
        limit: int,
        before: datetime | None = None,
        since: datetime | None = None,
    ) -> list[RawMessageRecord]:
        self.fetch_calls.append(
            {
                "conversation_id": conversation_id,
                "limit": limit,
                "before": before,
                "since": since,
            }
        )
        gate = self._gates.get(conversation_id)
        if gate is not None and before is not None:
            await gate.wait()
        if self.failures_remaining:
            self.failures_remaining -= 1
            raise StoreQueryError("store unavailable")
        rows = self._matching(conversation_id, since=since)
        if before is not None:
            cursor = serialize_datetime(before) or ""
            rows = [row for row in rows if (row.created_at or "") < cursor]
        return rows[:limit]

    async def count_messages(
        self, conversation_id: str, *, since: datetime | None = None
    ) -> int:
        self.count_calls.append({"conversation_id": conversation_id, "since": since})
        if self.count_failures_remaining:
            self.count_failures_remaining -= 1
            raise StoreQueryError("count unavailable")
        if self.total_override is not None:
            return self.total_override
        return len(self._matching(conversation_id, since=since))

    async def close(self) -> None:
        self.closed = True

    def _matching(
        self, conversation_id: str, *, since: datetime | None
    ) -> list[RawMessageRecord]:
        indexed = [
            (index, row)
            for index, row in enumerate(self.records)
            if row.conversation_id == conversation_id
        ]
        if since is not None:
            floor = serialize_datetime(since) or ""
            indexed = [
                (i, row) for i, row in indexed if (row.created_at or "") >= floor
            ]
        indexed.sort(
            key=lambda item: (item[1].created_at or "", item[0]), reverse=True
        )
        return [row for _, row in indexed]


def build_record(
    record_id: str | None,
    *,
    conversation_id: str = "conv-1",
    created_at: datetime | str | None = None,
    content: str = "Hello",
    content_type: str = "text/plain",
    sender_type: str = "customer",
    sender: str | None = "Casey Customer <casey@example.com>",
    to: Sequence[str] = ("support@example.com",),
    subject: str | None = None,
    message_id: str | None = None,
    in_reply_to: str | None = None,
    references: Sequence[str] = (),
    external_id: str | None = None,
    channel: str = "email",
    customer_email: str | None = "casey@example.com",
) -> RawMessageRecord:
    # pylint: disable=too-many-arguments
    """Build a raw message row with sensible email defaults."""
    if isinstance(created_at, datetime):
        created_text: str | None = serialize_datetime(created_at)
    else:
        created_text = (
            created_at if created_at is not None else serialize_datetime(BASE_TIME)
        )
    headers = EmailHeaders(
        format=HeaderFormat.MAPPING,
        message_id=message_id,
        in_reply_to=in_reply_to,
        references=tuple(references),
        sender=sender,
        to=tuple(to),
        subject=subject,
    )
    return RawMessageRecord(
        id=record_id,
        conversation_id=conversation_id,
        content=content,
        content_type=content_type,
        sender_type=sender_type,
        created_at=created_text,
        email_subject=subject,
        headers=headers,
        external_id=external_id,
        channel=channel,
        conversation=ConversationRef(
            customer_email=customer_email, customer_name="Casey Customer"
        ),
    )


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure each test sees a fresh settings instance."""

    load_app_settings.cache_clear()


@pytest.fixture
def make_record() -> Callable[..., RawMessageRecord]:
    return build_record


@pytest.fixture
def make_message() -> Callable[..., NormalizedMessage]:
    """Return a factory building normalized messages from record arguments."""

    context = NormalizationContext()

    def _make(record_id: str | None, **kwargs: Any) -> NormalizedMessage:
        return normalize_message(build_record(record_id, **kwargs), context)

    return _make


@pytest.fixture
def at() -> Callable[[int], datetime]:
    """Return the helper mapping "minutes ago" to a fixed timestamp."""
    return minutes_ago


@pytest.fixture
def store() -> FakeMessageStore:
    return FakeMessageStore()
