"""Tests for the PostgREST message store."""

from __future__ import annotations

from datetime import UTC, datetime

import httpx
import pytest

from support_threads.core.config import StoreSettings
from support_threads.core.interfaces import StoreQueryError
from support_threads.storage.postgrest import (
    SELECT_CLAUSE,
    PostgrestMessageStore,
    parse_content_range,
)

SETTINGS = StoreSettings(
    backend="postgrest", base_url="https://project.example.co/", api_key="anon-key"
)

ROW = {
    "id": "m-1",
    "conversation_id": "conv-1",
    "content": "Hello",
    "content_type": "text/plain",
    "sender_type": "customer",
    "is_internal": False,
    "attachments": [],
    "created_at": "2025-01-10T12:00:00+00:00",
    "email_subject": "Router",
    "email_headers": {"message-id": "<m1@example.com>", "from": "casey@example.com"},
    "channel": "email",
    "conversation": {
        "customer": {"email": "casey@example.com", "full_name": "Casey"},
        "inbox_id": 7,
    },
}


def _store(handler) -> PostgrestMessageStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PostgrestMessageStore(SETTINGS, client=client)


def test_parse_content_range() -> None:
    assert parse_content_range("0-24/57") == 57
    assert parse_content_range("*/0") == 0
    assert parse_content_range("0-24/*") is None
    assert parse_content_range(None) is None


def test_requires_base_url() -> None:
    with pytest.raises(ValueError):
        PostgrestMessageStore(StoreSettings(backend="postgrest"))


@pytest.mark.asyncio
async def test_fetch_builds_cursor_query_and_decodes_rows() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[ROW])

    store = _store(handler)
    cursor = datetime(2025, 1, 10, 13, 0, tzinfo=UTC)
    records = await store.fetch_messages_page("conv-1", limit=4, before=cursor)

    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/messages"
    params = request.url.params
    assert params["select"] == SELECT_CLAUSE
    assert params["conversation_id"] == "eq.conv-1"
    assert params["order"] == "created_at.desc"
    assert params["limit"] == "4"
    assert params.get_list("created_at") == ["lt.2025-01-10T13:00:00.000000+00:00"]
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["authorization"] == "Bearer anon-key"

    (record,) = records
    assert record.id == "m-1"
    assert record.headers.message_id == "m1@example.com"
    assert record.conversation is not None
    assert record.conversation.customer_name == "Casey"
    assert record.conversation.inbox_id == "7"


@pytest.mark.asyncio
async def test_count_reads_content_range() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "HEAD"
        assert request.headers["prefer"] == "count=exact"
        return httpx.Response(200, headers={"Content-Range": "0-0/42"})

    store = _store(handler)

    assert await store.count_messages("conv-1") == 42


@pytest.mark.asyncio
async def test_count_without_range_is_an_error() -> None:
    store = _store(lambda request: httpx.Response(200))

    with pytest.raises(StoreQueryError):
        await store.count_messages("conv-1")


@pytest.mark.asyncio
async def test_http_failures_become_store_errors() -> None:
    store = _store(lambda request: httpx.Response(503, json={"message": "down"}))

    with pytest.raises(StoreQueryError) as excinfo:
        await store.fetch_messages_page("conv-1", limit=4)
    assert "503" in str(excinfo.value)


@pytest.mark.asyncio
async def test_transport_errors_become_store_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    store = _store(handler)

    with pytest.raises(StoreQueryError):
        await store.fetch_messages_page("conv-1", limit=4)


@pytest.mark.asyncio
async def test_unexpected_payload_is_rejected() -> None:
    store = _store(lambda request: httpx.Response(200, json={"rows": []}))

    with pytest.raises(StoreQueryError):
        await store.fetch_messages_page("conv-1", limit=4)
