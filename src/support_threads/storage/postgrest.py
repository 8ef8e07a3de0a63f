"""Message store backed by the hosted Postgres REST API (PostgREST)."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from urllib.parse import urljoin

import httpx

from ..core.config import StoreSettings
from ..core.datetime_utils import serialize_datetime
from ..core.interfaces import MessageStore, StoreQueryError
from ..core.models import RawMessageRecord
from .records import MESSAGE_COLUMNS, record_from_row

LOGGER = logging.getLogger(__name__)

_CONVERSATION_EMBED = (
    "conversation:conversations(customer:customers(email,full_name),inbox_id)"
)
SELECT_CLAUSE = ",".join((*MESSAGE_COLUMNS, _CONVERSATION_EMBED))


def parse_content_range(header: str | None) -> int | None:
    """Return the total from a ``Content-Range`` header such as ``0-24/57``."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else None


class PostgrestMessageStore(MessageStore):
    """Query the ``messages`` table over HTTP with httpx."""

    def __init__(
        self,
        settings: StoreSettings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Create the store; ``client`` may be injected for tests."""
        if not settings.base_url:
            raise ValueError("store.base_url is required for the postgrest backend")
        self._settings = settings
        base_url = settings.base_url.rstrip("/") + "/"
        self._endpoint = urljoin(base_url, "rest/v1/messages")
        headers = {"Accept": "application/json"}
        if settings.api_key:
            headers["apikey"] = settings.api_key
            headers["Authorization"] = f"Bearer {settings.api_key}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.timeout_seconds)
        self._headers = headers

    async def fetch_messages_page(
        self,
        conversation_id: str,
        *,
        limit: int,
        before: datetime | None = None,
        since: datetime | None = None,
    ) -> Sequence[RawMessageRecord]:
        """Return up to ``limit`` rows newest first, older than ``before``."""
        params: list[tuple[str, str]] = [
            ("select", SELECT_CLAUSE),
            ("conversation_id", f"eq.{conversation_id}"),
            ("order", "created_at.desc"),
            ("limit", str(limit)),
        ]
        params.extend(self._time_filters(before=before, since=since))
        response = await self._request("GET", params, headers=self._headers)
        try:
            payload = response.json()
        except ValueError as exc:
            raise StoreQueryError("Message store returned invalid JSON") from exc
        if not isinstance(payload, list):
            raise StoreQueryError("Message store returned an unexpected payload")
        return [record_from_row(row) for row in payload if isinstance(row, dict)]

    async def count_messages(
        self, conversation_id: str, *, since: datetime | None = None
    ) -> int:
        """Return the exact row count reported in ``Content-Range``."""
        params: list[tuple[str, str]] = [
            ("select", "id"),
            ("conversation_id", f"eq.{conversation_id}"),
        ]
        params.extend(self._time_filters(before=None, since=since))
        headers = {**self._headers, "Prefer": "count=exact"}
        response = await self._request("HEAD", params, headers=headers)
        total = parse_content_range(response.headers.get("content-range"))
        if total is None:
            raise StoreQueryError("Message store did not report a row count")
        return total

    async def close(self) -> None:
        """Close the HTTP client if this store created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        params: list[tuple[str, str]],
        *,
        headers: dict[str, str],
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method, self._endpoint, params=params, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StoreQueryError(
                f"Message store answered {exc.response.status_code} for {method}"
            ) from exc
        except httpx.HTTPError as exc:
            raise StoreQueryError(f"Message store request failed: {exc}") from exc
        return response

    @staticmethod
    def _time_filters(
        *, before: datetime | None, since: datetime | None
    ) -> list[tuple[str, str]]:
        filters: list[tuple[str, str]] = []
        if before is not None:
            filters.append(("created_at", f"lt.{serialize_datetime(before)}"))
        if since is not None:
            filters.append(("created_at", f"gte.{serialize_datetime(since)}"))
        return filters


__all__ = ["PostgrestMessageStore", "SELECT_CLAUSE", "parse_content_range"]
