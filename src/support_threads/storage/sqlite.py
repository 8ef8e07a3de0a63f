"""SQLite-backed message store for local development and tests."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from threading import Lock
from types import TracebackType
from typing import Any

from ..core.config import StoreSettings
from ..core.datetime_utils import parse_timestamp, serialize_datetime
from ..core.interfaces import MessageStore, StoreQueryError
from ..core.models import RawMessageRecord
from .records import record_from_row

LOGGER = logging.getLogger(__name__)

_SELECT_MESSAGES = """
    SELECT
        m.id,
        m.conversation_id,
        m.content,
        m.content_type,
        m.sender_type,
        m.sender_id,
        m.is_internal,
        m.attachments,
        m.created_at,
        m.email_subject,
        m.email_headers,
        m.external_id,
        m.email_message_id,
        m.channel,
        m.customer_phone,
        c.customer_email,
        c.customer_name,
        c.inbox_id
    FROM messages m
    LEFT JOIN conversations c ON c.id = m.conversation_id
"""


class SqliteMessageStore(MessageStore):
    """Serve message pages from a local SQLite database."""

    def __init__(self, settings: StoreSettings) -> None:
        """Open the database and apply migrations."""
        self._settings = settings
        db_path = Path(settings.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._lock = Lock()
        self._enable_foreign_keys()
        self._apply_migrations()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteMessageStore:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is closed when exiting context manager."""
        self.close_sync()

    # MessageStore API --------------------------------------------------------
    async def fetch_messages_page(
        self,
        conversation_id: str,
        *,
        limit: int,
        before: datetime | None = None,
        since: datetime | None = None,
    ) -> Sequence[RawMessageRecord]:
        """Return up to ``limit`` rows newest first, older than ``before``."""
        return await asyncio.to_thread(
            self.list_messages, conversation_id, limit=limit, before=before, since=since
        )

    async def count_messages(
        self, conversation_id: str, *, since: datetime | None = None
    ) -> int:
        """Return the number of rows stored for the conversation."""
        return await asyncio.to_thread(self.count_sync, conversation_id, since=since)

    async def close(self) -> None:
        """Close the underlying SQLite connection."""
        self.close_sync()

    # Synchronous helpers -----------------------------------------------------
    def list_messages(
        self,
        conversation_id: str,
        *,
        limit: int,
        before: datetime | None = None,
        since: datetime | None = None,
    ) -> list[RawMessageRecord]:
        """Synchronous page query used by :meth:`fetch_messages_page`."""
        if limit <= 0:
            raise ValueError("limit must be positive")
        query = [_SELECT_MESSAGES, "WHERE m.conversation_id = ?"]
        params: list[object] = [conversation_id]
        if before is not None:
            query.append("AND m.created_at < ?")
            params.append(serialize_datetime(before))
        if since is not None:
            query.append("AND m.created_at >= ?")
            params.append(serialize_datetime(since))
        query.append("ORDER BY m.created_at DESC, m.rowid DESC LIMIT ?")
        params.append(limit)
        rows = self._execute(" ".join(query), params)
        return [record_from_row(_row_to_mapping(row)) for row in rows]

    def count_sync(self, conversation_id: str, *, since: datetime | None = None) -> int:
        """Synchronous count query used by :meth:`count_messages`."""
        query = "SELECT COUNT(*) FROM messages WHERE conversation_id = ?"
        params: list[object] = [conversation_id]
        if since is not None:
            query += " AND created_at >= ?"
            params.append(serialize_datetime(since))
        rows = self._execute(query, params)
        return int(rows[0][0]) if rows else 0

    def add_conversation(
        self,
        conversation_id: str,
        *,
        customer_email: str | None = None,
        customer_name: str | None = None,
        inbox_id: str | None = None,
    ) -> None:
        """Insert or update a conversation row."""
        with self._lock, self._connection:
            self._connection.execute(
                """
                INSERT INTO conversations (id, customer_email, customer_name, inbox_id)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    customer_email=excluded.customer_email,
                    customer_name=excluded.customer_name,
                    inbox_id=excluded.inbox_id
                """,
                (conversation_id, customer_email, customer_name, inbox_id),
            )

    def add_message(
        self,
        conversation_id: str,
        message_id: str,
        *,
        created_at: datetime | str,
        content: str = "",
        content_type: str = "text/plain",
        sender_type: str = "customer",
        sender_id: str | None = None,
        is_internal: bool = False,
        attachments: Sequence[Any] = (),
        email_subject: str | None = None,
        email_headers: Any = None,
        external_id: str | None = None,
        email_message_id: str | None = None,
        channel: str = "email",
        customer_phone: str | None = None,
    ) -> None:
        # pylint: disable=too-many-arguments,too-many-locals
        """Insert a message row; unparsable timestamps are stored verbatim."""
        parsed = parse_timestamp(created_at)
        stored_created_at = (
            serialize_datetime(parsed) if parsed is not None else str(created_at)
        )
        headers_value = None
        if email_headers is not None:
            headers_value = (
                email_headers
                if isinstance(email_headers, str)
                else json.dumps(email_headers)
            )
        LOGGER.debug("Persisting message %s in %s", message_id, conversation_id)
        with self._lock, self._connection:
            self._connection.execute(
                """
                INSERT INTO messages (
                    id,
                    conversation_id,
                    content,
                    content_type,
                    sender_type,
                    sender_id,
                    is_internal,
                    attachments,
                    created_at,
                    email_subject,
                    email_headers,
                    external_id,
                    email_message_id,
                    channel,
                    customer_phone
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message_id,
                    conversation_id,
                    content,
                    content_type,
                    sender_type,
                    sender_id,
                    1 if is_internal else 0,
                    json.dumps(list(attachments)),
                    stored_created_at,
                    email_subject,
                    headers_value,
                    external_id,
                    email_message_id,
                    channel,
                    customer_phone,
                ),
            )

    def close_sync(self) -> None:
        """Close the connection outside an event loop."""
        self._connection.close()

    # Internal helpers --------------------------------------------------------
    def _execute(self, query: str, params: Sequence[object]) -> list[sqlite3.Row]:
        try:
            with self._lock:
                return self._connection.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreQueryError(f"SQLite query failed: {exc}") from exc

    def _enable_foreign_keys(self) -> None:
        with self._connection:
            self._connection.execute("PRAGMA foreign_keys = ON")

    def _apply_migrations(self) -> None:
        schema_dir = Path(__file__).resolve().parent / "schema"
        for migration in sorted(schema_dir.glob("*.sql")):
            LOGGER.debug("Applying migration %s", migration.name)
            script = migration.read_text(encoding="utf-8")
            with self._connection:
                self._connection.executescript(script)


def _row_to_mapping(row: sqlite3.Row) -> dict[str, Any]:
    mapping = {key: row[key] for key in row.keys()}
    mapping["conversation"] = {
        "customer": {
            "email": mapping.pop("customer_email"),
            "full_name": mapping.pop("customer_name"),
        },
        "inbox_id": mapping.pop("inbox_id"),
    }
    return mapping


__all__ = ["SqliteMessageStore"]
