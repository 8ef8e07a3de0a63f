"""Decode store rows into :class:`RawMessageRecord` values."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from ..core.models import ConversationRef, RawMessageRecord
from ..ingestion.headers import decode_email_headers

MESSAGE_COLUMNS = (
    "id",
    "conversation_id",
    "content",
    "content_type",
    "sender_type",
    "sender_id",
    "is_internal",
    "attachments",
    "created_at",
    "email_subject",
    "email_headers",
    "external_id",
    "email_message_id",
    "channel",
    "customer_phone",
)


def _load_json(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        stripped = value.strip()
        if stripped[:1] in ("{", "["):
            try:
                return json.loads(stripped)
            except json.JSONDecodeError:
                return value
    return value


def _conversation_ref(value: Any) -> ConversationRef | None:
    # PostgREST embeds to-one relations as an object, sometimes as a list.
    if isinstance(value, list):
        value = value[0] if value else None
    if not isinstance(value, Mapping):
        return None
    customer = value.get("customer")
    if isinstance(customer, list):
        customer = customer[0] if customer else None
    customer = customer if isinstance(customer, Mapping) else {}
    inbox_id = value.get("inbox_id")
    return ConversationRef(
        customer_email=customer.get("email") or value.get("customer_email"),
        customer_name=customer.get("full_name") or value.get("customer_name"),
        inbox_id=str(inbox_id) if inbox_id is not None else None,
    )


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


def record_from_row(row: Mapping[str, Any]) -> RawMessageRecord:
    """Build a record from a row mapping, decoding headers exactly once."""
    attachments = _load_json(row.get("attachments"))
    if not isinstance(attachments, list):
        attachments = []
    created_at = row.get("created_at")
    return RawMessageRecord(
        id=_optional_str(row.get("id")),
        conversation_id=str(row.get("conversation_id") or ""),
        content=row.get("content") or "",
        content_type=row.get("content_type") or "text/plain",
        sender_type=row.get("sender_type") or "customer",
        sender_id=_optional_str(row.get("sender_id")),
        is_internal=bool(row.get("is_internal")),
        attachments=tuple(attachments),
        created_at=str(created_at) if created_at is not None else None,
        email_subject=row.get("email_subject"),
        headers=decode_email_headers(_load_json(row.get("email_headers"))),
        external_id=_optional_str(row.get("external_id")),
        email_message_id=_optional_str(row.get("email_message_id")),
        channel=row.get("channel") or "email",
        customer_phone=row.get("customer_phone"),
        conversation=_conversation_ref(_load_json(row.get("conversation"))),
    )


__all__ = ["MESSAGE_COLUMNS", "record_from_row"]
