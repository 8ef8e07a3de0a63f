"""Thread seed construction and thread membership checks."""

from __future__ import annotations

import re
from collections.abc import Sequence

from ..core.models import NormalizedMessage, RawMessageRecord, ThreadSeed
from ..ingestion.headers import canonicalize_email, extract_email_address

_REPLY_PREFIX = re.compile(r"^\s*(?:re|fwd?|fw|aw|sv|vs)\s*:\s*", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def normalize_subject(subject: str | None) -> str:
    """Strip reply/forward markers, collapse whitespace, and lowercase."""
    if not subject:
        return ""
    text = subject
    while True:
        stripped = _REPLY_PREFIX.sub("", text, count=1)
        if stripped == text:
            break
        text = stripped
    return _WHITESPACE.sub(" ", text).strip().lower()


def _record_participants(record: RawMessageRecord) -> set[str]:
    participants: set[str] = set()
    sender = extract_email_address(record.headers.sender)
    if sender:
        participants.add(canonicalize_email(sender))
    for address in record.headers.to + record.headers.cc:
        participants.add(canonicalize_email(address))
    if record.conversation and record.conversation.customer_email:
        participants.add(canonicalize_email(record.conversation.customer_email))
    return participants


def build_thread_seed(
    sample: Sequence[RawMessageRecord], inbox_email: str | None = None
) -> ThreadSeed | None:
    """Fingerprint a thread from its newest rows (newest first).

    Returns ``None`` for an empty sample.
    """
    if not sample:
        return None

    message_ids: set[str] = set()
    references: set[str] = set()
    participants: set[str] = set()
    normalized_subject = ""

    for record in sample:
        headers = record.headers
        if headers.message_id:
            message_ids.add(headers.message_id)
        elif record.email_message_id:
            message_ids.add(record.email_message_id.strip("<> "))
        if headers.in_reply_to:
            references.add(headers.in_reply_to)
        references.update(headers.references)
        if not normalized_subject:
            normalized_subject = normalize_subject(
                record.email_subject or headers.subject
            )
        participants.update(_record_participants(record))

    if inbox_email:
        participants.add(canonicalize_email(inbox_email))

    return ThreadSeed(
        message_ids=frozenset(message_ids),
        references=frozenset(references),
        participants=frozenset(participants),
        normalized_subject=normalized_subject,
    )


def _message_participants(message: NormalizedMessage) -> set[str]:
    participants = {canonicalize_email(address) for address in message.recipients}
    if message.sender.email:
        participants.add(canonicalize_email(message.sender.email))
    if message.source is not None:
        participants.update(_record_participants(message.source))
    return participants


def message_matches_thread(
    message: NormalizedMessage,
    seed: ThreadSeed,
    inbox_email: str | None = None,
) -> bool:
    """Return ``True`` when ``message`` belongs to the seeded thread.

    Header linkage decides first: the message's Message-ID is one of the
    seed's messages or references, or its In-Reply-To/References point at a
    seed message. Without linkage both the normalized subject must equal the
    seed subject and the participant sets must overlap.
    """
    if message.message_id and (
        message.message_id in seed.message_ids
        or message.message_id in seed.references
    ):
        return True
    if message.in_reply_to and message.in_reply_to in seed.message_ids:
        return True
    if any(ref in seed.message_ids for ref in message.references):
        return True

    if not seed.normalized_subject:
        return False
    if normalize_subject(message.subject) != seed.normalized_subject:
        return False
    participants = _message_participants(message)
    if inbox_email:
        participants.add(canonicalize_email(inbox_email))
    return not participants.isdisjoint(seed.participants)


__all__ = ["build_thread_seed", "message_matches_thread", "normalize_subject"]
