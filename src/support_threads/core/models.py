"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

AuthorType = Literal["agent", "customer", "system"]
Direction = Literal["inbound", "outbound"]
QuoteKind = Literal["gmail", "outlook", "blockquote", "generic"]


class HeaderFormat(str, Enum):
    """Shape the email headers were stored in before decoding."""

    NONE = "none"
    PAIRS = "pairs"
    RAW = "raw"
    MAPPING = "mapping"


class Confidence(str, Enum):
    """Whether the remaining-count estimate can be shown as a number."""

    HIGH = "high"
    LOW = "low"


class FetchState(str, Enum):
    """Lifecycle of a conversation pager."""

    IDLE = "idle"
    FETCHING_FIRST = "fetching_first"
    READY = "ready"
    FETCHING_NEXT = "fetching_next"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class EmailHeaders:
    """Threading-relevant email headers decoded once at the store boundary."""

    format: HeaderFormat = HeaderFormat.NONE
    message_id: str | None = None
    in_reply_to: str | None = None
    references: tuple[str, ...] = ()
    sender: str | None = None
    to: tuple[str, ...] = ()
    cc: tuple[str, ...] = ()
    subject: str | None = None


@dataclass(slots=True, frozen=True)
class ConversationRef:
    """Conversation data joined onto each message row."""

    customer_email: str | None = None
    customer_name: str | None = None
    inbox_id: str | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True, frozen=True)
class RawMessageRecord:
    """Message row as read from the message store."""

    id: str | None
    conversation_id: str
    content: str = ""
    content_type: str = "text/plain"
    sender_type: str = "customer"
    sender_id: str | None = None
    is_internal: bool = False
    attachments: tuple[Any, ...] = ()
    created_at: str | None = None
    email_subject: str | None = None
    headers: EmailHeaders = field(default_factory=EmailHeaders)
    external_id: str | None = None
    email_message_id: str | None = None
    channel: str = "email"
    customer_phone: str | None = None
    conversation: ConversationRef | None = None


@dataclass(slots=True, frozen=True)
class Participant:
    """Sender identity resolved for display."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    user_id: str | None = None


@dataclass(slots=True, frozen=True)
class QuotedBlock:
    """Quoted history found below the visible part of a message."""

    kind: QuoteKind
    raw: str


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True, frozen=True)
class NormalizedMessage:
    """Canonical message ready for deduplication and display."""

    id: str
    dedup_key: str
    created_at: datetime
    channel: str
    sender: Participant
    recipients: tuple[str, ...]
    direction: Direction
    author_type: AuthorType
    author_label: str
    visible_body: str
    quoted_blocks: tuple[QuotedBlock, ...] = ()
    subject: str | None = None
    is_internal: bool = False
    attachments: tuple[Any, ...] = ()
    message_id: str | None = None
    in_reply_to: str | None = None
    references: tuple[str, ...] = ()
    is_malformed: bool = False
    is_synthetic: bool = False
    source: RawMessageRecord | None = None


@dataclass(slots=True, frozen=True)
class ThreadSeed:
    """Fingerprint of a conversation thread built from its newest messages."""

    message_ids: frozenset[str]
    references: frozenset[str]
    participants: frozenset[str]
    normalized_subject: str


@dataclass(slots=True, frozen=True)
class Page:
    """One fetch result for a conversation."""

    messages: tuple[NormalizedMessage, ...]
    has_more: bool
    oldest_cursor: datetime | None
    total_count: int | None = None
    seed: ThreadSeed | None = None
    malformed_count: int = 0
    duplicate_count: int = 0

    @property
    def dropped_count(self) -> int:
        """Fetched rows that did not make it into ``messages``."""
        return self.malformed_count + self.duplicate_count


@dataclass(slots=True, frozen=True)
class AssembledThread:
    """Flattened, deduplicated, newest-first message list."""

    messages: tuple[NormalizedMessage, ...]
    loaded_count: int
    remaining: int | None
    remaining_estimate: int
    confidence: Confidence


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True, frozen=True)
class ThreadMessagesView:
    """State handed to callers rendering a conversation."""

    conversation_id: str | None
    messages: tuple[NormalizedMessage, ...]
    total_count: int
    loaded_count: int
    remaining: int | None
    confidence: Confidence
    has_next_page: bool
    is_loading: bool
    error: Exception | None
    state: FetchState


__all__ = [
    "AssembledThread",
    "AuthorType",
    "Confidence",
    "ConversationRef",
    "Direction",
    "EmailHeaders",
    "FetchState",
    "HeaderFormat",
    "NormalizedMessage",
    "Page",
    "Participant",
    "QuoteKind",
    "QuotedBlock",
    "RawMessageRecord",
    "ThreadMessagesView",
    "ThreadSeed",
]
