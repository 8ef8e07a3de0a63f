"""Normalize raw message rows into canonical messages."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from ..core.datetime_utils import EPOCH, parse_timestamp
from ..core.models import (
    AuthorType,
    Direction,
    NormalizedMessage,
    Participant,
    RawMessageRecord,
)
from .headers import canonicalize_email, clean_message_id, extract_email_address
from .quoted import classify_quoted_content, parse_email_content

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class NormalizationContext:
    """Viewer and agent identities used to frame messages for display."""

    agent_emails: frozenset[str] = field(default_factory=frozenset)
    agent_phones: frozenset[str] = field(default_factory=frozenset)
    agent_domains: frozenset[str] = field(default_factory=frozenset)
    current_user_email: str | None = None
    conversation_customer_email: str | None = None
    conversation_customer_name: str | None = None

    def for_conversation(
        self, customer_email: str | None, customer_name: str | None
    ) -> NormalizationContext:
        """Return a copy bound to a conversation's customer."""
        return replace(
            self,
            conversation_customer_email=(
                canonicalize_email(customer_email) if customer_email else None
            ),
            conversation_customer_name=customer_name,
        )

    def is_agent_email(self, email: str | None) -> bool:
        """Return ``True`` if ``email`` belongs to a known agent."""
        if not email:
            return False
        candidate = canonicalize_email(email)
        if candidate in self.agent_emails:
            return True
        if self.current_user_email and candidate == self.current_user_email:
            return True
        return any(candidate.endswith(f"@{domain}") for domain in self.agent_domains)

    def is_agent_phone(self, phone: str | None) -> bool:
        """Return ``True`` if ``phone`` belongs to a known agent."""
        return bool(phone) and phone.strip() in self.agent_phones


def create_normalization_context(
    *,
    agent_emails: Iterable[str] = (),
    agent_phones: Iterable[str] = (),
    agent_domains: Iterable[str] = (),
    current_user_email: str | None = None,
    conversation_customer_email: str | None = None,
    conversation_customer_name: str | None = None,
) -> NormalizationContext:
    """Build a context with case-insensitive identity sets."""
    context = NormalizationContext(
        agent_emails=frozenset(canonicalize_email(item) for item in agent_emails),
        agent_phones=frozenset(item.strip() for item in agent_phones),
        agent_domains=frozenset(
            item.strip().lower().lstrip("@") for item in agent_domains
        ),
        current_user_email=(
            canonicalize_email(current_user_email) if current_user_email else None
        ),
    )
    return context.for_conversation(
        conversation_customer_email, conversation_customer_name
    )


def dedup_key_for(raw: RawMessageRecord) -> str:
    """Return the identity key: Message-ID, then external id, then row id."""
    message_id = raw.headers.message_id or clean_message_id(raw.email_message_id)
    if message_id:
        return f"mid:{message_id}"
    if raw.external_id:
        return f"ext:{raw.external_id}"
    return f"db:{raw.id}"


def _resolve_sender(raw: RawMessageRecord) -> Participant:
    sender_header = raw.headers.sender
    email = extract_email_address(sender_header)
    name = None
    if sender_header and "<" in sender_header:
        name = sender_header.split("<", 1)[0].strip().strip('"') or None
    phone = raw.customer_phone if raw.channel == "sms" else None
    user_id = raw.sender_id if not email and not phone else None
    return Participant(name=name, email=email, phone=phone, user_id=user_id)


def _classify(
    raw: RawMessageRecord, sender: Participant, ctx: NormalizationContext
) -> tuple[Direction, AuthorType]:
    if raw.channel == "email":
        is_agent = ctx.is_agent_email(sender.email)
        if not is_agent and sender.email is None:
            is_agent = raw.sender_type == "agent"
    elif raw.channel == "sms":
        is_agent = ctx.is_agent_phone(sender.phone)
    else:
        is_agent = raw.sender_type == "agent"
    if raw.sender_type == "system":
        return "outbound", "system"
    return ("outbound", "agent") if is_agent else ("inbound", "customer")


def author_label(sender: Participant, author_type: AuthorType) -> str:
    """Return the display label for a message author."""
    if author_type == "agent":
        if sender.name:
            return f"{sender.name} ({sender.email})" if sender.email else sender.name
        if sender.email:
            return f"Agent ({sender.email})"
        return "Agent"
    if author_type == "system":
        return "System"
    return sender.name or sender.email or sender.phone or "Customer"


def normalize_message(
    raw: RawMessageRecord, ctx: NormalizationContext
) -> NormalizedMessage:
    """Convert ``raw`` into a :class:`NormalizedMessage`; never raises."""
    created_at = parse_timestamp(raw.created_at)
    is_malformed = created_at is None or not raw.id
    if is_malformed:
        LOGGER.debug(
            "Malformed message row %s (created_at=%r)", raw.id, raw.created_at
        )

    parsed = parse_email_content(raw.content or "", raw.content_type)
    sender = _resolve_sender(raw)
    if sender.email is None and raw.sender_type == "customer":
        sender = replace(
            sender,
            email=ctx.conversation_customer_email,
            name=sender.name or ctx.conversation_customer_name,
        )
    direction, author_type = _classify(raw, sender, ctx)

    return NormalizedMessage(
        id=raw.id or "",
        dedup_key=dedup_key_for(raw),
        created_at=created_at or EPOCH,
        channel=raw.channel,
        sender=sender,
        recipients=raw.headers.to + raw.headers.cc,
        direction=direction,
        author_type=author_type,
        author_label=author_label(sender, author_type),
        visible_body=parsed.visible_content,
        quoted_blocks=classify_quoted_content(parsed.quoted_content),
        subject=raw.email_subject or raw.headers.subject,
        is_internal=raw.is_internal,
        attachments=raw.attachments,
        message_id=raw.headers.message_id or clean_message_id(raw.email_message_id),
        in_reply_to=raw.headers.in_reply_to,
        references=raw.headers.references,
        is_malformed=is_malformed,
        source=raw,
    )


__all__ = [
    "NormalizationContext",
    "author_label",
    "create_normalization_context",
    "dedup_key_for",
    "normalize_message",
]
