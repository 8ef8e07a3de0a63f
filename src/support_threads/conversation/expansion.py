"""Turn quoted history inside messages into separate synthetic messages."""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timedelta
from email.utils import parsedate_to_datetime

from bs4 import BeautifulSoup

from ..core.datetime_utils import ensure_utc
from ..core.models import NormalizedMessage, Participant, QuotedBlock
from ..ingestion.headers import extract_email_address
from ..ingestion.normalizer import NormalizationContext, author_label

LOGGER = logging.getLogger(__name__)

_TIME = r"\d{1,2}[:.]\d{2}(?:[:.]\d{2})?(?:\s*[AaPp]\.?[Mm]\.?)?(?:\s*[+-]\d{4})?"
_GMAIL_ATTRIBUTION = re.compile(
    rf"^\s*(?:On|Den|På)\s+(?P<date>.+?{_TIME}),?\s+"
    r"(?P<who>.+?)\s+(?:wrote|skrev):\s*$",
    re.MULTILINE,
)
_LOOSE_ATTRIBUTION = re.compile(
    r"^\s*(?:On|Den|På)\s+(?P<who>.+?)\s+(?:wrote|skrev):\s*$", re.MULTILINE
)
_HEADER_LINE = re.compile(
    r"^\s*(?P<name>From|Sent|Date|To|Cc|Subject|Fra|Sendt|Til|Emne):\s*(?P<value>.*)$",
    re.IGNORECASE,
)
_SEPARATOR = re.compile(
    r"^\s*(?:-----Original Message-----|_{5,}|Begin forwarded message:)\s*$",
    re.IGNORECASE,
)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")

_DATE_FORMATS = (
    "%a, %b %d, %Y at %I:%M %p",
    "%a, %b %d, %Y %I:%M %p",
    "%b %d, %Y at %I:%M %p",
    "%A, %B %d, %Y %I:%M %p",
    "%A, %B %d, %Y %I:%M:%S %p",
    "%a, %d %b %Y %H:%M",
    "%a, %d %b %Y at %H:%M",
    "%d. %b %Y kl. %H:%M",
    "%d.%m.%Y %H:%M",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d at %H:%M",
)


def normalize_text(value: str) -> str:
    """Strip tags, collapse whitespace, and lowercase for comparisons."""
    return _WHITESPACE.sub(" ", _TAG.sub("", value)).strip().lower()


def parse_quote_date(value: str | None) -> datetime | None:
    """Best-effort parse of the date in a quote attribution or header."""
    if not value:
        return None
    text = _WHITESPACE.sub(" ", value.replace("\u00a0", " ")).strip().rstrip(",")
    try:
        return ensure_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        pass
    for fmt in _DATE_FORMATS:
        try:
            return ensure_utc(datetime.strptime(text, fmt))
        except ValueError:
            continue
    return None


def _block_text(block: QuotedBlock, *, is_html: bool) -> str:
    if is_html:
        return BeautifulSoup(block.raw, "html.parser").get_text("\n")
    return block.raw


def _split_sender(value: str) -> Participant:
    email = extract_email_address(value)
    name = value.split("<", 1)[0].strip().strip('"') if "<" in value else None
    if name is None and email is None:
        name = value.strip() or None
    return Participant(name=name or None, email=email)


def _unquote(lines: Iterable[str]) -> str:
    cleaned = []
    for line in lines:
        stripped = line.lstrip()
        while stripped.startswith(">") or stripped.startswith("&gt;"):
            stripped = stripped[1:] if stripped.startswith(">") else stripped[4:]
            stripped = stripped.removeprefix(" ")
        cleaned.append(stripped.rstrip())
    return "\n".join(cleaned).strip()


def _parse_block(
    block: QuotedBlock, *, is_html: bool = False
) -> tuple[Participant, datetime | None, str]:
    """Return sender, date and body of a quoted block."""
    lines = _block_text(block, is_html=is_html).split("\n")
    sender = Participant()
    sent_at: datetime | None = None
    body_start = 0

    for index, line in enumerate(lines):
        if not line.strip() or _SEPARATOR.match(line):
            body_start = index + 1
            continue
        attribution = _GMAIL_ATTRIBUTION.match(line)
        if attribution:
            sender = _split_sender(attribution.group("who"))
            sent_at = parse_quote_date(attribution.group("date"))
            body_start = index + 1
            break
        loose = _LOOSE_ATTRIBUTION.match(line)
        if loose:
            sender = _split_sender(loose.group("who"))
            body_start = index + 1
            break
        header = _HEADER_LINE.match(line)
        if header:
            name = header.group("name").lower()
            value = header.group("value")
            if name in ("from", "fra"):
                sender = _split_sender(value)
            elif name in ("sent", "date", "sendt"):
                sent_at = parse_quote_date(value)
            body_start = index + 1
            continue
        break

    return sender, sent_at, _unquote(lines[body_start:])


def _quoted_message(
    parent: NormalizedMessage,
    block: QuotedBlock,
    index: int,
    ctx: NormalizationContext,
) -> NormalizedMessage | None:
    source = parent.source
    is_html = source is not None and "html" in source.content_type.lower()
    sender, sent_at, body = _parse_block(block, is_html=is_html)
    normalized_body = normalize_text(body)
    if not normalized_body:
        return None

    latest_allowed = parent.created_at - timedelta(microseconds=1)
    created_at = sent_at if sent_at and sent_at <= latest_allowed else latest_allowed

    is_agent = ctx.is_agent_email(sender.email)
    author_type = "agent" if is_agent else "customer"
    digest = hashlib.sha256(normalized_body.encode("utf-8")).hexdigest()[:20]
    return replace(
        parent,
        id=f"{parent.id}:quoted:{index}",
        dedup_key=f"quoted:{digest}",
        created_at=created_at,
        sender=sender,
        recipients=(),
        direction="outbound" if is_agent else "inbound",
        author_type=author_type,
        author_label=author_label(sender, author_type),
        visible_body=body,
        quoted_blocks=(),
        attachments=(),
        message_id=None,
        in_reply_to=None,
        references=(),
        is_synthetic=True,
    )


def expand_quoted_messages(
    messages: Iterable[NormalizedMessage], ctx: NormalizationContext
) -> list[NormalizedMessage]:
    """Insert a synthetic message after each message for every quoted block.

    A synthetic message is skipped when its dedup key is already present or
    its body repeats a message that is already in the list, so expanding an
    expanded list changes nothing.
    """
    source = list(messages)
    seen_keys = {message.dedup_key for message in source}
    seen_bodies = {normalize_text(message.visible_body) for message in source}
    expanded: list[NormalizedMessage] = []
    added = 0

    for message in source:
        expanded.append(message)
        if message.is_synthetic:
            continue
        for index, block in enumerate(message.quoted_blocks):
            synthetic = _quoted_message(message, block, index, ctx)
            if synthetic is None:
                continue
            body_key = normalize_text(synthetic.visible_body)
            if synthetic.dedup_key in seen_keys or body_key in seen_bodies:
                continue
            seen_keys.add(synthetic.dedup_key)
            seen_bodies.add(body_key)
            expanded.append(synthetic)
            added += 1

    if added:
        LOGGER.debug("Expanded %d quoted block(s) into messages", added)
    return expanded


__all__ = ["expand_quoted_messages", "normalize_text", "parse_quote_date"]
