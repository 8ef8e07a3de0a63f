"""Decode stored email headers into a single typed shape.

Rows carry headers in whichever form the importer produced: a list of
``{"name", "value"}`` pairs (Gmail API), an object holding the raw header
block (``{"raw": "..."}``), or a flat mapping (SendGrid inbound parse). This
module turns all of them into :class:`EmailHeaders` so threading code can
read fields without checking shapes again.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from email import policy
from email.parser import Parser
from email.utils import getaddresses
from typing import Any

from ..core.models import EmailHeaders, HeaderFormat

_HEADER_PARSER = Parser(policy=policy.compat32)
_REFERENCE_SPLIT = re.compile(r"[,\s]+")


def clean_message_id(value: str | None) -> str | None:
    """Strip angle brackets and whitespace from a Message-ID."""
    if not value:
        return None
    cleaned = value.strip().removeprefix("<").removesuffix(">").strip()
    return cleaned or None


def parse_references(value: str | None) -> tuple[str, ...]:
    """Split a References header into bare Message-IDs."""
    if not value:
        return ()
    refs = (clean_message_id(part) for part in _REFERENCE_SPLIT.split(value))
    return tuple(ref for ref in refs if ref)


def extract_email_address(value: str | None) -> str | None:
    """Return the address part of ``Name <user@example.com>``."""
    if not value:
        return None
    for _, address in getaddresses([value]):
        if address and "@" in address:
            return address.strip()
    return None


def canonicalize_email(value: str) -> str:
    """Lowercase and trim an address for comparisons."""
    return value.strip().lower()


def _addresses(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(
        address.strip()
        for _, address in getaddresses([value for value in values if value])
        if address and "@" in address
    )


def _format_sender(value: Any) -> str | None:
    # Some importers store From as {"email": ..., "name": ...}.
    if isinstance(value, Mapping):
        email = value.get("email")
        if not email:
            return None
        name = value.get("name")
        return f"{name} <{email}>" if name else str(email)
    if isinstance(value, str):
        return value.strip() or None
    return None


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value if item)
    return str(value)


def _from_lookup(lookup: Mapping[str, Any], fmt: HeaderFormat) -> EmailHeaders:
    """Build headers from a case-insensitive ``name -> value`` lookup."""
    to_value = _as_text(lookup.get("to"))
    cc_value = _as_text(lookup.get("cc"))
    return EmailHeaders(
        format=fmt,
        message_id=clean_message_id(
            _as_text(lookup.get("message-id") or lookup.get("x-message-id"))
        ),
        in_reply_to=clean_message_id(_as_text(lookup.get("in-reply-to"))),
        references=parse_references(_as_text(lookup.get("references"))),
        sender=_format_sender(lookup.get("from")),
        to=_addresses([to_value] if to_value else []),
        cc=_addresses([cc_value] if cc_value else []),
        subject=_as_text(lookup.get("subject")),
    )


def _decode_pairs(pairs: Iterable[Any]) -> EmailHeaders:
    lookup: dict[str, Any] = {}
    for pair in pairs:
        if not isinstance(pair, Mapping):
            continue
        name = pair.get("name")
        if isinstance(name, str) and name:
            lookup.setdefault(name.lower(), pair.get("value"))
    return _from_lookup(lookup, HeaderFormat.PAIRS)


def _decode_raw(raw: str) -> EmailHeaders:
    message = _HEADER_PARSER.parsestr(raw, headersonly=True)
    lookup: dict[str, Any] = {}
    for name, value in message.items():
        # Unfold continuation lines.
        lookup.setdefault(name.lower(), " ".join(str(value).split()))
    return _from_lookup(lookup, HeaderFormat.RAW)


def decode_email_headers(value: Any) -> EmailHeaders:
    """Decode any stored header representation into :class:`EmailHeaders`."""
    if not value:
        return EmailHeaders()
    if isinstance(value, str):
        return _decode_raw(value)
    if isinstance(value, (list, tuple)):
        return _decode_pairs(value)
    if isinstance(value, Mapping):
        raw = value.get("raw")
        if isinstance(raw, str) and raw.strip():
            return _decode_raw(raw)
        lookup = {
            str(key).lower(): item for key, item in value.items() if item is not None
        }
        return _from_lookup(lookup, HeaderFormat.MAPPING)
    return EmailHeaders()


__all__ = [
    "canonicalize_email",
    "clean_message_id",
    "decode_email_headers",
    "extract_email_address",
    "parse_references",
]
