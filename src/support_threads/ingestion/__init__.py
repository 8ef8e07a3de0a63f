"""Ingestion components: header decoding, quote parsing, normalization."""

from .headers import (
    canonicalize_email,
    clean_message_id,
    decode_email_headers,
    extract_email_address,
    parse_references,
)
from .normalizer import (
    NormalizationContext,
    create_normalization_context,
    dedup_key_for,
    normalize_message,
)
from .quoted import ParsedEmailContent, parse_email_content

__all__ = [
    "NormalizationContext",
    "ParsedEmailContent",
    "canonicalize_email",
    "clean_message_id",
    "create_normalization_context",
    "decode_email_headers",
    "dedup_key_for",
    "extract_email_address",
    "normalize_message",
    "parse_email_content",
    "parse_references",
]
