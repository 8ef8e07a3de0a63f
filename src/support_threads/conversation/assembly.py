"""Assemble accumulated pages into the list shown to the user."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence

from ..core.models import (
    AssembledThread,
    Confidence,
    NormalizedMessage,
    Page,
    ThreadSeed,
)
from .dedup import dedupe
from .seed import message_matches_thread

LOGGER = logging.getLogger(__name__)

DEFAULT_REMAINING_CEILING = 500

Expander = Callable[[Sequence[NormalizedMessage]], list[NormalizedMessage]]


def _has_email_metadata(message: NormalizedMessage) -> bool:
    return bool(
        message.message_id
        or message.in_reply_to
        or message.references
        or message.subject
    )


def assess_confidence(
    messages: Iterable[NormalizedMessage],
    *,
    seed: ThreadSeed | None,
    total_count: int,
    inbox_email: str | None = None,
) -> Confidence:
    """Decide whether ``total_count`` can be trusted for a remaining count.

    Confidence is low when the count already drifted (more messages loaded
    than counted) or when a loaded email message with threading metadata does
    not match the thread seed, which means the conversation mixes threads and
    the count covers more than the thread being shown.
    """
    loaded = list(messages)
    if len(loaded) > total_count:
        return Confidence.LOW
    if seed is None:
        return Confidence.HIGH
    for message in loaded:
        if message.is_synthetic or message.channel != "email":
            continue
        if not _has_email_metadata(message):
            continue
        if not message_matches_thread(message, seed, inbox_email):
            LOGGER.debug(
                "Message %s does not match the thread seed; remaining count "
                "is an estimate",
                message.id,
            )
            return Confidence.LOW
    return Confidence.HIGH


def flatten_pages(pages: Iterable[Page]) -> list[NormalizedMessage]:
    """Concatenate page messages, keeping each page's order."""
    return [message for page in pages for message in page.messages]


def sort_newest_first(messages: Iterable[NormalizedMessage]) -> list[NormalizedMessage]:
    """Stable sort by ``created_at`` descending; ties keep their input order."""
    return sorted(messages, key=lambda message: message.created_at, reverse=True)


def assemble_thread(
    pages: Sequence[Page],
    *,
    total_count: int,
    seed: ThreadSeed | None = None,
    ceiling: int = DEFAULT_REMAINING_CEILING,
    expand: Expander | None = None,
    inbox_email: str | None = None,
) -> AssembledThread:
    """Flatten, dedupe, optionally expand, and sort ``pages``.

    Rows the pages dropped (malformed or duplicate) and rows collapsed across
    pages still count as loaded, so they never show up as remaining. Once the
    last page reports no older rows nothing remains.
    """
    flattened = flatten_pages(pages)
    messages = dedupe(flattened)
    dropped = len(flattened) - len(messages)
    dropped += sum(page.dropped_count for page in pages)
    confidence = assess_confidence(
        messages, seed=seed, total_count=total_count, inbox_email=inbox_email
    )
    if expand is not None:
        messages = dedupe(expand(messages))
    visible = sort_newest_first(
        message for message in messages if not message.is_malformed
    )

    # Synthetic cards from quote expansion are not rows in the store.
    loaded_rows = sum(1 for message in visible if not message.is_synthetic)
    remaining_estimate = max(total_count - loaded_rows - dropped, 0)
    if pages and not pages[-1].has_more:
        remaining_estimate = 0
    remaining: int | None = remaining_estimate
    if confidence is not Confidence.HIGH or remaining_estimate > ceiling:
        remaining = None

    return AssembledThread(
        messages=tuple(visible),
        loaded_count=len(visible),
        remaining=remaining,
        remaining_estimate=remaining_estimate,
        confidence=confidence,
    )


__all__ = [
    "DEFAULT_REMAINING_CEILING",
    "Expander",
    "assemble_thread",
    "assess_confidence",
    "flatten_pages",
    "sort_newest_first",
]
