"""Collapse messages that share a dedup key."""

from __future__ import annotations

from collections.abc import Iterable

from ..core.models import NormalizedMessage


def dedupe(messages: Iterable[NormalizedMessage]) -> list[NormalizedMessage]:
    """Keep the first message seen for every dedup key, preserving order."""
    seen: set[str] = set()
    unique: list[NormalizedMessage] = []
    for message in messages:
        if message.dedup_key in seen:
            continue
        seen.add(message.dedup_key)
        unique.append(message)
    return unique


__all__ = ["dedupe"]
