"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from .models import RawMessageRecord


class StoreQueryError(RuntimeError):
    """Raised when a page or count query against the message store fails."""


class MessageStore(Protocol):
    """Abstraction over the hosted message table."""

    async def fetch_messages_page(
        self,
        conversation_id: str,
        *,
        limit: int,
        before: datetime | None = None,
        since: datetime | None = None,
    ) -> Sequence[RawMessageRecord]:
        """Return up to ``limit`` rows newest first, strictly older than ``before``."""
        raise NotImplementedError

    async def count_messages(
        self, conversation_id: str, *, since: datetime | None = None
    ) -> int:
        """Return how many rows the conversation holds."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release connections held by the store."""
        raise NotImplementedError


__all__ = ["MessageStore", "StoreQueryError"]
