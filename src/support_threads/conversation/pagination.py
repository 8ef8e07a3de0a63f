"""Cursor-based paging over one conversation's messages."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from ..core.interfaces import MessageStore, StoreQueryError
from ..core.models import FetchState, Page, RawMessageRecord, ThreadSeed
from ..ingestion.normalizer import NormalizationContext, normalize_message
from .dedup import dedupe
from .seed import build_thread_seed

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

StalenessCheck = Callable[[], bool]


def split_page(rows: Sequence[T], take: int) -> tuple[list[T], bool]:
    """Keep the first ``take`` rows of an over-fetched result.

    Returns the kept rows and whether the store had more.
    """
    return list(rows[:take]), len(rows) > take


class ThreadPager:
    """Loads a conversation page by page, newest first.

    The first page asks for ``initial_count`` rows so the newest messages
    render quickly; later pages ask for ``page_size`` rows strictly older than
    the previous page's cursor. Every request over-fetches by one row to learn
    whether more exist. Requests for one pager are serialised, so a page is
    only requested once the page before it has been applied.
    """

    def __init__(
        self,
        store: MessageStore,
        conversation_id: str,
        *,
        context: NormalizationContext | None = None,
        initial_count: int = 3,
        page_size: int = 25,
        seed_sample_size: int = 5,
        window_days: int | None = None,
        inbox_email: str | None = None,
    ) -> None:
        # pylint: disable=too-many-arguments
        """Initialise the pager for ``conversation_id``."""
        if initial_count <= 0:
            raise ValueError("initial_count must be positive")
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        if seed_sample_size <= 0:
            raise ValueError("seed_sample_size must be positive")
        self._store = store
        self._conversation_id = conversation_id
        self._context = context or NormalizationContext()
        self._initial_count = initial_count
        self._page_size = page_size
        self._seed_sample_size = seed_sample_size
        self._window_days = window_days
        self._inbox_email = inbox_email
        self._since: datetime | None = None
        self._pages: list[Page] = []
        self._state = FetchState.IDLE
        self._error: StoreQueryError | None = None
        self._lock = asyncio.Lock()

    # Read-only state ----------------------------------------------------------
    @property
    def conversation_id(self) -> str:
        """Conversation this pager belongs to."""
        return self._conversation_id

    @property
    def state(self) -> FetchState:
        """Current lifecycle state."""
        return self._state

    @property
    def error(self) -> StoreQueryError | None:
        """Error from the last failed fetch, if any."""
        return self._error

    @property
    def pages(self) -> tuple[Page, ...]:
        """Pages applied so far, newest page first."""
        return tuple(self._pages)

    @property
    def total_count(self) -> int:
        """Row count captured with the first page (an estimate)."""
        return (self._pages[0].total_count or 0) if self._pages else 0

    @property
    def seed(self) -> ThreadSeed | None:
        """Thread seed captured with the first page."""
        return self._pages[0].seed if self._pages else None

    @property
    def has_next_page(self) -> bool:
        """Whether the last applied page reported older rows."""
        return bool(self._pages) and self._pages[-1].has_more

    @property
    def is_loading(self) -> bool:
        """Whether a fetch is in flight."""
        return self._state in (FetchState.FETCHING_FIRST, FetchState.FETCHING_NEXT)

    @property
    def inbox_email(self) -> str | None:
        """Inbox address used when seeding the thread."""
        return self._inbox_email

    # Fetching -----------------------------------------------------------------
    async def fetch_first_page(
        self, *, is_current: StalenessCheck | None = None
    ) -> Page | None:
        """Load the first page unless it is already loaded."""
        async with self._lock:
            if self._pages:
                return self._pages[0]
            return await self._run(first=True, is_current=is_current)

    async def fetch_next_page(
        self, *, is_current: StalenessCheck | None = None
    ) -> Page | None:
        """Load the next older page; returns ``None`` when nothing was applied."""
        async with self._lock:
            if not self._pages:
                return await self._run(first=True, is_current=is_current)
            if not self._pages[-1].has_more:
                return None
            return await self._run(first=False, is_current=is_current)

    async def retry(self, *, is_current: StalenessCheck | None = None) -> Page | None:
        """Re-issue the request that failed, with the same cursor."""
        async with self._lock:
            if self._state is not FetchState.ERROR:
                return None
            return await self._run(first=not self._pages, is_current=is_current)

    async def _run(
        self, *, first: bool, is_current: StalenessCheck | None
    ) -> Page | None:
        settled = FetchState.READY if self._pages else FetchState.IDLE
        self._state = FetchState.FETCHING_FIRST if first else FetchState.FETCHING_NEXT
        self._error = None
        cursor = None if first else self._pages[-1].oldest_cursor
        try:
            page = await self._load_page(first=first, cursor=cursor)
        except StoreQueryError as exc:
            if is_current is not None and not is_current():
                LOGGER.debug(
                    "Dropping failed fetch for stale conversation %s",
                    self._conversation_id,
                )
                self._state = settled
                return None
            LOGGER.error(
                "Message fetch failed for conversation %s (cursor %s): %s",
                self._conversation_id,
                cursor,
                exc,
            )
            self._error = exc
            self._state = FetchState.ERROR
            return None
        except BaseException:
            self._state = settled
            raise

        if is_current is not None and not is_current():
            LOGGER.debug(
                "Discarding stale page for conversation %s", self._conversation_id
            )
            self._state = settled
            return None

        self._pages.append(page)
        self._state = FetchState.READY
        return page

    async def _load_page(self, *, first: bool, cursor: datetime | None) -> Page:
        take = self._initial_count if first else self._page_size
        if first and self._window_days is not None:
            self._since = datetime.now(tz=UTC) - timedelta(days=self._window_days)

        rows = await self._store.fetch_messages_page(
            self._conversation_id, limit=take + 1, before=cursor, since=self._since
        )
        LOGGER.debug(
            "Fetched %d row(s) for conversation %s (limit %d, before %s)",
            len(rows),
            self._conversation_id,
            take + 1,
            cursor,
        )
        kept, has_more = split_page(rows, take)

        seed: ThreadSeed | None = None
        total_count: int | None = None
        if first:
            seed = build_thread_seed(
                await self._seed_sample(rows), inbox_email=self._inbox_email
            )
            total_count = await self._store.count_messages(
                self._conversation_id, since=self._since
            )
            LOGGER.debug(
                "Conversation %s holds %d message(s)",
                self._conversation_id,
                total_count,
            )
            self._bind_context(kept)

        normalized = [normalize_message(row, self._context) for row in kept]
        valid = [message for message in normalized if not message.is_malformed]
        malformed_count = len(normalized) - len(valid)
        if malformed_count:
            LOGGER.warning(
                "Dropped %d malformed message(s) from conversation %s",
                malformed_count,
                self._conversation_id,
            )

        oldest_cursor = valid[-1].created_at if valid else cursor
        if has_more and not valid:
            # The cursor cannot advance past rows without a usable timestamp.
            LOGGER.warning(
                "Stopping pagination for conversation %s: no datable rows in page",
                self._conversation_id,
            )
            has_more = False

        unique = dedupe(valid)
        return Page(
            messages=tuple(unique),
            has_more=has_more,
            oldest_cursor=oldest_cursor,
            total_count=total_count,
            seed=seed,
            malformed_count=malformed_count,
            duplicate_count=len(valid) - len(unique),
        )

    async def _seed_sample(
        self, rows: Sequence[RawMessageRecord]
    ) -> Sequence[RawMessageRecord]:
        if len(rows) >= self._seed_sample_size or len(rows) < self._initial_count + 1:
            # Either enough rows already, or the conversation has no more.
            return rows[: self._seed_sample_size]
        return await self._store.fetch_messages_page(
            self._conversation_id, limit=self._seed_sample_size, since=self._since
        )

    def _bind_context(self, rows: Sequence[RawMessageRecord]) -> None:
        if self._context.conversation_customer_email is not None:
            return
        for row in rows:
            if row.conversation is not None:
                self._context = self._context.for_conversation(
                    row.conversation.customer_email, row.conversation.customer_name
                )
                return


__all__ = ["StalenessCheck", "ThreadPager", "split_page"]
