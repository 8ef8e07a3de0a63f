"""Conversation-scoped facade combining paging, caching, and assembly."""

from __future__ import annotations

import logging
from functools import partial

from ..core.config import ThreadSettings
from ..core.interfaces import MessageStore
from ..core.models import Confidence, FetchState, ThreadMessagesView
from ..ingestion.normalizer import NormalizationContext
from .assembly import Expander, assemble_thread
from .cache import PageCache
from .expansion import expand_quoted_messages
from .pagination import ThreadPager

LOGGER = logging.getLogger(__name__)

MESSAGES_TABLE = "messages"


class ThreadMessagesList:
    """Message list for the conversation currently open in a view.

    Pagers are shared through ``cache`` so several views (or HTTP requests)
    reuse pages already loaded for a conversation. Each pager only ever
    writes its own conversation's pages. A response that arrives after the
    view switched to another conversation is dropped.
    """

    def __init__(
        self,
        store: MessageStore,
        settings: ThreadSettings | None = None,
        *,
        cache: PageCache[ThreadPager] | None = None,
        context: NormalizationContext | None = None,
        inbox_email: str | None = None,
    ) -> None:
        """Bind the list to a store, settings, and an optional shared cache."""
        self._store = store
        self._settings = settings or ThreadSettings()
        self._cache: PageCache[ThreadPager] = cache or PageCache(
            ttl_seconds=self._settings.cache_ttl_seconds
        )
        self._context = context
        self._inbox_email = inbox_email
        self._conversation_id: str | None = None

    @property
    def conversation_id(self) -> str | None:
        """Conversation currently shown."""
        return self._conversation_id

    def switch(self, conversation_id: str | None) -> None:
        """Show ``conversation_id``; in-flight fetches for others are ignored."""
        if conversation_id != self._conversation_id:
            LOGGER.debug(
                "Switching conversation %s -> %s",
                self._conversation_id,
                conversation_id,
            )
        self._conversation_id = conversation_id

    async def open(self, conversation_id: str | None) -> ThreadMessagesView:
        """Switch to ``conversation_id`` and make sure its first page is loaded."""
        self.switch(conversation_id)
        if conversation_id is None:
            return self.view()
        pager = self._ensure_pager(conversation_id)
        await pager.fetch_first_page(is_current=self._guard(conversation_id))
        return self.view()

    async def fetch_next_page(self) -> ThreadMessagesView:
        """Load the next older page of the current conversation."""
        conversation_id = self._conversation_id
        if conversation_id is None:
            return self.view()
        pager = self._ensure_pager(conversation_id)
        await pager.fetch_next_page(is_current=self._guard(conversation_id))
        return self.view()

    async def retry(self) -> ThreadMessagesView:
        """Re-issue the failed request for the current conversation."""
        conversation_id = self._conversation_id
        if conversation_id is None:
            return self.view()
        pager = self._cache.get(conversation_id)
        if pager is not None:
            await pager.retry(is_current=self._guard(conversation_id))
        return self.view()

    async def refresh(self) -> ThreadMessagesView:
        """Drop cached pages and reload the first page."""
        if self._conversation_id is not None:
            self._cache.invalidate(self._conversation_id)
        return await self.open(self._conversation_id)

    def handle_change(self, table: str, conversation_id: str | None = None) -> int:
        """React to a realtime ``table changed`` event.

        A change to the messages table invalidates the affected conversation,
        or every conversation when the event does not say which one. The next
        :meth:`open` then behaves like a fresh first-page load.
        """
        if table != MESSAGES_TABLE:
            return 0
        return self._cache.invalidate(conversation_id)

    def view(self) -> ThreadMessagesView:
        """Return the assembled state of the current conversation."""
        conversation_id = self._conversation_id
        pager = (
            self._cache.get(conversation_id) if conversation_id is not None else None
        )
        if pager is None:
            return ThreadMessagesView(
                conversation_id=conversation_id,
                messages=(),
                total_count=0,
                loaded_count=0,
                remaining=0,
                confidence=Confidence.HIGH,
                has_next_page=False,
                is_loading=False,
                error=None,
                state=FetchState.IDLE,
            )

        assembled = assemble_thread(
            pager.pages,
            total_count=pager.total_count,
            seed=pager.seed,
            ceiling=self._settings.remaining_ceiling,
            expand=self._expander(),
            inbox_email=self._inbox_email,
        )
        return ThreadMessagesView(
            conversation_id=conversation_id,
            messages=assembled.messages,
            total_count=pager.total_count,
            loaded_count=assembled.loaded_count,
            remaining=assembled.remaining,
            confidence=assembled.confidence,
            has_next_page=pager.has_next_page,
            is_loading=pager.is_loading,
            error=pager.error,
            state=pager.state,
        )

    def _expander(self) -> Expander | None:
        if not self._settings.enable_quoted_extraction or self._context is None:
            return None
        return partial(expand_quoted_messages, ctx=self._context)

    def _guard(self, conversation_id: str):
        return lambda: self._conversation_id == conversation_id

    def _ensure_pager(self, conversation_id: str) -> ThreadPager:
        pager = self._cache.get(conversation_id)
        if pager is None:
            pager = ThreadPager(
                self._store,
                conversation_id,
                context=self._context,
                initial_count=self._settings.initial_visible_count,
                page_size=self._settings.page_size,
                seed_sample_size=self._settings.seed_sample_size,
                window_days=self._settings.window_days,
                inbox_email=self._inbox_email,
            )
            self._cache.set(conversation_id, pager)
        return pager


__all__ = ["MESSAGES_TABLE", "ThreadMessagesList"]
