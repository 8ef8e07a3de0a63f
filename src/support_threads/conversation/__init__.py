"""Thread-aware paging, deduplication, and list assembly."""

from .assembly import assemble_thread, assess_confidence
from .cache import PageCache
from .dedup import dedupe
from .expansion import expand_quoted_messages
from .pagination import ThreadPager, split_page
from .seed import build_thread_seed, message_matches_thread, normalize_subject
from .service import ThreadMessagesList

__all__ = [
    "PageCache",
    "ThreadMessagesList",
    "ThreadPager",
    "assemble_thread",
    "assess_confidence",
    "build_thread_seed",
    "dedupe",
    "expand_quoted_messages",
    "message_matches_thread",
    "normalize_subject",
    "split_page",
]
