"""Message store implementations."""

from .postgrest import PostgrestMessageStore
from .records import record_from_row
from .sqlite import SqliteMessageStore

__all__ = ["PostgrestMessageStore", "SqliteMessageStore", "record_from_row"]
