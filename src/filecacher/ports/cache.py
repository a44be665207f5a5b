"""Cache entry port interface."""

from collections.abc import Iterable
from typing import Protocol

from ..core.models import CacheFileEntry


class CacheEntryPort(Protocol):
    """Port for reading and transitioning cache entry records."""

    def get_files_to_cache(self, task_id: int = 0) -> list[CacheFileEntry]:
        """Get entries bound to a task, or the next queued dataset's entries when task_id is 0."""
        ...

    def get_oldest_cached_files(self, max_count: int) -> list[CacheFileEntry]:
        """Get up to max_count cached entries, oldest queued first."""
        ...

    def mark_purged(self, entry_ids: Iterable[int]) -> int:
        """Move entries to the purged state; return the number of rows updated."""
        ...
