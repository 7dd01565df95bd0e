"""
Bounded in-memory cache for range query results.
Entries are keyed by the requested window and evicted on overlapping writes.
"""

import threading
import time
from collections import OrderedDict
from datetime import datetime
from typing import List, Optional, Tuple

from src.models.price import PriceRecord

Window = Tuple[datetime, datetime]


class RangeCache:
    """
    LRU cache of range query results with a per-entry TTL.

    Access is guarded by a plain lock that is only held for dictionary
    operations, never across an await. Every invalidation bumps a version
    counter; callers take a snapshot with ``version`` before querying and pass
    it to ``put`` so that a read which raced a write does not repopulate the
    stale window.
    """

    def __init__(self, max_entries: int = 128, ttl_seconds: float = 3600.0):
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._entries: "OrderedDict[Window, Tuple[float, List[PriceRecord]]]" = OrderedDict()
        self._lock = threading.Lock()
        self._version = 0

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def get(self, start: datetime, end: datetime) -> Optional[List[PriceRecord]]:
        """Return a copy of the cached records for the window, if fresh."""
        key = (start, end)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, records = entry
            if time.monotonic() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return list(records)

    def put(self, start: datetime, end: datetime, records: List[PriceRecord],
            version: Optional[int] = None) -> bool:
        """Store records for a window. Returns False when the write was skipped."""
        if self.max_entries <= 0:
            return False
        key = (start, end)
        with self._lock:
            if version is not None and version != self._version:
                return False
            self._entries[key] = (time.monotonic(), list(records))
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
            return True

    def invalidate(self, start: datetime, end: datetime) -> int:
        """Evict every cached window overlapping [start, end)."""
        with self._lock:
            self._version += 1
            stale = [
                key for key in self._entries
                if key[0] < end and start < key[1]
            ]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._version += 1
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
