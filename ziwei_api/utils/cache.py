from __future__ import annotations
import threading, time
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Optional

from ziwei_api.core.constants import CACHE_TTL_SECONDS


@dataclass(frozen=True)
class CacheEntry:
    stored_at: float
    body: str


class ChartCache:
    """
    Process-wide, in-memory chart cache with lazy TTL expiry.

    - lookup() reports an entry absent once now - stored_at >= ttl; the stale
      entry stays in the map until the next store() for the same key.
    - store() always replaces.
    - No capacity bound and no background sweep.
    """

    def __init__(self, ttl_seconds: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()

    def lookup(self, key: Hashable) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at >= self.ttl:
                return None
            return entry.body

    def store(self, key: Hashable, body: str) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(stored_at=self._clock(), body=body)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
