# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Content-keyed memoization of Python bridge results.

Entries expire after a TTL (checked lazily on read) and the oldest inserted
entry is dropped when the cache is full. Keys are derived from the source
text, so identical text coming from different files shares one entry.
Payloads are copied in and out, so callers may mutate what they receive.
"""

import copy
import hashlib
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class ResultCacheEntry:
    key: str
    result: Dict[str, Any]
    timestamp: float


def make_cache_key(source: str, action: str, args: Sequence[str] = ()) -> str:
    """Build the cache key for (source text, action, action arguments)."""
    digest = hashlib.md5(source.encode("utf-8")).hexdigest()
    return f"{action}:{','.join(args)}:{digest}"


class ResultCache:
    """TTL + FIFO cache of analysis payloads.

    Thread Safety:
        All public methods are thread-safe via _lock.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        max_entries: int = 50,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, ResultCacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the cached result if present and younger than the TTL."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.timestamp < self._ttl_seconds:
                return copy.deepcopy(entry.result)
            del self._entries[key]
            logger.debug(f"Result cache entry expired: {key}")
            return None

    def put(self, key: str, result: Dict[str, Any]) -> None:
        """Store a result, evicting the oldest entry when full."""
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self._max_entries:
                oldest_key, _ = self._entries.popitem(last=False)
                logger.debug(f"Result cache full, evicted {oldest_key}")
            self._entries[key] = ResultCacheEntry(
                key=key, result=copy.deepcopy(result), timestamp=self._clock()
            )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
