"""
Session cache of canonical keys already emitted during one page lifetime.

Purpose
-------
Skip re-emitting pairs the scanner already sent in this session. The
aggregate store performs its own first-seen-wins merge, so losing an entry
here (LRU eviction, an explicit clear) only costs a redundant message.

Env
---
SESSION_CACHE_SIZE     (default: "50000")
"""

from __future__ import annotations

from typing import List, Optional

import cachetools

from .config import get_settings
from .logging_utils import get_logger

log = get_logger("session_cache")


class SessionCache:
    def __init__(self, maxsize: Optional[int] = None):
        size = maxsize if maxsize is not None else get_settings().session_cache_size
        if size < 1:
            raise ValueError("session cache size must be positive")
        self.maxsize = size
        self._cache: cachetools.LRUCache = cachetools.LRUCache(maxsize=size)

    def seen(self, key: str) -> bool:
        return key in self._cache

    def mark_seen(self, key: str) -> None:
        self._cache[key] = True

    def clear(self) -> None:
        count = len(self._cache)
        self._cache.clear()
        log.info("session_cache_cleared keys=%d", count)

    def keys(self) -> List[str]:
        return list(self._cache.keys())

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: object) -> bool:
        return key in self._cache
