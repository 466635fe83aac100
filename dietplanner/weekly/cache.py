# -*- coding: utf-8 -*-
"""In-process TTL cache of weekly read responses."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from ..config import settings

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


class WeeklyDietCache:
    """Keyed by (user external id, week type); coarse, not per ISO week."""

    def __init__(self, ttl_sec: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[CacheKey, Tuple[float, Any]] = {}

    def get(self, user_key: str, week_type: str) -> Optional[Any]:
        key = (user_key, week_type)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, user_key: str, week_type: str, value: Any) -> None:
        if self.ttl_sec <= 0:
            return
        with self._lock:
            self._entries[(user_key, week_type)] = (self._clock() + self.ttl_sec, value)

    def invalidate(self, user_key: str, week_type: str) -> bool:
        with self._lock:
            return self._entries.pop((user_key, week_type), None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


weekly_diet_cache = WeeklyDietCache(ttl_sec=settings.cache_ttl_sec)


def invalidate_week(user_key: str, week_type: str) -> None:
    """Drop a cached read; never raises."""
    try:
        dropped = weekly_diet_cache.invalidate(user_key, week_type)
    except Exception as exc:
        logger.warning("cache invalidation failed for %s/%s: %s", user_key, week_type, exc)
        return
    logger.debug("cache invalidate %s/%s (hit=%s)", user_key, week_type, dropped)
