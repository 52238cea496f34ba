from __future__ import annotations

"""Synonym cache construction."""

import time
from typing import Callable

from cachetools import TTLCache

SYNONYM_CACHE_SIZE = 512
SYNONYM_CACHE_TTL = 30 * 60


def build_synonym_cache(
    maxsize: int = SYNONYM_CACHE_SIZE,
    ttl: float = SYNONYM_CACHE_TTL,
    timer: Callable[[], float] = time.monotonic,
) -> TTLCache:
    """LRU-bounded keyword -> synonyms map whose entries expire after ``ttl`` seconds."""
    return TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
