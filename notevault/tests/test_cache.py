from __future__ import annotations

from notevault.rag.cache import SYNONYM_CACHE_SIZE, SYNONYM_CACHE_TTL, build_synonym_cache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_defaults_match_thirty_minute_synonym_cache() -> None:
    cache = build_synonym_cache()

    assert cache.maxsize == SYNONYM_CACHE_SIZE
    assert cache.ttl == SYNONYM_CACHE_TTL == 1800


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache = build_synonym_cache(ttl=60, timer=clock)
    cache["会社"] = ["企業"]

    clock.now = 59.0
    assert cache.get("会社") == ["企業"]

    clock.now = 61.0
    assert cache.get("会社") is None
    assert len(cache) == 0


def test_least_recently_used_entry_is_evicted() -> None:
    cache = build_synonym_cache(maxsize=2, timer=FakeClock())
    cache["a"] = 1
    cache["b"] = 2
    assert cache["a"] == 1
    cache["c"] = 3

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3
