"""Tests for the bounded LRU/TTL cache."""

import pytest

from cache import BoundedCache


class TestBoundedCache:
    def test_get_set(self):
        cache = BoundedCache(max_size=2)
        cache.set("a", 1)
        assert cache.get("a") == 1
        assert cache.get("missing") is None
        assert cache.get("missing", "default") == "default"

    def test_evicts_least_recently_used(self):
        cache = BoundedCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert "b" not in cache
        assert "a" in cache and "c" in cache
        assert len(cache) == 2

    def test_entries_expire(self, clock):
        cache = BoundedCache(max_size=4, ttl=10, clock=clock)
        cache.set("a", 1)
        clock.advance(9)
        assert cache.get("a") == 1
        clock.advance(1)
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_get_many_leaves_out_misses(self):
        cache = BoundedCache()
        cache.set("a", {})
        cache.set("b", None)
        assert cache.get_many(["a", "b", "c"]) == {"a": {}, "b": None}

    def test_invalidate_and_clear(self):
        cache = BoundedCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        assert "a" not in cache
        cache.clear()
        assert len(cache) == 0

    def test_size_must_be_positive(self):
        with pytest.raises(ValueError):
            BoundedCache(max_size=0)
