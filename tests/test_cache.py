"""
Unit tests for DedupCache.
"""

from gateway.services.cache import DedupCache, is_cacheable

from tests.conftest import ARTICLES_PAYLOAD, FakeClock


class TestDedupCache:
    def test_hit_within_ttl(self):
        clock = FakeClock()
        cache = DedupCache(ttl=60.0, clock=clock)

        assert cache.store("https://api/doc?q=a", ARTICLES_PAYLOAD)
        clock.advance(59.9)

        assert cache.get("https://api/doc?q=a") == ARTICLES_PAYLOAD
        assert cache.get_stats().hits == 1

    def test_entries_are_isolated_from_callers(self):
        cache = DedupCache(ttl=60.0, clock=FakeClock())
        payload = {"articles": [{"title": "original"}]}
        cache.store("https://api/doc?q=a", payload)

        payload["articles"].clear()
        cache.get("https://api/doc?q=a")["articles"][0]["title"] = "edited"

        assert cache.get("https://api/doc?q=a") == {"articles": [{"title": "original"}]}

    def test_key_is_exact_url(self):
        cache = DedupCache(ttl=60.0, clock=FakeClock())
        cache.store("https://api/doc?q=a&mode=ArtList", ARTICLES_PAYLOAD)

        assert cache.get("https://api/doc?q=a&mode=artlist") is None
        assert cache.get("https://api/doc?q=a") is None

    def test_expired_entry_is_dropped(self):
        clock = FakeClock()
        cache = DedupCache(ttl=60.0, clock=clock)
        cache.store("u", ARTICLES_PAYLOAD)

        clock.advance(60.0)

        assert cache.get("u") is None
        assert "u" not in cache
        assert len(cache) == 0

    def test_empty_payloads_are_not_cached(self):
        cache = DedupCache(ttl=60.0, clock=FakeClock())

        assert not cache.store("a", {"articles": []})
        assert not cache.store("b", {})
        assert not cache.store("c", None)
        assert len(cache) == 0

    def test_is_cacheable(self):
        assert is_cacheable({"timeline": [{"data": []}]})
        assert is_cacheable([1, 2])
        assert not is_cacheable({"articles": "oops"})

    def test_sweep_removes_expired_when_over_bound(self):
        clock = FakeClock()
        cache = DedupCache(ttl=10.0, max_entries=3, clock=clock)
        cache.store("old-1", {"x": 1})
        cache.store("old-2", {"x": 2})
        clock.advance(11.0)
        cache.store("new-1", {"x": 3})
        cache.store("new-2", {"x": 4})

        assert len(cache) == 2
        assert "old-1" not in cache
        assert cache.get_stats().evictions == 0

    def test_oldest_evicted_when_nothing_expired(self):
        clock = FakeClock()
        cache = DedupCache(ttl=60.0, max_entries=2, clock=clock)
        for i in range(3):
            cache.store(f"u{i}", {"x": i})
            clock.advance(1.0)

        assert len(cache) == 2
        assert "u0" not in cache
        assert cache.get_stats().evictions == 1

    def test_clear(self):
        cache = DedupCache(ttl=60.0, clock=FakeClock())
        cache.store("u", {"x": 1})
        cache.clear()
        assert len(cache) == 0
