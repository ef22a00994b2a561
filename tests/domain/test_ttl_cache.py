"""
Tests for TTLCache with a DeterministicClock.
"""

from datetime import timedelta

import pytest

from homestay_kernel.domain.cache import TTLCache
from homestay_kernel.domain.clock import DeterministicClock


@pytest.fixture
def cache(clock):
    return TTLCache(clock, ttl=timedelta(seconds=60))


class TestTTLCache:
    def test_non_positive_ttl_rejected(self):
        with pytest.raises(ValueError, match="ttl must be positive"):
            TTLCache(DeterministicClock(), ttl=timedelta(0))

    def test_entry_available_until_expiry(self, cache, clock):
        cache.put("mode", True)
        clock.advance(59)

        assert cache.get("mode") is True
        assert "mode" in cache

    def test_entry_expires_at_ttl(self, cache, clock):
        cache.put("mode", True)
        clock.advance(60)

        assert cache.get("mode") is None
        assert "mode" not in cache

    def test_get_or_load_calls_loader_once_per_ttl(self, cache, clock):
        calls = []

        def loader():
            calls.append(1)
            return len(calls)

        assert cache.get_or_load("k", loader) == 1
        assert cache.get_or_load("k", loader) == 1
        clock.advance(61)
        assert cache.get_or_load("k", loader) == 2

    def test_none_result_is_cached(self, cache):
        calls = []

        def loader():
            calls.append(1)
            return None

        cache.get_or_load("absent", loader)
        cache.get_or_load("absent", loader)

        assert len(calls) == 1

    def test_invalidate_single_key(self, cache):
        cache.put("a", 1)
        cache.put("b", 2)

        cache.invalidate("a")

        assert cache.get("a") is None
        assert cache.get("b") == 2

    def test_invalidate_everything(self, cache):
        cache.put("a", 1)
        cache.put("b", 2)

        cache.invalidate()

        assert len(cache) == 0
