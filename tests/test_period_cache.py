"""Tests for the per-period stats cache."""

from decimal import Decimal

from settlement_engine.calculators.types import StatsResult
from settlement_engine.services.period_cache import PeriodCache


def stats(worker_id: str, period_key: str = "2024-03") -> StatsResult:
    zero = Decimal("0")
    return StatsResult(worker_id, period_key, zero, zero, zero, zero)


class TestPeriodCache:
    """Test selection-scoped caching."""

    def test_get_and_put(self):
        cache = PeriodCache()
        cache.select("2024-03")

        assert cache.get("alice", "2024-03") is None
        cache.put(stats("alice"))

        assert cache.get("alice", "2024-03") == stats("alice")
        assert ("alice", "2024-03") in cache
        assert cache.hits == 1
        assert cache.misses == 1

    def test_same_selection_keeps_entries(self):
        cache = PeriodCache()
        cache.select("2024-03", "designer")
        cache.put(stats("alice"))

        assert cache.select("2024-03", "designer") is False
        assert len(cache) == 1

    def test_period_change_invalidates(self):
        cache = PeriodCache()
        cache.select("2024-03")
        cache.put(stats("alice"))
        generation = cache.generation

        assert cache.select("2024-04") is True
        assert len(cache) == 0
        assert cache.generation == generation + 1

    def test_filter_change_invalidates(self):
        cache = PeriodCache()
        cache.select("2024-03", "all")
        cache.put(stats("alice"))

        assert cache.select("2024-03", "smm") is True
        assert cache.peek("alice", "2024-03") is None

    def test_stale_generation_dropped(self):
        cache = PeriodCache()
        cache.select("2024-03")
        old_generation = cache.generation
        cache.select("2024-04")

        stored = cache.put(stats("alice", "2024-03"), old_generation)

        assert stored is False
        assert len(cache) == 0

    def test_peek_does_not_count(self):
        cache = PeriodCache()
        cache.put(stats("alice"))

        cache.peek("alice", "2024-03")
        cache.peek("bob", "2024-03")

        assert cache.hits == 0
        assert cache.misses == 0
