"""Per-period cache of computed worker statistics."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from settlement_engine.calculators.types import ALL_ROLES, StatsResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """The period and worker filter a settlement view is showing."""

    period_key: str
    role_filter: str = ALL_ROLES


class PeriodCache:
    """Caches StatsResult per (worker_id, period_key).

    The cache belongs to whoever owns the period/filter selection. Changing
    the selection clears it wholesale and bumps ``generation``; a
    recomputation pass that started under an older generation must discard
    its results. Everything else (manual edits, refreshed records) reads
    the cached figures without recomputing.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], StatsResult] = {}
        self._selection: Selection | None = None
        self.generation = 0
        self.hits = 0
        self.misses = 0

    @property
    def selection(self) -> Selection | None:
        return self._selection

    def select(self, period_key: str, role_filter: str = ALL_ROLES) -> bool:
        """Switch selection. Returns True when the cache was invalidated."""
        selection = Selection(period_key, role_filter or ALL_ROLES)
        if selection == self._selection:
            return False
        self._selection = selection
        self.invalidate()
        return True

    def invalidate(self) -> None:
        """Drop every cached result and start a new generation."""
        if self._entries:
            logger.debug("Invalidating %d cached stats", len(self._entries))
        self._entries.clear()
        self.generation += 1

    def get(self, worker_id: str, period_key: str) -> StatsResult | None:
        result = self._entries.get((worker_id, period_key))
        if result is None:
            self.misses += 1
        else:
            self.hits += 1
        return result

    def peek(self, worker_id: str, period_key: str) -> StatsResult | None:
        """Read without touching hit/miss counters."""
        return self._entries.get((worker_id, period_key))

    def put(self, result: StatsResult, generation: int | None = None) -> bool:
        """Store a result. Results from an older generation are dropped."""
        if generation is not None and generation != self.generation:
            logger.warning(
                "Discarding stale stats for worker %s (generation %d, current %d)",
                result.worker_id,
                generation,
                self.generation,
            )
            return False
        self._entries[(result.worker_id, result.period_key)] = result
        return True

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
