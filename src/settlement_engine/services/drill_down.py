"""Itemized breakdown of a single settlement."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

from settlement_engine.calculators.types import (
    ZERO,
    BonusCalculationDetail,
    ContentDetail,
    Period,
    StatsResult,
    TaskTypeDetail,
    Worker,
)
from settlement_engine.services.period_cache import PeriodCache


@dataclass(frozen=True)
class DrillDown:
    """Everything a reviewer needs to re-derive a settlement's KPI figure."""

    worker_id: str
    period_key: str
    task_details: tuple[TaskTypeDetail, ...]
    content_details: tuple[ContentDetail, ...]
    bonus_details: tuple[BonusCalculationDetail, ...]
    errors: tuple[str, ...] = ()

    @property
    def task_total(self) -> Decimal:
        return sum((d.total for d in self.task_details), ZERO)

    @property
    def content_total(self) -> Decimal:
        return sum((d.total for d in self.content_details), ZERO)

    @property
    def bonus_total(self) -> Decimal:
        return sum((d.reward_amount for d in self.bonus_details if d.condition_met), ZERO)

    @property
    def kpi_total(self) -> Decimal:
        return self.task_total + self.content_total + self.bonus_total

    @property
    def is_empty(self) -> bool:
        return not (self.task_details or self.content_details or self.bonus_details)


class DrillDownAggregator:
    """Assembles drill-downs from cached or freshly computed stats.

    Read-only: a cache miss computes the stats but does not store them.
    """

    def __init__(
        self,
        compute: Callable[[Worker, Period], StatsResult] | None = None,
        cache: PeriodCache | None = None,
    ):
        self.compute = compute
        self.cache = cache

    def drill_down(
        self,
        worker: Worker,
        period: Period | str,
        compute: Callable[[Worker, Period], StatsResult] | None = None,
    ) -> DrillDown:
        """Breakdown from cached stats, or from ``compute`` on a cache miss."""
        if isinstance(period, str):
            period = Period.parse(period)

        stats = self.cache.peek(worker.id, period.key) if self.cache else None
        if stats is None:
            compute = compute or self.compute
            if compute is None:
                raise ValueError(f"No stats available for {worker.id} in {period.key}")
            stats = compute(worker, period)
        return self.from_stats(stats)

    @staticmethod
    def from_stats(stats: StatsResult) -> DrillDown:
        return DrillDown(
            worker_id=stats.worker_id,
            period_key=stats.period_key,
            task_details=stats.details,
            content_details=stats.content_details,
            bonus_details=stats.bonus_details,
            errors=stats.errors,
        )
