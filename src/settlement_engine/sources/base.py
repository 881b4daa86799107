"""Read-only collaborator data consumed by the settlement engine."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol, runtime_checkable

from settlement_engine.calculators.types import (
    BonusRule,
    Project,
    SalaryScheme,
    WorkItem,
    Worker,
)


@dataclass(frozen=True)
class SourceSnapshot:
    """Inputs for one recomputation pass, fetched together."""

    work_items: tuple[WorkItem, ...] = ()
    projects: tuple[Project, ...] = ()
    schemes: tuple[SalaryScheme, ...] = ()
    bonus_rules: tuple[BonusRule, ...] = ()
    external_metrics: Mapping[str, Mapping[str, Decimal]] = field(default_factory=dict)

    def metrics_for(self, worker_id: str) -> Mapping[str, Decimal]:
        return self.external_metrics.get(worker_id, {})


@runtime_checkable
class SettlementSource(Protocol):
    """Provider of workers, work items, projects and configuration."""

    async def workers(self, role_filter: str) -> list[Worker]:
        """Workers matching a job title, or every worker for ``"all"``."""
        ...

    async def snapshot(self, period_key: str) -> SourceSnapshot:
        """Work items, projects, schemes, rules and external metrics."""
        ...
