"""In-memory settlement source."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal

from settlement_engine.calculators.types import (
    ALL_ROLES,
    BonusRule,
    Project,
    SalaryScheme,
    WorkItem,
    Worker,
)
from settlement_engine.sources.base import SourceSnapshot


class InMemorySource:
    """Serves collaborator data held in memory.

    ``external_metrics`` maps period key -> worker id -> metric source -> value.
    """

    def __init__(
        self,
        workers: Iterable[Worker] = (),
        work_items: Iterable[WorkItem] = (),
        projects: Iterable[Project] = (),
        schemes: Iterable[SalaryScheme] = (),
        bonus_rules: Iterable[BonusRule] = (),
        external_metrics: Mapping[str, Mapping[str, Mapping[str, Decimal]]] | None = None,
    ):
        self._workers = list(workers)
        self.work_items = list(work_items)
        self.projects = list(projects)
        self.schemes = list(schemes)
        self.bonus_rules = list(bonus_rules)
        self.external_metrics = dict(external_metrics or {})

    async def workers(self, role_filter: str) -> list[Worker]:
        if not role_filter or role_filter == ALL_ROLES:
            return list(self._workers)
        return [w for w in self._workers if w.job_title == role_filter]

    async def snapshot(self, period_key: str) -> SourceSnapshot:
        return SourceSnapshot(
            work_items=tuple(self.work_items),
            projects=tuple(self.projects),
            schemes=tuple(self.schemes),
            bonus_rules=tuple(self.bonus_rules),
            external_metrics=dict(self.external_metrics.get(period_key, {})),
        )

    def job_titles(self) -> list[str]:
        return sorted({w.job_title for w in self._workers})
