"""JSON snapshot source.

A snapshot file carries everything the engine reads from collaborators:

    {
      "workers": [...],
      "work_items": [...],
      "projects": [...],
      "salary_schemes": [...],
      "bonus_rules": [...],
      "external_metrics": {"2026-01": {"<worker_id>": {"sales_revenue": 1200}}}
    }
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from settlement_engine.calculators.types import (
    BonusRule,
    ConditionType,
    ContentMetric,
    KpiRule,
    Project,
    RewardType,
    SalaryScheme,
    TargetType,
    TierConfig,
    WorkItem,
    WorkItemStatus,
    Worker,
)
from settlement_engine.sources.memory import InMemorySource


class WorkerIn(BaseModel):
    id: str
    name: str
    job_title: str = ""
    salary: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")

    def to_domain(self) -> Worker:
        return Worker(**self.model_dump())


class WorkItemIn(BaseModel):
    id: str
    type: str
    status: WorkItemStatus
    assignee_id: str | None = None
    title: str = ""
    completed_at: datetime | None = None
    project_id: str | None = None
    estimated_hours: Decimal | None = None
    kpi_value: Decimal | None = None

    def to_domain(self) -> WorkItem:
        return WorkItem(**self.model_dump())


class ContentMetricIn(BaseModel):
    plan: Decimal = Decimal("0")
    fact: Decimal = Decimal("0")


class ProjectIn(BaseModel):
    id: str
    name: str = ""
    start_date: date | None = None
    end_date: date | None = None
    team_ids: list[str] = Field(default_factory=list)
    contributors: dict[str, Decimal] = Field(default_factory=dict)
    content_metrics: dict[str, ContentMetricIn] = Field(default_factory=dict)

    def to_domain(self) -> Project:
        return Project(
            id=self.id,
            name=self.name,
            start_date=self.start_date,
            end_date=self.end_date,
            team_ids=tuple(self.team_ids),
            contributors=dict(self.contributors),
            content_metrics={
                key: ContentMetric(plan=m.plan, fact=m.fact)
                for key, m in self.content_metrics.items()
            },
        )


class KpiRuleIn(BaseModel):
    # Rates are validated by the calculator, which zeroes bad values
    model_config = ConfigDict(extra="ignore")

    task_type: str
    value: Decimal | float | str | None = None


class SalarySchemeIn(BaseModel):
    id: str
    target_type: TargetType
    target_id: str
    base_salary: Decimal = Decimal("0")
    kpi_rules: list[KpiRuleIn] = Field(default_factory=list)
    base_adjustment_percent: Decimal = Decimal("0")

    def to_domain(self) -> SalaryScheme:
        return SalaryScheme(
            id=self.id,
            target_type=self.target_type,
            target_id=self.target_id,
            base_salary=self.base_salary,
            kpi_rules=tuple(KpiRule(r.task_type, r.value) for r in self.kpi_rules),
            base_adjustment_percent=self.base_adjustment_percent,
        )


class TierConfigIn(BaseModel):
    min: Decimal
    max: Decimal
    reward: Decimal


class BonusRuleIn(BaseModel):
    id: str
    name: str
    owner_type: TargetType
    owner_id: str
    metric_source: str
    condition_type: ConditionType = ConditionType.THRESHOLD
    threshold_value: Decimal | None = None
    threshold_operator: str = ">="
    tiers: list[TierConfigIn] = Field(default_factory=list)
    reward_type: RewardType = RewardType.FIXED_AMOUNT
    reward_value: Decimal = Decimal("0")
    is_active: bool = True
    description: str = ""

    def to_domain(self) -> BonusRule:
        data = self.model_dump(exclude={"tiers"})
        return BonusRule(
            **data,
            tiers=tuple(TierConfig(t.min, t.max, t.reward) for t in self.tiers),
        )


class SourceSnapshotIn(BaseModel):
    """Top-level snapshot document."""

    workers: list[WorkerIn] = Field(default_factory=list)
    work_items: list[WorkItemIn] = Field(default_factory=list)
    projects: list[ProjectIn] = Field(default_factory=list)
    salary_schemes: list[SalarySchemeIn] = Field(default_factory=list)
    bonus_rules: list[BonusRuleIn] = Field(default_factory=list)
    external_metrics: dict[str, dict[str, dict[str, Decimal]]] = Field(default_factory=dict)

    def to_source(self) -> InMemorySource:
        return InMemorySource(
            workers=[w.to_domain() for w in self.workers],
            work_items=[i.to_domain() for i in self.work_items],
            projects=[p.to_domain() for p in self.projects],
            schemes=[s.to_domain() for s in self.salary_schemes],
            bonus_rules=[r.to_domain() for r in self.bonus_rules],
            external_metrics=self.external_metrics,
        )


def load_snapshot_source(path: str | Path) -> InMemorySource:
    """Parse a snapshot file into an in-memory source.

    Raises:
        pydantic.ValidationError: If the document does not match the schema
    """
    text = Path(path).read_text(encoding="utf-8")
    return SourceSnapshotIn.model_validate_json(text).to_source()
