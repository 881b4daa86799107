"""Type definitions for the settlement calculation pipeline."""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

ZERO = Decimal("0")
CENTS = Decimal("0.01")

# Role filter value selecting every worker
ALL_ROLES = "all"


def round_to_cents(amount: Decimal) -> Decimal:
    """Round amount to 2 decimal places."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


class WorkItemStatus(str, Enum):
    """Work item status values. Only DONE items earn KPI."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"


class TargetType(str, Enum):
    """Who a salary scheme or bonus rule applies to."""

    USER = "user"
    JOB_TITLE = "job_title"


class MetricSource(str, Enum):
    """Metric a bonus rule is evaluated against."""

    TASKS_COMPLETED = "tasks_completed"
    HOURS_LOGGED = "hours_logged"
    MANUAL_KPI = "manual_kpi"
    TASK_KPI = "task_kpi"
    CONTENT_UNITS = "content_units"
    KPI_EARNED = "kpi_earned"
    SALES_REVENUE = "sales_revenue"
    PROJECT_RETENTION = "project_retention"
    CUSTOM_METRIC = "custom_metric"


class ConditionType(str, Enum):
    """How a bonus rule decides whether it pays out."""

    ALWAYS = "always"
    THRESHOLD = "threshold"
    TIERED = "tiered"


class RewardType(str, Enum):
    """How a bonus rule reward is sized."""

    FIXED_AMOUNT = "fixed_amount"
    PERCENT = "percent"


_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True, order=True)
class Period:
    """A settlement period: one calendar month, keyed as ``YYYY-MM``."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Invalid month in period: {self.month}")

    @classmethod
    def parse(cls, key: str) -> Period:
        match = _PERIOD_RE.match(key.strip())
        if match is None:
            raise ValueError(f"Invalid period key {key!r}, expected YYYY-MM")
        return cls(int(match.group(1)), int(match.group(2)))

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def contains(self, moment: date | datetime) -> bool:
        """Check if a date or timestamp falls inside the period (inclusive)."""
        day = moment.date() if isinstance(moment, datetime) else moment
        return self.start <= day <= self.end

    def overlaps(self, start: date, end: date) -> bool:
        return start <= self.end and end >= self.start

    def __str__(self) -> str:
        return self.key


# ===== Inputs (read-only to the engine) =====


@dataclass(frozen=True)
class Worker:
    """A person being paid."""

    id: str
    name: str
    job_title: str
    salary: Decimal = ZERO
    balance: Decimal = ZERO


@dataclass(frozen=True)
class WorkItem:
    """A unit of completed, attributable work."""

    id: str
    type: str
    status: WorkItemStatus
    assignee_id: str | None = None
    title: str = ""
    completed_at: datetime | None = None
    project_id: str | None = None
    estimated_hours: Decimal | None = None
    kpi_value: Decimal | None = None


@dataclass(frozen=True)
class ContentMetric:
    """Planned vs. delivered count of one content deliverable type."""

    plan: Decimal = ZERO
    fact: Decimal = ZERO


@dataclass(frozen=True)
class Project:
    """Grouping of work and content deliverables.

    ``contributors`` maps worker id to an attribution weight. Team members
    without an explicit weight count with weight 1.
    """

    id: str
    name: str = ""
    start_date: date | None = None
    end_date: date | None = None
    team_ids: tuple[str, ...] = ()
    contributors: dict[str, Decimal] = field(default_factory=dict)
    content_metrics: dict[str, ContentMetric] = field(default_factory=dict)

    def attribution_weights(self) -> dict[str, Decimal]:
        weights = {worker_id: Decimal("1") for worker_id in self.team_ids}
        weights.update(self.contributors)
        return weights


@dataclass(frozen=True)
class KpiRule:
    """Rate for one work-item or content type."""

    task_type: str
    value: Any  # validated by the rate resolver


@dataclass(frozen=True)
class SalaryScheme:
    """Per-worker or per-role rate table."""

    id: str
    target_type: TargetType
    target_id: str
    base_salary: Decimal = ZERO
    kpi_rules: Any = ()  # sequence of KpiRule
    base_adjustment_percent: Decimal = ZERO


@dataclass(frozen=True)
class TierConfig:
    """One inclusive band of a tiered bonus rule."""

    min: Decimal
    max: Decimal
    reward: Decimal


@dataclass(frozen=True)
class BonusRule:
    """A configured incentive."""

    id: str
    name: str
    owner_type: TargetType
    owner_id: str
    metric_source: str
    condition_type: ConditionType = ConditionType.THRESHOLD
    threshold_value: Decimal | None = None
    threshold_operator: str = ">="
    tiers: tuple[TierConfig, ...] = ()
    reward_type: RewardType = RewardType.FIXED_AMOUNT
    reward_value: Decimal = ZERO
    is_active: bool = True
    description: str = ""

    def applies_to(self, worker: Worker) -> bool:
        if self.owner_type == TargetType.USER:
            return self.owner_id == worker.id
        return self.owner_id == worker.job_title


# ===== Outputs =====


@dataclass(frozen=True)
class TaskTypeDetail:
    """Earnings from one work-item type."""

    task_type: str
    count: int
    hours: Decimal
    rate: Decimal
    total: Decimal


@dataclass(frozen=True)
class TaskPayment:
    """Earnings from one work item."""

    task_id: str
    task_title: str
    task_type: str
    hours: Decimal
    rate: Decimal
    amount: Decimal
    completed_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_title": self.task_title,
            "task_type": self.task_type,
            "hours": str(self.hours),
            "rate": str(self.rate),
            "amount": str(self.amount),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class ContentDetail:
    """Earnings from one content type of one project."""

    project_id: str
    project_name: str
    content_type: str
    quantity: Decimal  # team total delivered
    attributed_quantity: Decimal
    rate: Decimal
    share_percentage: Decimal
    total: Decimal


@dataclass(frozen=True)
class BonusCalculationDetail:
    """Evaluation of one bonus rule for one worker and period.

    ``reward_amount`` is always the would-be reward; it only counts towards
    the bonus total when ``condition_met`` is true.
    """

    rule_id: str
    rule_name: str
    metric_source: str
    base_value: Decimal
    condition_met: bool
    reward_amount: Decimal
    description: str = ""


@dataclass(frozen=True)
class StatsResult:
    """Earnings breakdown for one worker in one period."""

    worker_id: str
    period_key: str
    base_salary: Decimal
    task_kpi: Decimal
    content_kpi: Decimal
    bonuses_earned: Decimal
    details: tuple[TaskTypeDetail, ...] = ()
    content_details: tuple[ContentDetail, ...] = ()
    bonus_details: tuple[BonusCalculationDetail, ...] = ()
    task_payments: tuple[TaskPayment, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def kpi_earned(self) -> Decimal:
        return self.task_kpi + self.content_kpi

    @property
    def calculated_kpi(self) -> Decimal:
        """KPI plus rule bonuses, the figure stored on a settlement record."""
        return self.kpi_earned + self.bonuses_earned

    @property
    def total_earnings(self) -> Decimal:
        return self.base_salary + self.calculated_kpi

    @property
    def success(self) -> bool:
        return not self.errors

    @classmethod
    def unavailable(cls, worker_id: str, period_key: str, error: str) -> StatsResult:
        """Zeroed result for a worker whose computation failed."""
        return cls(
            worker_id=worker_id,
            period_key=period_key,
            base_salary=ZERO,
            task_kpi=ZERO,
            content_kpi=ZERO,
            bonuses_earned=ZERO,
            errors=(error,),
        )
