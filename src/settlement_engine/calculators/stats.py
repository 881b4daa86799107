"""Settlement statistics calculator.

Pure computation: the same worker, work items, projects, schemes, rules and
period always produce the same StatsResult. Nothing here performs I/O.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from settlement_engine.calculators.bonus import BonusRuleEngine, build_metrics
from settlement_engine.calculators.content import attribute_content
from settlement_engine.calculators.rate_resolver import RateResolver, to_amount
from settlement_engine.calculators.types import (
    ZERO,
    BonusRule,
    Period,
    Project,
    SalaryScheme,
    StatsResult,
    TaskPayment,
    TaskTypeDetail,
    WorkItem,
    WorkItemStatus,
    Worker,
    round_to_cents,
)

DEFAULT_HOURS = Decimal("1")


class StatsCalculator:
    """Computes a worker's earnings for a period.

    Calculation pipeline:
    1) Select completed work items assigned to the worker in the period
    2) Price them per type: hours x rate(type) from the worker's scheme
    3) Attribute project content output by share percentage
    4) Evaluate bonus rules against the resulting metrics
    5) Resolve base salary from the scheme or the worker
    """

    def __init__(
        self,
        schemes: Sequence[SalaryScheme],
        bonus_rules: Sequence[BonusRule] = (),
    ):
        self.rate_resolver = RateResolver(schemes)
        self.bonus_engine = BonusRuleEngine(bonus_rules)

    def compute(
        self,
        worker: Worker,
        work_items: Sequence[WorkItem],
        projects: Sequence[Project],
        period: Period,
        external_metrics: Mapping[str, Any] | None = None,
    ) -> StatsResult:
        """Compute the earnings breakdown.

        Raises:
            SchemeConfigurationError: If the worker's scheme is malformed
        """
        scheme = self.rate_resolver.resolve_scheme(worker)
        rates = self.rate_resolver.rate_table(scheme)

        completed = select_completed_items(worker, work_items, period)
        details, payments = self._price_work_items(completed, rates)
        task_kpi = sum((d.total for d in details), ZERO)

        known_projects = {p.id for p in projects}
        content = attribute_content(
            worker,
            projects,
            [i for i in completed if i.project_id in known_projects],
            rates,
            period,
        )

        metrics = build_metrics(
            tasks_completed=len(completed),
            hours_logged=sum((d.hours for d in details), ZERO),
            manual_kpi=sum((to_amount(i.kpi_value) for i in completed), ZERO),
            task_kpi=task_kpi,
            content_units=content.units,
            content_kpi=content.total,
            external=external_metrics,
        )
        bonuses_earned, bonus_details = self.bonus_engine.evaluate_all(worker, metrics)

        return StatsResult(
            worker_id=worker.id,
            period_key=period.key,
            base_salary=round_to_cents(
                self.rate_resolver.resolve_base_salary(worker, scheme)
            ),
            task_kpi=task_kpi,
            content_kpi=content.total,
            bonuses_earned=bonuses_earned,
            details=details,
            content_details=content.details,
            bonus_details=bonus_details,
            task_payments=payments,
        )

    def _price_work_items(
        self, items: Sequence[WorkItem], rates: dict[str, Decimal]
    ) -> tuple[tuple[TaskTypeDetail, ...], tuple[TaskPayment, ...]]:
        """Group items by type and price each group at the type's hourly rate."""
        groups: dict[str, list[WorkItem]] = defaultdict(list)
        for item in items:
            groups[item.type].append(item)

        details: list[TaskTypeDetail] = []
        payments: list[TaskPayment] = []

        for task_type in sorted(groups):
            rate = rates.get(task_type, ZERO)
            hours_total = ZERO
            for item in groups[task_type]:
                hours = work_item_hours(item)
                hours_total += hours
                payments.append(
                    TaskPayment(
                        task_id=item.id,
                        task_title=item.title,
                        task_type=task_type,
                        hours=hours,
                        rate=rate,
                        amount=round_to_cents(hours * rate),
                        completed_at=item.completed_at,
                    )
                )

            details.append(
                TaskTypeDetail(
                    task_type=task_type,
                    count=len(groups[task_type]),
                    hours=hours_total,
                    rate=rate,
                    total=round_to_cents(hours_total * rate),
                )
            )

        return tuple(details), tuple(payments)


def select_completed_items(
    worker: Worker, work_items: Sequence[WorkItem], period: Period
) -> list[WorkItem]:
    """Work items assigned to the worker and completed inside the period."""
    selected = [
        item
        for item in work_items
        if item.assignee_id == worker.id
        and item.status == WorkItemStatus.DONE
        and item.completed_at is not None
        and period.contains(item.completed_at)
    ]
    return sorted(selected, key=lambda i: i.id)


def work_item_hours(item: WorkItem) -> Decimal:
    """Hours billed for an item; items without an estimate count as one hour."""
    if item.estimated_hours is None:
        return DEFAULT_HOURS
    return to_amount(item.estimated_hours)


def compute_stats(
    worker: Worker,
    work_items: Sequence[WorkItem],
    projects: Sequence[Project],
    schemes: Sequence[SalaryScheme],
    period: Period | str,
    bonus_rules: Sequence[BonusRule] = (),
    external_metrics: Mapping[str, Any] | None = None,
) -> StatsResult:
    """Compute one worker's earnings for a period."""
    if isinstance(period, str):
        period = Period.parse(period)
    calculator = StatsCalculator(schemes, bonus_rules)
    return calculator.compute(worker, work_items, projects, period, external_metrics)
