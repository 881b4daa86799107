"""Bonus rule evaluation against computed period metrics."""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from settlement_engine.calculators.rate_resolver import to_amount
from settlement_engine.calculators.types import (
    ZERO,
    BonusCalculationDetail,
    BonusRule,
    ConditionType,
    MetricSource,
    RewardType,
    Worker,
    round_to_cents,
)

logger = logging.getLogger(__name__)


class BonusRuleError(Exception):
    """Raised when a bonus rule cannot be evaluated as configured."""

    def __init__(self, rule_id: str, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Bonus rule {rule_id}: {reason}")


THRESHOLD_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ">=": operator.ge,
    ">": operator.gt,
    "<=": operator.le,
    "<": operator.lt,
    "=": operator.eq,
    "==": operator.eq,
}


@dataclass(frozen=True)
class PeriodMetrics:
    """Metric values for one worker and period, shared by all rules.

    Values are computed once before any rule runs; rules only read them.
    """

    values: Mapping[str, Decimal]

    def get(self, source: str) -> Decimal:
        return self.values.get(source, ZERO)


def build_metrics(
    *,
    tasks_completed: int,
    hours_logged: Decimal,
    manual_kpi: Decimal,
    task_kpi: Decimal,
    content_units: Decimal,
    content_kpi: Decimal,
    external: Mapping[str, Any] | None = None,
) -> PeriodMetrics:
    """Assemble the metric snapshot. Internal metrics win over external ones."""
    values: dict[str, Decimal] = {}
    for source, value in (external or {}).items():
        values[str(source)] = to_amount(value)
    values.update(
        {
            MetricSource.TASKS_COMPLETED.value: Decimal(tasks_completed),
            MetricSource.HOURS_LOGGED.value: hours_logged,
            MetricSource.MANUAL_KPI.value: manual_kpi,
            MetricSource.TASK_KPI.value: task_kpi,
            MetricSource.CONTENT_UNITS.value: content_units,
            MetricSource.KPI_EARNED.value: task_kpi + content_kpi,
        }
    )
    return PeriodMetrics(values)


class BonusRuleEngine:
    """Evaluates configured bonus rules for a worker.

    Rules are independent and additive: each is evaluated against the same
    metric snapshot and none can suppress another. A rule that cannot be
    evaluated is reported as not met with a zero reward.
    """

    def __init__(self, rules: Sequence[BonusRule]):
        self.rules = rules

    def rules_for(self, worker: Worker) -> list[BonusRule]:
        """Active rules owned by the worker or the worker's job title."""
        return [r for r in self.rules if r.is_active and r.applies_to(worker)]

    def evaluate_all(
        self, worker: Worker, metrics: PeriodMetrics
    ) -> tuple[Decimal, tuple[BonusCalculationDetail, ...]]:
        """Evaluate every applicable rule, returning (bonus total, details)."""
        details: list[BonusCalculationDetail] = []
        total = ZERO

        for rule in self.rules_for(worker):
            detail = self.evaluate(rule, metrics)
            details.append(detail)
            if detail.condition_met:
                total += detail.reward_amount

        return total, tuple(details)

    def evaluate(self, rule: BonusRule, metrics: PeriodMetrics) -> BonusCalculationDetail:
        """Evaluate one rule against the metric snapshot."""
        source = _source_name(rule.metric_source)
        base_value = metrics.get(source)

        try:
            condition_met, reward_value = self._evaluate_condition(rule, base_value)
            reward = self._calculate_reward(rule, base_value, reward_value)
        except BonusRuleError as e:
            logger.warning("Skipping malformed bonus rule: %s", e)
            return BonusCalculationDetail(
                rule_id=rule.id,
                rule_name=rule.name,
                metric_source=source,
                base_value=base_value,
                condition_met=False,
                reward_amount=ZERO,
                description=f"Misconfigured: {e.reason}",
            )

        return BonusCalculationDetail(
            rule_id=rule.id,
            rule_name=rule.name,
            metric_source=source,
            base_value=base_value,
            condition_met=condition_met,
            reward_amount=reward,
            description=rule.description,
        )

    def _evaluate_condition(
        self, rule: BonusRule, metric_value: Decimal
    ) -> tuple[bool, Decimal]:
        """Return (condition met, reward value before sizing)."""
        condition = _enum_value(ConditionType, rule.condition_type, rule.id, "condition type")
        configured_reward = to_amount(rule.reward_value)

        if condition == ConditionType.ALWAYS:
            return True, configured_reward

        if condition == ConditionType.THRESHOLD:
            if rule.threshold_value is None:
                raise BonusRuleError(rule.id, "threshold rule without threshold value")
            compare = THRESHOLD_OPERATORS.get(rule.threshold_operator or ">=")
            if compare is None:
                raise BonusRuleError(
                    rule.id, f"unknown threshold operator {rule.threshold_operator!r}"
                )
            threshold = _rule_decimal(rule.threshold_value, rule.id, "threshold value")
            return compare(metric_value, threshold), configured_reward

        # Tiered: first inclusive band containing the value wins
        if not rule.tiers:
            raise BonusRuleError(rule.id, "tiered rule without tiers")
        for tier in rule.tiers:
            low = _rule_decimal(tier.min, rule.id, "tier bound")
            high = _rule_decimal(tier.max, rule.id, "tier bound")
            if low <= metric_value <= high:
                return True, to_amount(tier.reward)
        return False, configured_reward

    def _calculate_reward(
        self, rule: BonusRule, base_value: Decimal, reward_value: Decimal
    ) -> Decimal:
        reward_type = _enum_value(RewardType, rule.reward_type, rule.id, "reward type")
        if reward_type == RewardType.PERCENT:
            return round_to_cents(base_value * reward_value / Decimal("100"))
        return round_to_cents(reward_value)


def _source_name(source: Any) -> str:
    return source.value if isinstance(source, MetricSource) else str(source)


def _enum_value(enum_cls: type, value: Any, rule_id: str, label: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        raise BonusRuleError(rule_id, f"unknown {label} {value!r}") from None


def _rule_decimal(value: Any, rule_id: str, label: str) -> Decimal:
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise BonusRuleError(rule_id, f"invalid {label} {value!r}") from None
