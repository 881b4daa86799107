"""Salary scheme selection and per-type rate lookup."""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from settlement_engine.calculators.types import (
    ZERO,
    KpiRule,
    SalaryScheme,
    TargetType,
    Worker,
)


class SchemeConfigurationError(Exception):
    """Raised when a salary scheme is structurally malformed."""

    def __init__(self, scheme_id: str, reason: str):
        self.scheme_id = scheme_id
        self.reason = reason
        super().__init__(f"Salary scheme {scheme_id} is malformed: {reason}")


def to_amount(value: Any) -> Decimal:
    """Coerce a configured amount to a non-negative Decimal.

    Missing, unparseable and negative values become zero.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO
    if not amount.is_finite() or amount < 0:
        return ZERO
    return amount


class RateResolver:
    """Resolves the salary scheme and rates that apply to a worker.

    Scheme selection priority:
    1. A scheme targeting the worker's id
    2. A scheme targeting the worker's job title
    Ties within the same specificity go to the lowest scheme id, so the
    result does not depend on input ordering.
    """

    SPECIFICITY = {
        TargetType.USER: 2,
        TargetType.JOB_TITLE: 1,
    }

    def __init__(self, schemes: Sequence[SalaryScheme]):
        self.schemes = schemes

    def resolve_scheme(self, worker: Worker) -> SalaryScheme | None:
        """Find the most specific scheme for a worker, if any."""
        best: SalaryScheme | None = None
        best_score = 0

        for scheme in self.schemes:
            score = self._score(scheme, worker)
            if score == 0:
                continue
            if score > best_score or (
                score == best_score and best is not None and scheme.id < best.id
            ):
                best = scheme
                best_score = score

        return best

    def resolve_base_salary(self, worker: Worker, scheme: SalaryScheme | None) -> Decimal:
        """Base salary for the period.

        The scheme's base salary wins when set; otherwise the worker's own
        configured salary is used. The scheme's adjustment percent scales it.
        """
        base = to_amount(worker.salary)
        if scheme is None:
            return base

        scheme_base = to_amount(scheme.base_salary)
        if scheme_base > 0:
            base = scheme_base

        adjustment = _to_signed(scheme.base_adjustment_percent)
        if adjustment:
            base = base * (Decimal("100") + adjustment) / Decimal("100")
            if base < 0:
                base = ZERO
        return base

    def rate_table(self, scheme: SalaryScheme | None) -> dict[str, Decimal]:
        """Map each configured type to its rate.

        Raises:
            SchemeConfigurationError: If the rule list itself is unusable
        """
        if scheme is None:
            return {}

        rules = scheme.kpi_rules
        if rules is None:
            return {}
        if isinstance(rules, (str, bytes)) or not isinstance(rules, Sequence):
            raise SchemeConfigurationError(
                scheme.id, f"kpi_rules must be a list, got {type(rules).__name__}"
            )

        table: dict[str, Decimal] = {}
        for rule in rules:
            if not isinstance(rule, KpiRule):
                raise SchemeConfigurationError(
                    scheme.id, f"unexpected rule entry {rule!r}"
                )
            # First rule for a type wins
            table.setdefault(rule.task_type, to_amount(rule.value))
        return table

    def _score(self, scheme: SalaryScheme, worker: Worker) -> int:
        if scheme.target_type == TargetType.USER and scheme.target_id == worker.id:
            return self.SPECIFICITY[TargetType.USER]
        if scheme.target_type == TargetType.JOB_TITLE and scheme.target_id == worker.job_title:
            return self.SPECIFICITY[TargetType.JOB_TITLE]
        return 0


def _to_signed(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value)) if value is not None else ZERO
    except (InvalidOperation, ValueError):
        return ZERO
    return amount if amount.is_finite() else ZERO
