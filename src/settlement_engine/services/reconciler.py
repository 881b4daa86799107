"""Merge computed earnings into settlement records."""

from __future__ import annotations

from dataclasses import dataclass

from settlement_engine.calculators.types import StatsResult, Worker, round_to_cents
from settlement_engine.models import SettlementRecord
from settlement_engine.services.state_machine import SettlementStateMachine


@dataclass
class MergeResult:
    """Outcome of merging one worker's stats into their record."""

    record: SettlementRecord
    created: bool
    changed: bool


class Reconciler:
    """Single guarded merge of computed values into records.

    - no record: synthesize a draft from the computed values
    - draft: overwrite fix salary / calculated KPI, keep manual fields
    - frozen or paid: leave every stored field untouched

    Records are never mutated in place; the merge works on a copy.
    """

    def merge(
        self,
        worker: Worker,
        period_key: str,
        stats: StatsResult,
        existing: SettlementRecord | None,
    ) -> MergeResult:
        fix_salary = round_to_cents(stats.base_salary)
        calculated_kpi = round_to_cents(stats.calculated_kpi)
        task_payments = [p.to_dict() for p in stats.task_payments]

        if existing is None:
            record = SettlementRecord.draft(
                worker_id=worker.id,
                period_key=period_key,
                fix_salary=fix_salary,
                calculated_kpi=calculated_kpi,
                balance_at_start=round_to_cents(worker.balance),
                task_payments=task_payments,
            )
            return MergeResult(record=record, created=True, changed=True)

        record = existing.copy()
        if not SettlementStateMachine.can_recompute(record.status):
            return MergeResult(record=record, created=False, changed=False)

        changed = (
            record.fix_salary != fix_salary
            or record.calculated_kpi != calculated_kpi
            or list(record.task_payments or []) != task_payments
        )
        record.fix_salary = fix_salary
        record.calculated_kpi = calculated_kpi
        record.task_payments = task_payments
        return MergeResult(record=record, created=False, changed=changed)
