"""Tests for merging computed stats into settlement records."""

from decimal import Decimal

from settlement_engine.calculators import compute_stats
from settlement_engine.calculators.types import StatsResult
from settlement_engine.models import SettlementRecord
from settlement_engine.services.reconciler import Reconciler


def stats_for(worker_id: str, base: str, kpi: str) -> StatsResult:
    return StatsResult(
        worker_id=worker_id,
        period_key="2024-03",
        base_salary=Decimal(base),
        task_kpi=Decimal(kpi),
        content_kpi=Decimal("0"),
        bonuses_earned=Decimal("0"),
    )


class TestReconciler:
    """Test the status-guarded merge."""

    def test_creates_draft_when_missing(self, designer, work_items, schemes, period):
        stats = compute_stats(designer, work_items, [], schemes, period)

        result = Reconciler().merge(designer, period.key, stats, None)

        assert result.created is True
        record = result.record
        assert record.status == "draft"
        assert record.fix_salary == Decimal("1000.00")
        assert record.calculated_kpi == Decimal("54.00")
        assert record.balance_at_start == Decimal("50.00")
        assert record.manual_bonus == Decimal("0")
        assert len(record.task_payments) == 3
        assert record.total == Decimal("1054.00")

    def test_draft_overwrites_computed_keeps_manual(self, designer):
        existing = SettlementRecord.draft(
            "alice", "2024-03", fix_salary=Decimal("900"), calculated_kpi=Decimal("10")
        )
        existing.manual_bonus = Decimal("15")
        existing.advance = Decimal("200")

        result = Reconciler().merge(designer, "2024-03", stats_for("alice", "1000", "54"), existing)

        assert result.changed is True
        assert result.record.fix_salary == Decimal("1000.00")
        assert result.record.calculated_kpi == Decimal("54.00")
        assert result.record.manual_bonus == Decimal("15")
        assert result.record.advance == Decimal("200")
        # Merge works on a copy
        assert existing.fix_salary == Decimal("900")

    def test_unchanged_draft_reports_no_change(self, designer):
        existing = SettlementRecord.draft(
            "alice", "2024-03", fix_salary=Decimal("1000.00"), calculated_kpi=Decimal("54.00")
        )

        result = Reconciler().merge(designer, "2024-03", stats_for("alice", "1000", "54"), existing)

        assert result.changed is False

    def test_frozen_record_never_overwritten(self, designer):
        """Repeated recomputation leaves frozen figures untouched."""
        existing = SettlementRecord.draft(
            "alice", "2024-03", fix_salary=Decimal("1000"), calculated_kpi=Decimal("54")
        )
        existing.status = "frozen"
        reconciler = Reconciler()

        for kpi in ("60", "0", "999"):
            result = reconciler.merge(designer, "2024-03", stats_for("alice", "1200", kpi), existing)
            assert result.changed is False
            assert result.record.fix_salary == Decimal("1000")
            assert result.record.calculated_kpi == Decimal("54")

    def test_paid_record_never_overwritten(self, designer):
        existing = SettlementRecord.draft("alice", "2024-03", fix_salary=Decimal("1000"))
        existing.status = "paid"

        result = Reconciler().merge(designer, "2024-03", stats_for("alice", "5", "5"), existing)

        assert result.record.fix_salary == Decimal("1000")
        assert result.record.status == "paid"
