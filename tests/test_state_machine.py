"""Tests for settlement record state machine."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from settlement_engine.models import SettlementRecord
from settlement_engine.services.state_machine import (
    InvalidTransitionError,
    RecordLockedError,
    SettlementStateMachine,
    SettlementStatus,
)


def make_record(status: str = "draft") -> SettlementRecord:
    record = SettlementRecord.draft(
        "alice", "2024-03", fix_salary=Decimal("1000"), calculated_kpi=Decimal("54")
    )
    record.status = status
    return record


class TestSettlementStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # draft → frozen
        assert SettlementStateMachine.can_transition("draft", "frozen") is True

        # frozen → paid
        assert SettlementStateMachine.can_transition("frozen", "paid") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't skip freeze
        assert SettlementStateMachine.can_transition("draft", "paid") is False

        # Can't go backwards
        assert SettlementStateMachine.can_transition("frozen", "draft") is False
        assert SettlementStateMachine.can_transition("paid", "frozen") is False

        # Paid is terminal
        assert SettlementStateMachine.get_next_statuses("paid") == []

    def test_pay_draft_rejected(self):
        """Test that paying a draft names the record and the reason."""
        record = make_record("draft")

        with pytest.raises(InvalidTransitionError) as exc_info:
            SettlementStateMachine.validate_transition(record, SettlementStatus.PAID)

        assert exc_info.value.from_status == "draft"
        assert exc_info.value.to_status == SettlementStatus.PAID
        assert exc_info.value.worker_id == "alice"
        assert "only frozen" in str(exc_info.value)

    def test_freeze_twice_rejected(self):
        record = make_record("frozen")

        with pytest.raises(InvalidTransitionError) as exc_info:
            SettlementStateMachine.validate_transition(record, SettlementStatus.FROZEN)

        assert exc_info.value.reason == "already frozen"

    def test_freeze_paid_rejected(self):
        record = make_record("paid")

        with pytest.raises(InvalidTransitionError) as exc_info:
            SettlementStateMachine.validate_transition(record, SettlementStatus.FROZEN)

        assert exc_info.value.reason == "settlement is already paid"

    def test_can_recompute(self):
        """Test recomputation allowed statuses."""
        assert SettlementStateMachine.can_recompute("draft") is True
        assert SettlementStateMachine.can_recompute("frozen") is False
        assert SettlementStateMachine.can_recompute("paid") is False

    def test_manual_edit_locked_after_freeze(self):
        SettlementStateMachine.validate_manual_edit(make_record("draft"), "advance")

        with pytest.raises(RecordLockedError):
            SettlementStateMachine.validate_manual_edit(make_record("frozen"), "advance")

        with pytest.raises(ValueError):
            SettlementStateMachine.validate_manual_edit(make_record("draft"), "fix_salary")


class TestApplyTransition:
    """Test the single validate-then-apply transition."""

    def test_freeze_captures_manual_values(self):
        record = make_record()
        now = datetime(2024, 4, 1, tzinfo=timezone.utc)

        SettlementStateMachine.apply_transition(
            record,
            SettlementStatus.FROZEN,
            {"manual_bonus": Decimal("20"), "manual_penalty": Decimal("5"), "advance": Decimal("100")},
            now=now,
        )

        assert record.status == "frozen"
        assert record.frozen_at == now
        assert record.total == Decimal("969")

    def test_pay_stamps_paid_at(self):
        record = make_record("frozen")

        SettlementStateMachine.apply_transition(record, SettlementStatus.PAID)

        assert record.status == "paid"
        assert record.paid_at is not None

    def test_rejected_transition_changes_nothing(self):
        record = make_record("paid")

        with pytest.raises(InvalidTransitionError):
            SettlementStateMachine.apply_transition(
                record, SettlementStatus.FROZEN, {"manual_bonus": Decimal("999")}
            )

        assert record.status == "paid"
        assert record.manual_bonus == Decimal("0")
        assert record.frozen_at is None

    def test_manual_values_only_when_freezing(self):
        record = make_record("frozen")

        with pytest.raises(InvalidTransitionError):
            SettlementStateMachine.apply_transition(
                record, SettlementStatus.PAID, {"advance": Decimal("10")}
            )

        assert record.status == "frozen"
        assert record.advance == Decimal("0")
