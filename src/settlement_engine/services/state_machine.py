"""Settlement record state machine with transition validation."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from settlement_engine.models.settlement import MANUAL_FIELDS

if TYPE_CHECKING:
    from settlement_engine.models import SettlementRecord


class SettlementStatus(str, Enum):
    """Settlement record status values."""

    DRAFT = "draft"
    FROZEN = "frozen"
    PAID = "paid"


class LifecycleError(Exception):
    """Base class for rejected settlement lifecycle operations."""

    def __init__(self, message: str, worker_id: str | None = None, period_key: str | None = None):
        self.worker_id = worker_id
        self.period_key = period_key
        super().__init__(message)


class InvalidTransitionError(LifecycleError):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        from_status: str,
        to_status: str,
        reason: str | None = None,
        worker_id: str | None = None,
        period_key: str | None = None,
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if worker_id is not None:
            msg += f" for worker {worker_id} in {period_key}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, worker_id, period_key)


class RecordLockedError(LifecycleError):
    """Raised when a field of a non-draft record is edited."""

    def __init__(self, worker_id: str, period_key: str, status: str, field: str):
        self.status = status
        self.field = field
        super().__init__(
            f"Settlement for worker {worker_id} in {period_key} is {status}; "
            f"'{field}' can no longer be changed",
            worker_id,
            period_key,
        )


class SettlementStateMachine:
    """State machine for settlement record status transitions.

    Allowed transitions:
    - draft → frozen
    - frozen → paid
    Paid is terminal; nothing moves backward.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        SettlementStatus.DRAFT: [SettlementStatus.FROZEN],
        SettlementStatus.FROZEN: [SettlementStatus.PAID],
        SettlementStatus.PAID: [],
    }

    # Statuses where recomputation overwrites fix salary / calculated KPI
    RECOMPUTE_ALLOWED = {SettlementStatus.DRAFT}

    # Statuses where manual adjustments accept edits
    MANUAL_EDITABLE = {SettlementStatus.DRAFT}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, record: SettlementRecord, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if cls.can_transition(record.status, to_status):
            return

        reason = None
        if record.status == to_status:
            reason = f"already {record.status}"
        elif to_status == SettlementStatus.PAID:
            reason = "only frozen settlements can be paid"
        elif record.status == SettlementStatus.PAID:
            reason = "settlement is already paid"
        raise InvalidTransitionError(
            record.status, to_status, reason, record.worker_id, record.period_key
        )

    @classmethod
    def can_recompute(cls, status: str) -> bool:
        """Check if computed fields may still be overwritten."""
        return status in cls.RECOMPUTE_ALLOWED

    @classmethod
    def can_edit_manual(cls, status: str) -> bool:
        """Check if manual adjustments may still be edited."""
        return status in cls.MANUAL_EDITABLE

    @classmethod
    def validate_manual_edit(cls, record: SettlementRecord, field: str) -> None:
        """Raise RecordLockedError unless the record accepts manual edits."""
        if field not in MANUAL_FIELDS:
            raise ValueError(f"'{field}' is not a manual field")
        if not cls.can_edit_manual(record.status):
            raise RecordLockedError(record.worker_id, record.period_key, record.status, field)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def apply_transition(
        cls,
        record: SettlementRecord,
        to_status: str,
        manual_values: Mapping[str, Decimal] | None = None,
        now: datetime | None = None,
    ) -> SettlementRecord:
        """Validate and apply a transition in one step.

        Manual values are only accepted when freezing. Nothing on the record
        changes unless every check passes.
        """
        cls.validate_transition(record, to_status)

        updates: dict[str, object] = {"status": SettlementStatus(to_status).value}
        if manual_values:
            if to_status != SettlementStatus.FROZEN:
                raise InvalidTransitionError(
                    record.status,
                    to_status,
                    "manual values can only be captured when freezing",
                    record.worker_id,
                    record.period_key,
                )
            for name, value in manual_values.items():
                if name not in MANUAL_FIELDS:
                    raise ValueError(f"'{name}' is not a manual field")
                updates[name] = value

        stamp = now or datetime.now(timezone.utc)
        if to_status == SettlementStatus.FROZEN:
            updates["frozen_at"] = stamp
        elif to_status == SettlementStatus.PAID:
            updates["paid_at"] = stamp

        for name, value in updates.items():
            setattr(record, name, value)
        return record
