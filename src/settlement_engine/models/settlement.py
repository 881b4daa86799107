"""Settlement record model."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Numeric,
    String,
    UniqueConstraint,
    inspect,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from settlement_engine.models.base import Base, TimestampMixin

MANUAL_FIELDS = ("manual_bonus", "manual_penalty", "advance")
COMPUTED_FIELDS = ("fix_salary", "calculated_kpi")

_ZERO = Decimal("0")


def _new_record_id() -> str:
    return str(uuid4())


class SettlementRecord(Base, TimestampMixin):
    """One worker's compensation for one period.

    The payable total is always derived from the current field values and
    never stored.
    """

    __tablename__ = "settlement_record"

    settlement_record_id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_new_record_id
    )
    worker_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    period_key: Mapped[str] = mapped_column(String(7), nullable=False, index=True)

    # Computed, overwritten while draft
    fix_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=_ZERO)
    calculated_kpi: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=_ZERO)

    # Manual adjustments
    manual_bonus: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=_ZERO)
    manual_penalty: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=_ZERO)
    advance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=_ZERO)

    balance_at_start: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=_ZERO
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    frozen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    task_payments: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list
    )

    __table_args__ = (
        UniqueConstraint("worker_id", "period_key", name="settlement_record_worker_period_unique"),
        CheckConstraint(
            "status IN ('draft', 'frozen', 'paid')",
            name="settlement_record_status_check",
        ),
    )

    @classmethod
    def draft(
        cls,
        worker_id: str,
        period_key: str,
        fix_salary: Decimal = _ZERO,
        calculated_kpi: Decimal = _ZERO,
        balance_at_start: Decimal = _ZERO,
        task_payments: list[dict[str, Any]] | None = None,
    ) -> SettlementRecord:
        """Build a new draft with zeroed manual fields."""
        return cls(
            settlement_record_id=_new_record_id(),
            worker_id=worker_id,
            period_key=period_key,
            fix_salary=fix_salary,
            calculated_kpi=calculated_kpi,
            manual_bonus=_ZERO,
            manual_penalty=_ZERO,
            advance=_ZERO,
            balance_at_start=balance_at_start,
            status="draft",
            task_payments=list(task_payments or []),
        )

    @property
    def total(self) -> Decimal:
        """fix + kpi + bonus - penalty - advance."""
        return (
            (self.fix_salary or _ZERO)
            + (self.calculated_kpi or _ZERO)
            + (self.manual_bonus or _ZERO)
            - (self.manual_penalty or _ZERO)
            - (self.advance or _ZERO)
        )

    def manual_values(self) -> dict[str, Decimal]:
        return {name: getattr(self, name) or _ZERO for name in MANUAL_FIELDS}

    def copy(self) -> SettlementRecord:
        """Transient copy carrying the currently loaded field values."""
        columns = {c.key for c in self.__mapper__.column_attrs}
        values = {k: v for k, v in inspect(self).dict.items() if k in columns}
        values["task_payments"] = list(self.task_payments or [])
        return SettlementRecord(**values)

    def __repr__(self) -> str:
        return (
            f"SettlementRecord(worker_id={self.worker_id!r}, period_key={self.period_key!r}, "
            f"status={self.status!r}, total={self.total})"
        )
