"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Settlement records
# ============================================================================


class SettlementRecordResponse(BaseModel):
    """Schema for a settlement record."""

    model_config = ConfigDict(from_attributes=True)

    settlement_record_id: str
    worker_id: str
    period_key: str
    fix_salary: Decimal
    calculated_kpi: Decimal
    manual_bonus: Decimal
    manual_penalty: Decimal
    advance: Decimal
    balance_at_start: Decimal
    status: str
    total: Decimal
    frozen_at: datetime | None = None
    paid_at: datetime | None = None
    task_payments: list[dict[str, Any]] = Field(default_factory=list)


class SettlementRowResponse(BaseModel):
    """Schema for one row of the settlement view."""

    worker_id: str
    worker_name: str
    job_title: str
    record: SettlementRecordResponse
    kpi_earned: Decimal
    bonuses_earned: Decimal
    unavailable: bool
    locked: bool
    commit_state: str | None = None
    errors: list[str] = Field(default_factory=list)


class SettlementListResponse(BaseModel):
    """Schema for the settlement view of a period."""

    period: str
    role: str
    items: list[SettlementRowResponse]
    total: Decimal
    recomputed: int
    failures: dict[str, str] = Field(default_factory=dict)


class SettlementHistoryResponse(BaseModel):
    """Schema for a worker's settlements across periods."""

    worker_id: str
    items: list[SettlementRecordResponse]
    total_paid: Decimal


# ============================================================================
# Mutations
# ============================================================================


class ManualFieldUpdate(BaseModel):
    """Schema for editing one manual adjustment."""

    field: Literal["manual_bonus", "manual_penalty", "advance"]
    value: Decimal = Field(ge=0)


class FreezeRequest(BaseModel):
    """Schema for freezing a settlement with its final manual values."""

    manual_bonus: Decimal = Field(default=Decimal("0"), ge=0)
    manual_penalty: Decimal = Field(default=Decimal("0"), ge=0)
    advance: Decimal = Field(default=Decimal("0"), ge=0)


# ============================================================================
# Drill-down
# ============================================================================


class TaskTypeDetailResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    task_type: str
    count: int
    hours: Decimal
    rate: Decimal
    total: Decimal


class ContentDetailResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    project_id: str
    project_name: str
    content_type: str
    quantity: Decimal
    attributed_quantity: Decimal
    rate: Decimal
    share_percentage: Decimal
    total: Decimal


class BonusDetailResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rule_id: str
    rule_name: str
    metric_source: str
    base_value: Decimal
    condition_met: bool
    reward_amount: Decimal
    description: str = ""


class DrillDownResponse(BaseModel):
    """Schema for the itemized breakdown of one settlement."""

    model_config = ConfigDict(from_attributes=True)

    worker_id: str
    period_key: str
    task_details: list[TaskTypeDetailResponse]
    content_details: list[ContentDetailResponse]
    bonus_details: list[BonusDetailResponse]
    task_total: Decimal
    content_total: Decimal
    bonus_total: Decimal
    kpi_total: Decimal
    errors: list[str] = Field(default_factory=list)


# ============================================================================
# Errors
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
