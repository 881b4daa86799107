"""Settlement API endpoints."""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Path, Query

from settlement_engine.api.dependencies import Service
from settlement_engine.api.schemas import (
    DrillDownResponse,
    ErrorResponse,
    FreezeRequest,
    ManualFieldUpdate,
    SettlementHistoryResponse,
    SettlementListResponse,
    SettlementRecordResponse,
    SettlementRowResponse,
)
from settlement_engine.calculators.types import ALL_ROLES, Period
from settlement_engine.services.settlement_service import (
    SettlementPass,
    SettlementRow,
    SettlementService,
)
from settlement_engine.services.state_machine import SettlementStatus
from settlement_engine.services.store import RecordNotFoundError

router = APIRouter(prefix="/settlements", tags=["settlements"])

PeriodQuery = Annotated[
    str | None,
    Query(pattern=r"^\d{4}-\d{2}$", description="Settlement period (YYYY-MM)"),
]
WorkerPath = Annotated[str, Path(description="Worker ID")]


def _row_response(row: SettlementRow) -> SettlementRowResponse:
    return SettlementRowResponse(
        worker_id=row.worker.id,
        worker_name=row.worker.name,
        job_title=row.worker.job_title,
        record=SettlementRecordResponse.model_validate(row.record),
        kpi_earned=row.stats.kpi_earned,
        bonuses_earned=row.stats.bonuses_earned,
        unavailable=row.unavailable,
        locked=row.is_locked,
        commit_state=row.commit_state.value if row.commit_state else None,
        errors=list(row.stats.errors),
    )


def _list_response(result: SettlementPass) -> SettlementListResponse:
    return SettlementListResponse(
        period=result.period_key,
        role=result.role_filter,
        items=[_row_response(row) for row in result.rows],
        total=result.total,
        recomputed=result.recomputed,
        failures=result.failures,
    )


async def _ensure_period(service: SettlementService, period: str | None) -> str:
    """Switch the view to ``period`` when it differs from the selection."""
    selection = service.cache.selection
    if period is None:
        return service.period_key
    if selection is None or selection.period_key != period:
        role = selection.role_filter if selection else ALL_ROLES
        await service.select(Period.parse(period), role)
    return period


@router.get(
    "",
    response_model=SettlementListResponse,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def list_settlements(
    service: Service,
    period: PeriodQuery = None,
    role: Annotated[str, Query(description="Job title or 'all'")] = ALL_ROLES,
) -> SettlementListResponse:
    """Settlement view for a period and role filter.

    A new period or filter recomputes every worker; otherwise cached
    figures are merged with the stored records.
    """
    if period is None:
        result = await service.refresh()
    else:
        result = await service.select(Period.parse(period), role)
    return _list_response(result)


@router.post(
    "/recompute",
    response_model=SettlementListResponse,
    responses={409: {"model": ErrorResponse}},
)
async def recompute_settlements(service: Service) -> SettlementListResponse:
    """Force a recomputation pass for the selected period."""
    return _list_response(await service.recompute())


@router.patch(
    "/{worker_id}",
    response_model=SettlementRowResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def update_manual_field(
    service: Service,
    worker_id: WorkerPath,
    payload: ManualFieldUpdate,
    period: PeriodQuery = None,
) -> SettlementRowResponse:
    """Edit a manual adjustment. The value is persisted after a quiet window."""
    await _ensure_period(service, period)
    row = service.update_manual_field(worker_id, payload.field, payload.value)
    return _row_response(row)


@router.post(
    "/{worker_id}/freeze",
    response_model=SettlementRecordResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def freeze_settlement(
    service: Service,
    worker_id: WorkerPath,
    payload: FreezeRequest,
    period: PeriodQuery = None,
) -> SettlementRecordResponse:
    """Lock computed values and store the final manual values."""
    period_key = await _ensure_period(service, period)
    record = await service.freeze(
        worker_id,
        payload.manual_bonus,
        payload.manual_penalty,
        payload.advance,
        period_key=period_key,
    )
    return SettlementRecordResponse.model_validate(record)


@router.post(
    "/{worker_id}/pay",
    response_model=SettlementRecordResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def pay_settlement(
    service: Service,
    worker_id: WorkerPath,
    period: PeriodQuery = None,
) -> SettlementRecordResponse:
    """Mark a frozen settlement as paid."""
    period_key = await _ensure_period(service, period)
    record = await service.store.get(worker_id, period_key)
    if record is None:
        raise RecordNotFoundError(worker_id, period_key)
    paid = await service.pay(record)
    return SettlementRecordResponse.model_validate(paid)


@router.get(
    "/{worker_id}/drill-down",
    response_model=DrillDownResponse,
    responses={404: {"model": ErrorResponse}},
)
async def drill_down(
    service: Service,
    worker_id: WorkerPath,
    period: PeriodQuery = None,
) -> DrillDownResponse:
    """Itemized task, content and bonus figures behind a settlement."""
    period_key = period or service.period_key
    worker = await service.find_worker(worker_id)
    breakdown = await service.drill_down(worker, period_key)
    return DrillDownResponse.model_validate(breakdown)


@router.get(
    "/workers/{worker_id}/history",
    response_model=SettlementHistoryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def settlement_history(
    service: Service,
    worker_id: WorkerPath,
) -> SettlementHistoryResponse:
    """A worker's settlements across every period, newest first."""
    records = await service.history(worker_id)
    total_paid = sum(
        (r.total for r in records if r.status == SettlementStatus.PAID.value),
        Decimal("0"),
    )
    return SettlementHistoryResponse(
        worker_id=worker_id,
        items=[SettlementRecordResponse.model_validate(r) for r in records],
        total_paid=total_paid,
    )
