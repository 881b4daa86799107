"""Settlement service - orchestrates computation, records and edits."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from functools import partial
from typing import Any

from settlement_engine.calculators.stats import StatsCalculator
from settlement_engine.calculators.types import (
    ALL_ROLES,
    Period,
    StatsResult,
    Worker,
    round_to_cents,
)
from settlement_engine.config import Settings
from settlement_engine.models import COMPUTED_FIELDS, MANUAL_FIELDS, SettlementRecord
from settlement_engine.services.drill_down import DrillDown, DrillDownAggregator
from settlement_engine.services.edit_committer import CommitState, EditCommitter
from settlement_engine.services.period_cache import PeriodCache
from settlement_engine.services.reconciler import Reconciler
from settlement_engine.services.state_machine import (
    LifecycleError,
    SettlementStateMachine,
    SettlementStatus,
)
from settlement_engine.services.store import (
    RecordNotFoundError,
    SettlementStore,
    StatusConflictError,
)
from settlement_engine.sources.base import SettlementSource, SourceSnapshot

logger = logging.getLogger(__name__)


class StalePassError(Exception):
    """Raised when the selection changed while a pass was running."""

    def __init__(self, period_key: str, generation: int):
        self.period_key = period_key
        self.generation = generation
        super().__init__(
            f"Recomputation pass for {period_key} (generation {generation}) was superseded"
        )


@dataclass
class SettlementRow:
    """One worker's settlement as currently displayed."""

    worker: Worker
    record: SettlementRecord
    stats: StatsResult
    commit_state: CommitState | None = None

    @property
    def total(self) -> Decimal:
        return self.record.total

    @property
    def is_locked(self) -> bool:
        return not SettlementStateMachine.can_edit_manual(self.record.status)

    @property
    def unavailable(self) -> bool:
        return not self.stats.success


@dataclass
class SettlementPass:
    """Result of one recomputation or refresh pass."""

    period_key: str
    role_filter: str
    generation: int
    rows: list[SettlementRow] = field(default_factory=list)
    recomputed: int = 0
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        return sum((row.total for row in self.rows), Decimal("0"))


def parse_manual_value(value: Any) -> Decimal:
    """Validate a manual adjustment. Must be a finite, non-negative amount."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid amount: {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Amount must be a non-negative number, got {value!r}")
    return round_to_cents(amount)


class SettlementService:
    """Service for the settlement view of one period and worker filter.

    Operations:
    - select: change period/filter; invalidates the cache and recomputes
    - recompute: forced recomputation pass for every filtered worker
    - refresh: merge-only pass reusing cached stats
    - get_or_create_record: record for a worker and period, created as draft
    - update_manual_field: immediate in-memory edit, debounced persistence
    - freeze / pay: lifecycle transitions
    - drill_down: itemized breakdown of one settlement
    - history: a worker's settlements across periods
    """

    def __init__(
        self,
        source: SettlementSource,
        store: SettlementStore,
        cache: PeriodCache | None = None,
        settings: Settings | None = None,
    ):
        self.source = source
        self.store = store
        self.cache = cache or PeriodCache()
        self.reconciler = Reconciler()
        self.committer = EditCommitter(
            self._write_manual_fields,
            **_committer_options(settings),
        )
        self.drill_downs = DrillDownAggregator(cache=self.cache)
        self.loading = False
        self._snapshots: dict[str, SourceSnapshot] = {}
        self._snapshots_generation = self.cache.generation
        self._rows: dict[str, SettlementRow] = {}

    # ===== Selection and passes =====

    @property
    def period_key(self) -> str:
        selection = self.cache.selection
        if selection is None:
            raise ValueError("No settlement period selected")
        return selection.period_key

    @property
    def rows(self) -> list[SettlementRow]:
        return list(self._rows.values())

    def row(self, worker_id: str) -> SettlementRow:
        row = self._rows.get(worker_id)
        if row is None:
            raise RecordNotFoundError(worker_id, self.period_key)
        return row

    async def find_worker(self, worker_id: str) -> Worker:
        row = self._rows.get(worker_id)
        if row is not None:
            return row.worker
        for worker in await self.source.workers(ALL_ROLES):
            if worker.id == worker_id:
                return worker
        selection = self.cache.selection
        raise RecordNotFoundError(worker_id, selection.period_key if selection else "")

    async def select(self, period: Period | str, role_filter: str = ALL_ROLES) -> SettlementPass:
        """Show a period and filter. A changed selection recomputes everyone."""
        period = Period.parse(period) if isinstance(period, str) else period
        if self.cache.select(period.key, role_filter):
            self._rows = {}
            return await self._run_pass(force=True)
        return await self._run_pass(force=False)

    async def recompute(self) -> SettlementPass:
        """Invalidate the cache and recompute every worker in the filter."""
        self.cache.invalidate()
        return await self._run_pass(force=True)

    async def refresh(self) -> SettlementPass:
        """Re-read records and merge them with cached stats."""
        return await self._run_pass(force=False)

    async def _run_pass(self, force: bool) -> SettlementPass:
        selection = self.cache.selection
        if selection is None:
            raise ValueError("No settlement period selected")

        period = Period.parse(selection.period_key)
        generation = self.cache.generation
        self.loading = True
        try:
            workers = await self.source.workers(selection.role_filter)
            self._ensure_current(period.key, generation)

            inputs = await self._load_inputs(period, reload=force)
            self._ensure_current(period.key, generation)

            existing = {r.worker_id: r for r in await self.store.list_period(period.key)}
            self._ensure_current(period.key, generation)

            result = SettlementPass(
                period_key=period.key,
                role_filter=selection.role_filter,
                generation=generation,
            )
            rows: dict[str, SettlementRow] = {}
            for worker in workers:
                stats = self.cache.get(worker.id, period.key)
                if stats is None:
                    stats = self._compute_safely(worker, period, inputs)
                    self.cache.put(stats, generation)
                    result.recomputed += 1
                if not stats.success:
                    result.failures[worker.id] = "; ".join(stats.errors)

                record = await self._reconcile(worker, period.key, stats, existing.get(worker.id))
                self._ensure_current(period.key, generation)
                rows[worker.id] = self._make_row(worker, record, stats)

            self._rows = rows
            result.rows = list(rows.values())
            logger.info(
                "Settlement pass for %s (%s): %d rows, %d recomputed, %d failed",
                period.key,
                selection.role_filter,
                len(rows),
                result.recomputed,
                len(result.failures),
            )
            return result
        finally:
            if generation == self.cache.generation:
                self.loading = False

    def _ensure_current(self, period_key: str, generation: int) -> None:
        if generation != self.cache.generation:
            logger.warning("Discarding stale settlement pass for %s", period_key)
            raise StalePassError(period_key, generation)

    async def _load_inputs(self, period: Period, reload: bool = False) -> SourceSnapshot:
        """Source data for a period, shared within one cache generation.

        Snapshots are kept per period, so loading another period never
        replaces the inputs a running pass depends on.
        """
        generation = self.cache.generation
        if generation != self._snapshots_generation:
            self._snapshots = {}
            self._snapshots_generation = generation

        inputs = self._snapshots.get(period.key)
        if inputs is None or reload:
            inputs = await self.source.snapshot(period.key)
            if self._snapshots_generation == generation == self.cache.generation:
                self._snapshots[period.key] = inputs
        return inputs

    @staticmethod
    def _compute_for(worker: Worker, period: Period, inputs: SourceSnapshot) -> StatsResult:
        calculator = StatsCalculator(inputs.schemes, inputs.bonus_rules)
        return calculator.compute(
            worker,
            inputs.work_items,
            inputs.projects,
            period,
            inputs.metrics_for(worker.id),
        )

    def _compute_safely(
        self, worker: Worker, period: Period, inputs: SourceSnapshot
    ) -> StatsResult:
        """Compute one worker; a failure yields a zeroed, unavailable result."""
        try:
            return self._compute_for(worker, period, inputs)
        except Exception as e:
            logger.exception(
                "Settlement computation failed for worker %s in %s", worker.id, period.key
            )
            return StatsResult.unavailable(worker.id, period.key, str(e))

    async def _reconcile(
        self,
        worker: Worker,
        period_key: str,
        stats: StatsResult,
        existing: SettlementRecord | None,
    ) -> SettlementRecord:
        """Merge stats into the stored record and persist what changed."""
        if not stats.success:
            # Never persist figures from a failed computation
            return existing or SettlementRecord.draft(
                worker.id, period_key, balance_at_start=round_to_cents(worker.balance)
            )

        merge = self.reconciler.merge(worker, period_key, stats, existing)
        if merge.created:
            return await self.store.create(merge.record)
        if not merge.changed:
            return merge.record

        try:
            return await self.store.update_fields(
                worker.id,
                period_key,
                {name: getattr(merge.record, name) for name in (*COMPUTED_FIELDS, "task_payments")},
                expected_status=SettlementStatus.DRAFT.value,
            )
        except StatusConflictError:
            # Frozen meanwhile: the stored values are final
            stored = await self.store.get(worker.id, period_key)
            if stored is None:
                raise RecordNotFoundError(worker.id, period_key) from None
            return stored

    def _make_row(
        self, worker: Worker, record: SettlementRecord, stats: StatsResult
    ) -> SettlementRow:
        return SettlementRow(
            worker=worker,
            record=self.committer.overlay(record),
            stats=stats,
            commit_state=self.committer.state(worker.id, record.period_key),
        )

    # ===== Records =====

    async def get_or_create_record(self, worker: Worker, period: Period | str) -> SettlementRecord:
        """Load the worker's record for a period, creating a draft if needed."""
        period = Period.parse(period) if isinstance(period, str) else period
        existing = await self.store.get(worker.id, period.key)
        if existing is not None:
            return self.committer.overlay(existing)

        stats = self.cache.peek(worker.id, period.key)
        if stats is None:
            inputs = await self._load_inputs(period)
            stats = self._compute_safely(worker, period, inputs)
        return await self._reconcile(worker, period.key, stats, None)

    def update_manual_field(self, worker_id: str, field_name: str, value: Any) -> SettlementRow:
        """Apply a manual edit now and schedule its persistence.

        Raises:
            RecordNotFoundError: If the worker is not in the current view
            RecordLockedError: If the settlement is no longer a draft
            ValueError: If the field or value is invalid
        """
        row = self.row(worker_id)
        SettlementStateMachine.validate_manual_edit(row.record, field_name)
        amount = parse_manual_value(value)

        self.committer.stage(worker_id, row.record.period_key, field_name, amount)
        row.record = self.committer.overlay(row.record)
        row.commit_state = self.committer.state(worker_id, row.record.period_key)
        return row

    async def _write_manual_fields(
        self, worker_id: str, period_key: str, fields: dict[str, Decimal]
    ) -> SettlementRecord:
        """Persist manual fields; the only write path for debounced edits."""
        for name in fields:
            if name not in MANUAL_FIELDS:
                raise ValueError(f"'{name}' is not a manual field")
        saved = await self.store.update_fields(
            worker_id, period_key, fields, expected_status=SettlementStatus.DRAFT.value
        )
        self._sync_row(saved)
        return saved

    def _sync_row(self, record: SettlementRecord) -> None:
        row = self._rows.get(record.worker_id)
        if row is None or row.record.period_key != record.period_key:
            return
        row.record = self.committer.overlay(record)
        row.commit_state = self.committer.state(record.worker_id, record.period_key)

    async def freeze(
        self,
        worker_id: str,
        manual_bonus: Any,
        manual_penalty: Any,
        advance: Any,
        period_key: str | None = None,
    ) -> SettlementRecord:
        """Lock computed values and store the final manual values.

        Defaults to the selected period.

        Raises:
            RecordNotFoundError: If the worker has no record in the period
            InvalidTransitionError: If the record is not a draft
        """
        period_key = period_key or self.period_key
        record = await self.store.get(worker_id, period_key)
        if record is None:
            raise RecordNotFoundError(worker_id, period_key)

        values = {
            "manual_bonus": parse_manual_value(manual_bonus),
            "manual_penalty": parse_manual_value(manual_penalty),
            "advance": parse_manual_value(advance),
        }
        frozen = SettlementStateMachine.apply_transition(
            record.copy(), SettlementStatus.FROZEN, values
        )

        try:
            saved = await self.store.update_fields(
                worker_id,
                period_key,
                {**values, "status": frozen.status, "frozen_at": frozen.frozen_at},
                expected_status=record.status,
            )
        except LifecycleError:
            # No longer a draft: pending edits can never be written
            self.committer.discard(worker_id, period_key)
            raise

        # The frozen values supersede anything still waiting to be written
        self.committer.discard(worker_id, period_key)
        logger.info("Froze settlement for worker %s in %s", worker_id, period_key)
        self._sync_row(saved)
        return saved

    async def pay(self, record: SettlementRecord) -> SettlementRecord:
        """Mark a frozen settlement as paid.

        Raises:
            RecordNotFoundError: If the record no longer exists
            InvalidTransitionError: If the record is not frozen
        """
        current = await self.store.get(record.worker_id, record.period_key)
        if current is None:
            raise RecordNotFoundError(record.worker_id, record.period_key)

        paid = SettlementStateMachine.apply_transition(current.copy(), SettlementStatus.PAID)
        saved = await self.store.update_fields(
            record.worker_id,
            record.period_key,
            {"status": paid.status, "paid_at": paid.paid_at},
            expected_status=current.status,
        )
        logger.info(
            "Paid settlement for worker %s in %s: %s",
            record.worker_id,
            record.period_key,
            saved.total,
        )
        self._sync_row(saved)
        return saved

    async def history(self, worker_id: str) -> list[SettlementRecord]:
        """Every stored settlement of a worker, newest period first.

        Raises:
            RecordNotFoundError: If the worker is unknown
        """
        await self.find_worker(worker_id)
        records = await self.store.list_for_worker(worker_id)
        return [self.committer.overlay(record) for record in records]

    # ===== Inspection =====

    async def drill_down(self, worker: Worker, period: Period | str) -> DrillDown:
        """Itemized breakdown of a worker's computed earnings."""
        period = Period.parse(period) if isinstance(period, str) else period
        if self.cache.peek(worker.id, period.key) is not None:
            return self.drill_downs.drill_down(worker, period)
        inputs = await self._load_inputs(period)
        return self.drill_downs.drill_down(
            worker, period, compute=partial(self._compute_for, inputs=inputs)
        )

    async def close(self) -> None:
        """Persist pending edits."""
        await self.committer.close()


def _committer_options(settings: Settings | None) -> dict[str, Any]:
    if settings is None:
        return {}
    return {
        "field_delay": settings.field_commit_delay_ms / 1000,
        "batch_delay": settings.batch_commit_delay_ms / 1000,
        "retry_delay": settings.commit_retry_delay_ms / 1000,
        "max_retries": settings.commit_max_retries,
    }
