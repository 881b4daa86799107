"""Debounced persistence of manual settlement edits."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from settlement_engine.models import MANUAL_FIELDS, SettlementRecord
from settlement_engine.services.state_machine import LifecycleError

logger = logging.getLogger(__name__)

# (worker_id, period_key, {field: value}) -> persisted
EditWriter = Callable[[str, str, dict[str, Decimal]], Awaitable[object]]

EditKey = tuple[str, str]


class CommitState(str, Enum):
    """Where a pending edit is in its commit cycle."""

    PENDING = "pending"
    COMMITTING = "committing"
    UNSAVED = "unsaved"


@dataclass
class PendingEdit:
    """Manual field values waiting to be written for one settlement."""

    worker_id: str
    period_key: str
    fields: dict[str, Decimal] = field(default_factory=dict)
    state: CommitState = CommitState.PENDING
    attempts: int = 0
    last_error: str | None = None
    task: asyncio.Task[None] | None = None
    in_flight: bool = False

    @property
    def key(self) -> EditKey:
        return (self.worker_id, self.period_key)


@dataclass(frozen=True)
class RejectedEdit:
    """An edit the store refused for lifecycle reasons."""

    worker_id: str
    period_key: str
    fields: dict[str, Decimal]
    reason: str


class EditCommitter:
    """Applies manual edits immediately and persists them after a quiet window.

    Every edit to a settlement cancels and restarts that settlement's timer,
    so a burst of edits becomes one write carrying the latest values. A
    single changed field waits ``field_delay`` seconds; several fields of
    the same settlement wait ``batch_delay`` and are written together.

    A failed write keeps its values pending and is retried up to
    ``max_retries`` times, after which it stays UNSAVED until the next edit
    or an explicit flush. Edits the store rejects for lifecycle reasons are
    dropped and listed in ``rejected``.
    """

    def __init__(
        self,
        writer: EditWriter,
        field_delay: float = 0.8,
        batch_delay: float = 1.0,
        retry_delay: float = 2.0,
        max_retries: int = 3,
    ):
        self.writer = writer
        self.field_delay = field_delay
        self.batch_delay = batch_delay
        self.retry_delay = retry_delay
        self.max_retries = max_retries
        self._pending: dict[EditKey, PendingEdit] = {}
        self.rejected: list[RejectedEdit] = []

    def stage(
        self, worker_id: str, period_key: str, field_name: str, value: Decimal
    ) -> PendingEdit:
        """Record an edit and (re)start the settlement's commit timer."""
        if field_name not in MANUAL_FIELDS:
            raise ValueError(f"'{field_name}' is not a manual field")

        key = (worker_id, period_key)
        edit = self._pending.get(key)
        if edit is None:
            edit = PendingEdit(worker_id=worker_id, period_key=period_key)
            self._pending[key] = edit

        edit.fields[field_name] = value
        edit.state = CommitState.PENDING
        edit.attempts = 0
        if not edit.in_flight:
            self._schedule(edit, self._delay_for(edit))
        return edit

    def pending(self, worker_id: str, period_key: str) -> dict[str, Decimal]:
        """Values not yet confirmed by the store."""
        edit = self._pending.get((worker_id, period_key))
        return dict(edit.fields) if edit else {}

    def state(self, worker_id: str, period_key: str) -> CommitState | None:
        edit = self._pending.get((worker_id, period_key))
        return edit.state if edit else None

    def has_pending(self) -> bool:
        return bool(self._pending)

    def overlay(self, record: SettlementRecord) -> SettlementRecord:
        """Copy of a record with pending values taking precedence."""
        pending = self.pending(record.worker_id, record.period_key)
        if not pending:
            return record
        merged = record.copy()
        for name, value in pending.items():
            setattr(merged, name, value)
        return merged

    def discard(self, worker_id: str, period_key: str) -> dict[str, Decimal]:
        """Drop a pending edit without writing it."""
        edit = self._pending.pop((worker_id, period_key), None)
        if edit is None:
            return {}
        if edit.task is not None and not edit.in_flight:
            edit.task.cancel()
        return dict(edit.fields)

    async def flush(self, worker_id: str, period_key: str) -> None:
        """Write a pending edit now instead of waiting for its timer."""
        key = (worker_id, period_key)
        edit = self._pending.get(key)
        if edit is None:
            return
        if edit.in_flight and edit.task is not None:
            await asyncio.shield(edit.task)
            edit = self._pending.get(key)
            if edit is None:
                return
        if edit.task is not None and not edit.task.done():
            edit.task.cancel()
        edit.task = None
        await self._commit(edit)

    async def flush_all(self) -> None:
        for worker_id, period_key in list(self._pending):
            await self.flush(worker_id, period_key)

    async def wait_idle(self) -> None:
        """Wait until no commit timer or write is outstanding."""
        while True:
            tasks = [
                e.task
                for e in self._pending.values()
                if e.task is not None and not e.task.done()
            ]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        """Persist everything still pending."""
        await self.flush_all()

    def _delay_for(self, edit: PendingEdit) -> float:
        return self.field_delay if len(edit.fields) <= 1 else self.batch_delay

    def _schedule(self, edit: PendingEdit, delay: float) -> None:
        current = asyncio.current_task()
        if edit.task is not None and edit.task is not current and not edit.task.done():
            edit.task.cancel()
        loop = asyncio.get_running_loop()
        edit.task = loop.create_task(self._commit_after(edit, delay))

    async def _commit_after(self, edit: PendingEdit, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._commit(edit)

    async def _commit(self, edit: PendingEdit) -> None:
        if not edit.fields or self._pending.get(edit.key) is not edit:
            return

        snapshot = dict(edit.fields)
        edit.state = CommitState.COMMITTING
        edit.in_flight = True
        try:
            await self.writer(edit.worker_id, edit.period_key, snapshot)
        except LifecycleError as e:
            logger.warning(
                "Edit for worker %s in %s rejected: %s", edit.worker_id, edit.period_key, e
            )
            self.rejected.append(
                RejectedEdit(edit.worker_id, edit.period_key, snapshot, str(e))
            )
            if self._pending.get(edit.key) is edit:
                del self._pending[edit.key]
            return
        except Exception as e:
            logger.exception(
                "Failed to persist edit for worker %s in %s", edit.worker_id, edit.period_key
            )
            edit.attempts += 1
            edit.last_error = str(e)
            edit.state = CommitState.UNSAVED
            if edit.attempts <= self.max_retries:
                self._schedule(edit, self.retry_delay)
            return
        finally:
            edit.in_flight = False

        if self._pending.get(edit.key) is not edit:
            return

        # Values edited again while the write was in flight stay pending
        for name, value in snapshot.items():
            if edit.fields.get(name) == value:
                del edit.fields[name]

        if edit.fields:
            edit.state = CommitState.PENDING
            self._schedule(edit, self._delay_for(edit))
        else:
            del self._pending[edit.key]
            logger.debug(
                "Committed %s for worker %s in %s",
                sorted(snapshot),
                edit.worker_id,
                edit.period_key,
            )
