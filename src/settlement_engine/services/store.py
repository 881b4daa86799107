"""Settlement record persistence.

The store is the single source of truth for settlement records. Both
implementations hand out transient copies, so in-memory projections can
never mutate persisted state by accident. Writes that depend on a record's
status pass ``expected_status`` and are refused atomically when the stored
status differs.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from settlement_engine.models import SettlementRecord
from settlement_engine.services.state_machine import LifecycleError


class RecordNotFoundError(Exception):
    """Raised when no record exists for a (worker, period) pair."""

    def __init__(self, worker_id: str, period_key: str):
        self.worker_id = worker_id
        self.period_key = period_key
        super().__init__(f"No settlement record for worker {worker_id} in {period_key}")


class StatusConflictError(LifecycleError):
    """Raised when a guarded write finds the record in another status."""

    def __init__(self, worker_id: str, period_key: str, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Settlement for worker {worker_id} in {period_key} is {actual}, "
            f"expected {expected}",
            worker_id,
            period_key,
        )


@runtime_checkable
class SettlementStore(Protocol):
    """Persistent collection of settlement records."""

    async def get(self, worker_id: str, period_key: str) -> SettlementRecord | None:
        """Load the record for a worker and period, if any."""
        ...

    async def list_period(self, period_key: str) -> list[SettlementRecord]:
        """Load every record of a period."""
        ...

    async def list_for_worker(self, worker_id: str) -> list[SettlementRecord]:
        """Load every record of a worker, newest period first."""
        ...

    async def create(self, record: SettlementRecord) -> SettlementRecord:
        """Insert a record unless one exists for its (worker, period).

        Returns whichever record is stored afterwards.
        """
        ...

    async def update_fields(
        self,
        worker_id: str,
        period_key: str,
        fields: Mapping[str, Any],
        expected_status: str | None = None,
    ) -> SettlementRecord:
        """Write a subset of fields onto an existing record."""
        ...


def _check_status(record: SettlementRecord, expected_status: str | None) -> None:
    if expected_status is not None and record.status != expected_status:
        raise StatusConflictError(
            record.worker_id, record.period_key, str(expected_status), record.status
        )


class MemorySettlementStore:
    """Dict-backed store keyed by (worker_id, period_key)."""

    def __init__(self, records: list[SettlementRecord] | None = None) -> None:
        self._records: dict[tuple[str, str], SettlementRecord] = {}
        self._lock = asyncio.Lock()
        for record in records or []:
            self._records[(record.worker_id, record.period_key)] = record.copy()

    async def get(self, worker_id: str, period_key: str) -> SettlementRecord | None:
        record = self._records.get((worker_id, period_key))
        return record.copy() if record is not None else None

    async def list_period(self, period_key: str) -> list[SettlementRecord]:
        return [
            r.copy()
            for (_, key), r in sorted(self._records.items())
            if key == period_key
        ]

    async def list_for_worker(self, worker_id: str) -> list[SettlementRecord]:
        return [
            r.copy()
            for (owner, _), r in sorted(self._records.items(), reverse=True)
            if owner == worker_id
        ]

    async def create(self, record: SettlementRecord) -> SettlementRecord:
        async with self._lock:
            key = (record.worker_id, record.period_key)
            if key not in self._records:
                self._records[key] = record.copy()
            return self._records[key].copy()

    async def update_fields(
        self,
        worker_id: str,
        period_key: str,
        fields: Mapping[str, Any],
        expected_status: str | None = None,
    ) -> SettlementRecord:
        async with self._lock:
            existing = self._records.get((worker_id, period_key))
            if existing is None:
                raise RecordNotFoundError(worker_id, period_key)
            _check_status(existing, expected_status)
            for name, value in fields.items():
                setattr(existing, name, value)
            return existing.copy()


class SqlAlchemySettlementStore:
    """Store backed by the ``settlement_record`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, worker_id: str, period_key: str) -> SettlementRecord | None:
        async with self.session_factory() as session:
            record = await self._find(session, worker_id, period_key)
            return record.copy() if record is not None else None

    async def list_period(self, period_key: str) -> list[SettlementRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SettlementRecord)
                .where(SettlementRecord.period_key == period_key)
                .order_by(SettlementRecord.worker_id)
            )
            return [r.copy() for r in result.scalars().all()]

    async def list_for_worker(self, worker_id: str) -> list[SettlementRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SettlementRecord)
                .where(SettlementRecord.worker_id == worker_id)
                .order_by(SettlementRecord.period_key.desc())
            )
            return [r.copy() for r in result.scalars().all()]

    async def create(self, record: SettlementRecord) -> SettlementRecord:
        async with self.session_factory() as session:
            existing = await self._find(session, record.worker_id, record.period_key)
            if existing is not None:
                return existing.copy()

            created = record.copy()
            session.add(created)
            try:
                await session.commit()
            except IntegrityError:
                # Lost a race on the (worker_id, period_key) unique constraint
                await session.rollback()
                winner = await self._find(session, record.worker_id, record.period_key)
                if winner is None:
                    raise
                return winner.copy()
            return created.copy()

    async def update_fields(
        self,
        worker_id: str,
        period_key: str,
        fields: Mapping[str, Any],
        expected_status: str | None = None,
    ) -> SettlementRecord:
        async with self.session_factory() as session:
            try:
                existing = await self._find(session, worker_id, period_key, for_update=True)
                if existing is None:
                    raise RecordNotFoundError(worker_id, period_key)
                _check_status(existing, expected_status)
                for name, value in fields.items():
                    setattr(existing, name, value)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            return existing.copy()

    async def _find(
        self,
        session: AsyncSession,
        worker_id: str,
        period_key: str,
        for_update: bool = False,
    ) -> SettlementRecord | None:
        query = select(SettlementRecord).where(
            SettlementRecord.worker_id == worker_id,
            SettlementRecord.period_key == period_key,
        )
        if for_update:
            query = query.with_for_update()
        result = await session.execute(query)
        return result.scalar_one_or_none()
