"""Settlement engine services."""

from settlement_engine.services.drill_down import DrillDown, DrillDownAggregator
from settlement_engine.services.edit_committer import CommitState, EditCommitter
from settlement_engine.services.period_cache import PeriodCache
from settlement_engine.services.reconciler import Reconciler
from settlement_engine.services.settlement_service import (
    SettlementPass,
    SettlementRow,
    SettlementService,
    StalePassError,
)
from settlement_engine.services.state_machine import (
    InvalidTransitionError,
    LifecycleError,
    RecordLockedError,
    SettlementStateMachine,
    SettlementStatus,
)
from settlement_engine.services.store import (
    MemorySettlementStore,
    RecordNotFoundError,
    SettlementStore,
    SqlAlchemySettlementStore,
    StatusConflictError,
)

__all__ = [
    "CommitState",
    "DrillDown",
    "DrillDownAggregator",
    "EditCommitter",
    "InvalidTransitionError",
    "LifecycleError",
    "MemorySettlementStore",
    "PeriodCache",
    "Reconciler",
    "RecordLockedError",
    "RecordNotFoundError",
    "SettlementPass",
    "SettlementRow",
    "SettlementService",
    "SettlementStateMachine",
    "SettlementStatus",
    "SettlementStore",
    "SqlAlchemySettlementStore",
    "StalePassError",
    "StatusConflictError",
]
