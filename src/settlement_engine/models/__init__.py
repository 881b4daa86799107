"""SQLAlchemy ORM models."""

from settlement_engine.models.base import Base, TimestampMixin
from settlement_engine.models.settlement import (
    COMPUTED_FIELDS,
    MANUAL_FIELDS,
    SettlementRecord,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "COMPUTED_FIELDS",
    "MANUAL_FIELDS",
    "SettlementRecord",
]
