"""Collaborator data sources."""

from settlement_engine.sources.base import SettlementSource, SourceSnapshot
from settlement_engine.sources.memory import InMemorySource
from settlement_engine.sources.snapshot import load_snapshot_source

__all__ = [
    "InMemorySource",
    "SettlementSource",
    "SourceSnapshot",
    "load_snapshot_source",
]
