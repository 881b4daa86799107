"""Pytest fixtures for settlement engine tests."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from settlement_engine.calculators.types import (
    ContentMetric,
    KpiRule,
    Period,
    Project,
    SalaryScheme,
    TargetType,
    WorkItem,
    WorkItemStatus,
    Worker,
)
from settlement_engine.config import Settings
from settlement_engine.database import create_schema, make_session_factory
from settlement_engine.services.settlement_service import SettlementService
from settlement_engine.services.store import MemorySettlementStore, SqlAlchemySettlementStore
from settlement_engine.sources import InMemorySource

# Use in-memory SQLite for tests (with async support)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def march(day: int) -> datetime:
    """Completion timestamp inside the March 2024 test period."""
    return datetime(2024, 3, day, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def period() -> Period:
    return Period(2024, 3)


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with commit windows short enough for tests."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="DEBUG",
        source_snapshot_path=None,
        field_commit_delay_ms=20,
        batch_commit_delay_ms=30,
        commit_retry_delay_ms=10,
        commit_max_retries=2,
    )


# ============================================================================
# Collaborator data
# ============================================================================


@pytest.fixture
def designer() -> Worker:
    return Worker(
        id="alice",
        name="Alice",
        job_title="designer",
        salary=Decimal("1000"),
        balance=Decimal("50"),
    )


@pytest.fixture
def smm_workers() -> list[Worker]:
    return [
        Worker(id="bob", name="Bob", job_title="smm", salary=Decimal("800")),
        Worker(id="carol", name="Carol", job_title="smm", salary=Decimal("800")),
    ]


@pytest.fixture
def workers(designer, smm_workers) -> list[Worker]:
    return [designer, *smm_workers]


@pytest.fixture
def design_scheme() -> SalaryScheme:
    """Designer rates: design 10/h, copywriting 8/h."""
    return SalaryScheme(
        id="scheme-design",
        target_type=TargetType.JOB_TITLE,
        target_id="designer",
        kpi_rules=(
            KpiRule("design", Decimal("10")),
            KpiRule("copywriting", Decimal("8")),
        ),
    )


@pytest.fixture
def smm_scheme() -> SalaryScheme:
    """SMM rates: 5 per post, 12 per reel, 6/h for smm tasks; base 900."""
    return SalaryScheme(
        id="scheme-smm",
        target_type=TargetType.JOB_TITLE,
        target_id="smm",
        base_salary=Decimal("900"),
        kpi_rules=(
            KpiRule("Post", Decimal("5")),
            KpiRule("Reels", Decimal("12")),
            KpiRule("smm", Decimal("6")),
        ),
    )


@pytest.fixture
def schemes(design_scheme, smm_scheme) -> list[SalaryScheme]:
    return [design_scheme, smm_scheme]


@pytest.fixture
def launch_project() -> Project:
    """Bob and Carol share 10 delivered posts equally."""
    return Project(
        id="p-launch",
        name="Launch",
        start_date=date(2024, 3, 1),
        end_date=date(2024, 3, 31),
        team_ids=("bob", "carol"),
        content_metrics={"posts": ContentMetric(plan=Decimal("12"), fact=Decimal("10"))},
    )


@pytest.fixture
def work_items() -> list[WorkItem]:
    return [
        WorkItem("d1", "design", WorkItemStatus.DONE, "alice", "Banner", march(5),
                 estimated_hours=Decimal("2")),
        WorkItem("d2", "design", WorkItemStatus.DONE, "alice", "Logo", march(6)),
        WorkItem("d3", "copywriting", WorkItemStatus.DONE, "alice", "Copy", march(7),
                 estimated_hours=Decimal("3")),
        # Completed in February
        WorkItem("d4", "design", WorkItemStatus.DONE, "alice", "Old",
                 datetime(2024, 2, 28, 23, 0, tzinfo=timezone.utc),
                 estimated_hours=Decimal("5")),
        # Not finished
        WorkItem("d5", "design", WorkItemStatus.IN_PROGRESS, "alice", "Draft", None,
                 estimated_hours=Decimal("4")),
        WorkItem("s1", "smm", WorkItemStatus.DONE, "bob", "Schedule", march(10),
                 project_id="p-launch", estimated_hours=Decimal("1.5")),
    ]


@pytest.fixture
def source(workers, work_items, launch_project, schemes) -> InMemorySource:
    return InMemorySource(
        workers=workers,
        work_items=work_items,
        projects=[launch_project],
        schemes=schemes,
    )


@pytest.fixture
def memory_store() -> MemorySettlementStore:
    return MemorySettlementStore()


@pytest.fixture
def service(source, memory_store, fast_settings) -> SettlementService:
    return SettlementService(source, memory_store, settings=fast_settings)


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with the settlement schema."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
def sql_store(session_factory) -> SqlAlchemySettlementStore:
    return SqlAlchemySettlementStore(session_factory)
