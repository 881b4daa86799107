"""Tests for collaborator data sources."""

import json
from decimal import Decimal
from pathlib import Path

import pytest
from pydantic import ValidationError

from settlement_engine.calculators.types import (
    ConditionType,
    RewardType,
    TargetType,
    WorkItemStatus,
)
from settlement_engine.services.settlement_service import SettlementService
from settlement_engine.services.store import MemorySettlementStore
from settlement_engine.sources import InMemorySource, load_snapshot_source

SNAPSHOT = Path(__file__).parent / "data" / "snapshot.json"


class TestSnapshotSource:
    """Test loading a JSON snapshot into domain types."""

    def test_load_snapshot(self):
        source = load_snapshot_source(SNAPSHOT)

        assert source.job_titles() == ["designer", "smm"]
        assert source.work_items[0].status == WorkItemStatus.DONE
        assert source.work_items[1].estimated_hours is None
        assert source.projects[0].team_ids == ("bob", "carol")
        assert source.projects[0].content_metrics["posts"].fact == Decimal("10")
        assert source.schemes[1].target_type == TargetType.JOB_TITLE
        assert source.schemes[1].kpi_rules[0].task_type == "Post"

        rule = source.bonus_rules[0]
        assert rule.condition_type == ConditionType.THRESHOLD
        assert rule.reward_type == RewardType.PERCENT

    @pytest.mark.asyncio
    async def test_snapshot_for_period(self):
        source = load_snapshot_source(SNAPSHOT)

        snapshot = await source.snapshot("2024-03")

        assert snapshot.metrics_for("bob") == {"sales_revenue": Decimal("2000")}
        assert snapshot.metrics_for("alice") == {}
        assert (await source.snapshot("2024-04")).metrics_for("bob") == {}

    @pytest.mark.asyncio
    async def test_snapshot_drives_settlements(self, fast_settings):
        service = SettlementService(
            load_snapshot_source(SNAPSHOT), MemorySettlementStore(), settings=fast_settings
        )

        result = await service.select("2024-03")

        totals = {row.worker.id: row.total for row in result.rows}
        # Bob: 900 base + 9 tasks + 25 posts + 5% of 2000 sales
        assert totals == {
            "alice": Decimal("1054.00"),
            "bob": Decimal("1034.00"),
            "carol": Decimal("925.00"),
        }

    def test_bad_rate_values_survive_loading(self, tmp_path):
        """Unusable rates load and are zeroed later by the calculator."""
        document = json.loads(SNAPSHOT.read_text())
        document["salary_schemes"][0]["kpi_rules"][0]["value"] = "n/a"
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps(document))

        source = load_snapshot_source(path)

        assert source.schemes[0].kpi_rules[0].value == "n/a"

    def test_invalid_document_rejected(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps({"workers": [{"name": "No id"}]}))

        with pytest.raises(ValidationError):
            load_snapshot_source(path)


class TestInMemorySource:
    """Test role filtering."""

    @pytest.mark.asyncio
    async def test_role_filter(self, source):
        assert [w.id for w in await source.workers("all")] == ["alice", "bob", "carol"]
        assert [w.id for w in await source.workers("smm")] == ["bob", "carol"]
        assert await source.workers("accountant") == []

    @pytest.mark.asyncio
    async def test_empty_source(self):
        source = InMemorySource()

        snapshot = await source.snapshot("2024-03")

        assert snapshot.work_items == ()
        assert await source.workers("all") == []
