"""Tests for the settlement HTTP API."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from settlement_engine.api.app import create_app

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def client(service) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(service)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await service.close()


class TestHealth:
    """Test health endpoint."""

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["store"] == "healthy"


class TestSettlementEndpoints:
    """Test settlement endpoints."""

    async def test_list_settlements(self, client):
        response = await client.get("/api/v1/settlements", params={"period": "2024-03"})

        assert response.status_code == 200
        body = response.json()
        assert body["period"] == "2024-03"
        assert body["role"] == "all"
        assert [item["worker_id"] for item in body["items"]] == ["alice", "bob", "carol"]
        alice = body["items"][0]
        assert alice["record"]["status"] == "draft"
        assert alice["locked"] is False
        assert float(alice["record"]["total"]) == 1054.0
        assert float(body["total"]) == 2913.0

    async def test_list_with_role_filter(self, client):
        response = await client.get(
            "/api/v1/settlements", params={"period": "2024-03", "role": "smm"}
        )

        assert response.status_code == 200
        assert [item["worker_id"] for item in response.json()["items"]] == ["bob", "carol"]

    async def test_invalid_period(self, client):
        response = await client.get("/api/v1/settlements", params={"period": "March"})

        assert response.status_code == 422

    async def test_list_without_selection(self, client):
        response = await client.get("/api/v1/settlements")

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_VALUE"

    async def test_update_manual_field(self, client):
        await client.get("/api/v1/settlements", params={"period": "2024-03"})

        response = await client.patch(
            "/api/v1/settlements/alice", json={"field": "manual_bonus", "value": "46"}
        )

        assert response.status_code == 200
        body = response.json()
        assert float(body["record"]["manual_bonus"]) == 46.0
        assert float(body["record"]["total"]) == 1100.0
        assert body["commit_state"] == "pending"

    async def test_update_rejects_negative_value(self, client):
        await client.get("/api/v1/settlements", params={"period": "2024-03"})

        response = await client.patch(
            "/api/v1/settlements/alice", json={"field": "advance", "value": "-1"}
        )

        assert response.status_code == 422

    async def test_update_unknown_worker(self, client):
        await client.get("/api/v1/settlements", params={"period": "2024-03"})

        response = await client.patch(
            "/api/v1/settlements/nobody", json={"field": "advance", "value": "1"}
        )

        assert response.status_code == 404
        assert response.json()["code"] == "RECORD_NOT_FOUND"

    async def test_freeze_and_pay(self, client):
        await client.get("/api/v1/settlements", params={"period": "2024-03"})

        frozen = await client.post(
            "/api/v1/settlements/bob/freeze",
            json={"manual_bonus": "10", "manual_penalty": "0", "advance": "100"},
        )
        assert frozen.status_code == 200
        assert frozen.json()["status"] == "frozen"
        assert float(frozen.json()["total"]) == 844.0

        paid = await client.post("/api/v1/settlements/bob/pay")
        assert paid.status_code == 200
        assert paid.json()["status"] == "paid"
        assert paid.json()["paid_at"] is not None

    async def test_pay_draft_conflict(self, client):
        await client.get("/api/v1/settlements", params={"period": "2024-03"})

        response = await client.post("/api/v1/settlements/carol/pay")

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "INVALID_TRANSITION"
        assert "carol" in body["detail"]

    async def test_edit_frozen_conflict(self, client):
        await client.get("/api/v1/settlements", params={"period": "2024-03"})
        await client.post("/api/v1/settlements/alice/freeze", json={})

        response = await client.patch(
            "/api/v1/settlements/alice", json={"field": "advance", "value": "5"}
        )

        assert response.status_code == 409
        assert response.json()["code"] == "RECORD_LOCKED"

    async def test_drill_down(self, client):
        await client.get("/api/v1/settlements", params={"period": "2024-03"})

        response = await client.get("/api/v1/settlements/bob/drill-down")

        assert response.status_code == 200
        body = response.json()
        assert body["period_key"] == "2024-03"
        assert [d["task_type"] for d in body["task_details"]] == ["smm"]
        assert float(body["content_details"][0]["share_percentage"]) == 50.0
        assert float(body["kpi_total"]) == 34.0
        assert body["bonus_details"] == []

    async def test_drill_down_unknown_worker(self, client):
        response = await client.get(
            "/api/v1/settlements/nobody/drill-down", params={"period": "2024-03"}
        )

        assert response.status_code == 404

    async def test_worker_history(self, client):
        await client.get("/api/v1/settlements", params={"period": "2024-03"})
        await client.post("/api/v1/settlements/bob/freeze", json={})
        await client.post("/api/v1/settlements/bob/pay")
        await client.get("/api/v1/settlements", params={"period": "2024-02"})

        response = await client.get("/api/v1/settlements/workers/bob/history")

        assert response.status_code == 200
        body = response.json()
        assert body["worker_id"] == "bob"
        assert [item["period_key"] for item in body["items"]] == ["2024-03", "2024-02"]
        assert [item["status"] for item in body["items"]] == ["paid", "draft"]
        assert float(body["total_paid"]) == 934.0

    async def test_worker_history_unknown_worker(self, client):
        await client.get("/api/v1/settlements", params={"period": "2024-03"})

        response = await client.get("/api/v1/settlements/workers/nobody/history")

        assert response.status_code == 404
        assert response.json()["code"] == "RECORD_NOT_FOUND"
