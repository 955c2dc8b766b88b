"""Tests for the HTTP API."""
import pytest

from aiexpense.providers.pricing import PricingFetchError


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "aiexpense"
        assert data["ai_provider"] == "gemini"


class TestMessages:

    @pytest.mark.asyncio
    async def test_process_message(self, client):
        response = await client.post("/api/messages", json={"user_id": "alice", "text": "breakfast $20 lunch $30"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert [e["description"] for e in data["expenses"]] == ["breakfast", "lunch"]
        assert data["total"] == 50
        assert data["reply"].startswith("✓ Recorded 2 expense(s), total: 50 TWD")

    @pytest.mark.asyncio
    async def test_nothing_detected(self, client):
        response = await client.post("/api/messages", json={"user_id": "alice", "text": "hi"})

        assert response.status_code == 200
        assert response.json()["reply"] == "No expenses detected in message"

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, client):
        response = await client.post("/api/messages", json={"user_id": "alice", "text": ""})
        assert response.status_code == 422


class TestExpenses:

    @pytest.mark.asyncio
    async def test_create_expense(self, client, container):
        response = await client.post("/api/expenses", json={
            "user_id": "bob",
            "description": "book",
            "amount": 100,
            "currency": "USD",
        })

        assert response.status_code == 201
        data = response.json()
        assert data["home_amount"] == pytest.approx(3150)
        assert data["exchange_rate"] == 31.5
        assert data["account"] == "Cash"
        assert data["category"] == "Food"
        assert await container.users.get_by_id("bob") is not None

    @pytest.mark.asyncio
    async def test_negative_amount_rejected(self, client):
        response = await client.post("/api/expenses", json={"user_id": "bob", "description": "x", "amount": -1})
        assert response.status_code == 422


class TestPricing:

    @pytest.mark.asyncio
    async def test_sync_then_list(self, client):
        response = await client.post("/api/pricing/sync")

        assert response.status_code == 200
        assert response.json()["models_updated"] == 2

        response = await client.get("/api/pricing")
        models = {row["model"] for row in response.json()["pricing"]}
        assert models == {"gemini-2.0-flash", "gemini-1.5-pro"}

    @pytest.mark.asyncio
    async def test_sync_failure(self, client, pricing_provider):
        pricing_provider.error = PricingFetchError("upstream down")

        response = await client.post("/api/pricing/sync")

        assert response.status_code == 502
        assert "upstream down" in response.json()["detail"]


class TestAICost:

    @pytest.mark.asyncio
    async def test_summary_after_message(self, client, container):
        await client.post("/api/pricing/sync")
        await client.post("/api/messages", json={"user_id": "alice", "text": "coffee $4"})
        container.cost_meter.start()
        await container.cost_meter.stop()

        response = await client.get("/api/ai-cost/summary", params={"days": 7})

        assert response.status_code == 200
        data = response.json()
        # one parse call plus one category suggestion
        assert data["summary"]["total_calls"] == 2
        assert data["summary"]["total_cost"] == pytest.approx(2 * 0.0000225)
        assert {row["operation"] for row in data["by_operation"]} == {"parse_conversation", "suggest_category"}
        assert data["top_users"][0]["user_id"] == "alice"
