"""Tests for PricingSync and the pricing ledger."""
from datetime import date

import httpx
import pytest

from aiexpense.models import PricingConfig
from aiexpense.providers.pricing import OpenRouterPricingProvider, PricingFetchError
from aiexpense.repositories import PricingConflictError, PricingLedger
from aiexpense.services.pricing_sync import PricingSync, has_price_changed


@pytest.fixture
def ledger(test_db):
    return PricingLedger(test_db)


@pytest.fixture
def sync(ledger, pricing_provider):
    return PricingSync(ledger, pricing_provider)


class TestSync:
    """Test reconciling provider prices with the ledger."""

    @pytest.mark.asyncio
    async def test_first_sync_creates_rows(self, sync, ledger):
        result = await sync.sync()

        assert result.success
        assert result.provider == "gemini"
        assert result.models_updated == 2
        assert result.models_unchanged == 0
        assert result.errors == []
        assert len(await ledger.get_all_active()) == 2

    @pytest.mark.asyncio
    async def test_second_sync_unchanged(self, sync):
        await sync.sync()
        result = await sync.sync()

        assert result.models_updated == 0
        assert result.models_unchanged == 2
        assert result.updated_configs == []

    @pytest.mark.asyncio
    async def test_price_change_versions_row(self, sync, ledger, pricing_provider):
        await sync.sync()
        pricing_provider.prices["gemini-2.0-flash"] = (0.0000001, 0.0000004)

        result = await sync.sync()

        assert result.models_updated == 1
        assert result.models_unchanged == 1
        history = await ledger.get_history("gemini", "gemini-2.0-flash")
        assert len(history) == 2
        assert [row.is_active for row in history].count(True) == 1
        assert [row.is_active for row in history].count(False) == 1
        active = await ledger.get_active("gemini", "gemini-2.0-flash")
        assert active.input_token_price == 0.0000001
        assert active.output_token_price == 0.0000004

    @pytest.mark.asyncio
    async def test_fetch_failure(self, sync, pricing_provider):
        pricing_provider.error = PricingFetchError("upstream down")

        result = await sync.sync()

        assert result.success is False
        assert result.models_updated == 0
        assert "upstream down" in result.errors[0]

    @pytest.mark.asyncio
    async def test_malformed_openrouter_body(self, ledger):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"data": None})))
        provider = OpenRouterPricingProvider(http_client=client)
        provider.backoff_base = 0

        result = await PricingSync(ledger, provider).sync()

        assert result.success is False
        assert result.provider == "openrouter"
        assert len(result.errors) == 1
        assert await ledger.get_all_active() == []

    @pytest.mark.asyncio
    async def test_conflict_recorded_as_error(self, ledger, pricing_provider):
        class RacingLedger(PricingLedger):
            async def supersede(self, current, replacement):
                raise PricingConflictError("already replaced")

        racing = RacingLedger(ledger.session_factory)
        await PricingSync(racing, pricing_provider).sync()
        pricing_provider.prices["gemini-1.5-pro"] = (0.000004, 0.000012)

        result = await PricingSync(racing, pricing_provider).sync()

        assert result.success
        assert result.models_updated == 0
        assert len(result.errors) == 1
        assert "gemini/gemini-1.5-pro" in result.errors[0]
        active = await ledger.get_active("gemini", "gemini-1.5-pro")
        assert active.input_token_price == 0.0000035


class TestLedger:

    @pytest.mark.asyncio
    async def test_supersede_lost_race(self, ledger):
        current = await ledger.create(PricingConfig(
            provider="gemini", model="m", input_token_price=1, output_token_price=1,
            effective_date=date.today(),
        ))
        assert await ledger.deactivate(current.id) is True

        replacement = PricingConfig(
            provider="gemini", model="m", input_token_price=2, output_token_price=2,
            effective_date=date.today(),
        )
        with pytest.raises(PricingConflictError):
            await ledger.supersede(current, replacement)

        assert len(await ledger.get_history("gemini", "m")) == 1

    @pytest.mark.asyncio
    async def test_deactivate_twice(self, ledger):
        row = await ledger.create(PricingConfig(
            provider="gemini", model="m", input_token_price=1, output_token_price=1,
            effective_date=date.today(),
        ))
        assert await ledger.deactivate(row.id) is True
        assert await ledger.deactivate(row.id) is False


class TestHasPriceChanged:

    def test_exact_equality(self):
        a = PricingConfig(input_token_price=0.1, output_token_price=0.2)
        b = PricingConfig(input_token_price=0.1, output_token_price=0.2)
        assert has_price_changed(a, b) is False

    def test_tiny_difference_counts(self):
        a = PricingConfig(input_token_price=0.1, output_token_price=0.2)
        b = PricingConfig(input_token_price=0.1 + 1e-15, output_token_price=0.2)
        assert has_price_changed(a, b) is True
