"""Tests for ExchangeRateService."""
from datetime import date, datetime, timedelta, timezone

import pytest

from aiexpense.models import ExchangeRate
from aiexpense.providers.exchange_rates import ExchangeRateError
from aiexpense.repositories import ExchangeRateStore
from aiexpense.services.currency_service import ExchangeRateService


@pytest.fixture
def store(test_db):
    return ExchangeRateStore(test_db)


@pytest.fixture
def service(store, rate_provider):
    return ExchangeRateService(store, rate_provider, tracked_symbols=["TWD", "JPY", "EUR"])


def make_rate(base, target, rate, rate_date, fetched_at=None):
    return ExchangeRate(
        provider="test",
        base_currency=base,
        target_currency=target,
        rate=rate,
        rate_date=rate_date,
        fetched_at=fetched_at or datetime.now(timezone.utc),
    )


class TestConvert:
    """Test the cache-then-fetch conversion chain."""

    @pytest.mark.asyncio
    async def test_same_currency_is_identity(self, service, rate_provider):
        assert await service.convert(250, "TWD", "TWD", date.today()) == (250, 1.0)
        assert rate_provider.calls == []

    @pytest.mark.asyncio
    async def test_zero_amount_skips_lookup(self, service, rate_provider):
        assert await service.convert(0, "USD", "TWD") == (0, 1.0)
        assert rate_provider.calls == []

    @pytest.mark.asyncio
    async def test_fetch_on_empty_cache(self, service, rate_provider):
        converted, rate = await service.convert(100, "USD", "TWD", date.today())

        assert rate == 31.5
        assert converted == pytest.approx(3150)
        assert len(rate_provider.calls) == 1
        assert rate_provider.calls[0][0] == "USD"

    @pytest.mark.asyncio
    async def test_repeat_uses_cache(self, service, rate_provider):
        await service.convert(100, "USD", "TWD", date.today())
        converted, rate = await service.convert(20, "USD", "TWD", date.today())

        assert (converted, rate) == (pytest.approx(630), 31.5)
        assert len(rate_provider.calls) == 1

    @pytest.mark.asyncio
    async def test_lowercase_codes(self, service):
        _, rate = await service.convert(1, "usd", "twd", date.today())
        assert rate == 31.5

    @pytest.mark.asyncio
    async def test_exact_date_preferred(self, service, store, rate_provider):
        today = date.today()
        await store.save_rate(make_rate("USD", "TWD", 30.0, today - timedelta(days=1)))
        await store.save_rate(make_rate("USD", "TWD", 32.0, today))

        _, rate = await service.convert(1, "USD", "TWD", today)

        assert rate == 32.0
        assert rate_provider.calls == []

    @pytest.mark.asyncio
    async def test_most_recent_before_date(self, service, store, rate_provider):
        today = date.today()
        await store.save_rate(make_rate("USD", "TWD", 30.0, today - timedelta(days=5)))
        await store.save_rate(make_rate("USD", "TWD", 30.8, today - timedelta(days=2)))

        _, rate = await service.convert(1, "USD", "TWD", today)

        assert rate == 30.8
        assert rate_provider.calls == []

    @pytest.mark.asyncio
    async def test_latest_fetch_wins_same_day(self, service, store):
        today = date.today()
        earlier = datetime.now(timezone.utc) - timedelta(hours=3)
        await store.save_rate(make_rate("USD", "TWD", 31.0, today, fetched_at=earlier))
        await store.save_rate(make_rate("USD", "TWD", 31.2, today))

        _, rate = await service.convert(1, "USD", "TWD", today)

        assert rate == 31.2

    @pytest.mark.asyncio
    async def test_datetime_as_of(self, service):
        _, rate = await service.convert(1, "USD", "TWD", datetime.now(timezone.utc))
        assert rate == 31.5

    @pytest.mark.asyncio
    async def test_provider_failure_raises(self, service, rate_provider):
        rate_provider.fail = True
        with pytest.raises(ExchangeRateError):
            await service.convert(100, "USD", "TWD", date.today())

    @pytest.mark.asyncio
    async def test_unknown_pair_raises(self, service):
        with pytest.raises(ExchangeRateError):
            await service.convert(100, "GBP", "TWD", date.today())


class TestGetRate:

    @pytest.mark.asyncio
    async def test_cached_rate(self, service, store):
        await store.save_rate(make_rate("EUR", "TWD", 34.9, date.today()))
        assert await service.get_rate("EUR", "TWD") == 34.9

    @pytest.mark.asyncio
    async def test_missing_rate_does_not_fetch(self, service, rate_provider):
        assert await service.get_rate("USD", "TWD") is None
        assert rate_provider.calls == []

    @pytest.mark.asyncio
    async def test_same_currency(self, service):
        assert await service.get_rate("JPY", "JPY") == 1.0


class TestRefreshRates:

    @pytest.mark.asyncio
    async def test_refresh_stores_rates(self, store, rate_provider):
        rate_provider.rates = {
            ("USD", "TWD"): 31.5,
            ("USD", "JPY"): 150.0,
            ("EUR", "TWD"): 34.9,
        }
        service = ExchangeRateService(store, rate_provider, base_currencies=["USD", "EUR"], tracked_symbols=["TWD", "JPY"])

        stored = await service.refresh_rates()

        assert stored == {"USD": 2, "EUR": 1}
        assert (await store.get_rate("USD", "JPY", date.today())).rate == 150.0

    @pytest.mark.asyncio
    async def test_refresh_failure_reported(self, store, rate_provider):
        rate_provider.fail = True
        service = ExchangeRateService(store, rate_provider, base_currencies=["USD"])

        assert await service.refresh_rates() == {"USD": 0}

    def test_default_bases(self, store, rate_provider):
        service = ExchangeRateService(store, rate_provider)
        assert service.base_currencies == ["USD", "EUR", "TWD", "JPY", "CNY"]
