"""
Currency normalization.

Rates resolve through a cache-then-fetch chain:

1. exact-date row in the rate store
2. most recent stored row dated on or before the requested date
3. batch fetch from the provider for the source currency, store every
   returned rate, then look again

Storing fetched rates is best effort; a failed insert is logged and the
conversion still uses the fetched value.
"""
import logging
from datetime import date, datetime
from typing import Optional, Union

from aiexpense.models import ExchangeRate
from aiexpense.providers.exchange_rates import ExchangeRateError
from aiexpense.repositories import ExchangeRateStore

logger = logging.getLogger(__name__)

DEFAULT_BASE_CURRENCIES = ["USD", "EUR", "TWD", "JPY", "CNY"]


def _as_date(value: Union[date, datetime, None]) -> date:
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    return value


class ExchangeRateService:
    """Converts amounts between currencies using cached or fetched rates."""

    def __init__(
        self,
        store: ExchangeRateStore,
        provider,
        tracked_symbols: Optional[list[str]] = None,
        base_currencies: Optional[list[str]] = None,
    ):
        self.store = store
        self.provider = provider
        self.base_currencies = [c.upper() for c in (base_currencies or DEFAULT_BASE_CURRENCIES)]
        self.tracked_symbols = [c.upper() for c in (tracked_symbols or self.base_currencies)]

    async def convert(
        self,
        amount: float,
        from_currency: str,
        to_currency: str,
        as_of: Union[date, datetime, None] = None,
    ) -> tuple[float, float]:
        """
        Convert `amount` from one currency to another.

        Returns:
            (converted_amount, rate)

        Raises:
            ExchangeRateError: No rate could be resolved
        """
        from_currency = (from_currency or "").strip().upper()
        to_currency = (to_currency or "").strip().upper()
        if from_currency == to_currency or amount == 0:
            return amount, 1.0

        rate = await self._resolve_rate(from_currency, to_currency, _as_date(as_of))
        return amount * rate, rate

    async def get_rate(
        self,
        from_currency: str,
        to_currency: str,
        as_of: Union[date, datetime, None] = None,
    ) -> Optional[float]:
        """Stored rate for the pair (exact date, else most recent). Never fetches."""
        from_currency = from_currency.strip().upper()
        to_currency = to_currency.strip().upper()
        if from_currency == to_currency:
            return 1.0
        row = await self._cached(from_currency, to_currency, _as_date(as_of))
        return row.rate if row else None

    async def refresh_rates(self) -> dict[str, int]:
        """
        Fetch and store rates for every configured base currency.

        Returns the number of rates stored per base. A failing base is
        logged and reported as 0.
        """
        stored = {}
        for base in self.base_currencies:
            try:
                rates = await self.provider.fetch(base, self.tracked_symbols)
            except ExchangeRateError as e:
                logger.error(f"Failed to refresh rates for {base}: {e}")
                stored[base] = 0
                continue
            stored[base] = await self._store_all(rates)
        logger.info(f"Refreshed exchange rates: {stored}")
        return stored

    async def _cached(self, base: str, target: str, as_of: date) -> Optional[ExchangeRate]:
        row = await self.store.get_rate(base, target, as_of)
        if row is None:
            row = await self.store.get_most_recent_rate(base, target, as_of)
        return row

    async def _resolve_rate(self, base: str, target: str, as_of: date) -> float:
        row = await self._cached(base, target, as_of)
        if row is not None:
            return row.rate

        symbols = sorted(set(self.tracked_symbols) | {target})
        fetched = await self.provider.fetch(base, symbols)
        await self._store_all(fetched)

        row = await self._cached(base, target, as_of)
        if row is not None:
            return row.rate

        # Store failed or the provider dated its rates after as_of
        for rate in fetched:
            if rate.target_currency == target:
                return rate.rate
        raise ExchangeRateError(f"no exchange rate available for {base}->{target} on {as_of}")

    async def _store_all(self, rates: list[ExchangeRate]) -> int:
        count = 0
        for rate in rates:
            try:
                await self.store.save_rate(rate)
                count += 1
            except Exception as e:
                logger.error(
                    f"Failed to cache rate {rate.base_currency}->{rate.target_currency}: {e}",
                    extra={"base": rate.base_currency, "target": rate.target_currency},
                )
        return count
