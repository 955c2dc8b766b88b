"""
FX rate providers.

A provider exposes `name` and `fetch(base, symbols) -> list[ExchangeRate]`
returning unsaved rows.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from aiexpense.models import ExchangeRate

logger = logging.getLogger(__name__)


class ExchangeRateError(Exception):
    """An exchange rate could not be fetched or resolved."""
    pass


class ExchangeRateAPIProvider:
    """Fetches latest rates from exchangerate-api.com (v6)."""

    name = "exchange-rate-api"

    def __init__(
        self,
        api_key: str,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = "https://v6.exchangerate-api.com/v6",
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client

    async def fetch(self, base: str, symbols: Optional[list[str]] = None) -> list[ExchangeRate]:
        """
        Fetch the latest rates for `base`.

        Args:
            base: Base currency code
            symbols: Optional target codes to keep; None keeps every returned code

        Returns:
            Unsaved ExchangeRate rows dated by the provider's last update

        Raises:
            ExchangeRateError: On missing key, transport error, or a failed response
        """
        if not self.api_key:
            raise ExchangeRateError("exchange rate API key is not configured")
        base = (base or "USD").strip().upper()
        url = f"{self.base_url}/{self.api_key}/latest/{base}"

        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise ExchangeRateError(f"exchange rate request failed: {e}") from e

        if response.status_code != 200:
            raise ExchangeRateError(
                f"exchange API responded {response.status_code}: {response.text[:200].strip()}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ExchangeRateError(f"invalid exchange API response: {e}") from e
        if not isinstance(payload, dict):
            raise ExchangeRateError("invalid exchange API response: expected a JSON object")

        if str(payload.get("result", "")).lower() != "success":
            raise ExchangeRateError(f"exchange rate API returned result={payload.get('result')}")

        base_code = str(payload.get("base_code") or base).upper()
        updated = payload.get("time_last_update_unix")
        try:
            rate_date = datetime.fromtimestamp(int(updated), tz=timezone.utc).date()
        except (TypeError, ValueError, OverflowError, OSError):
            rate_date = datetime.now(timezone.utc).date()
        wanted = {s.upper() for s in symbols} if symbols else None
        fetched_at = datetime.now(timezone.utc)

        conversion_rates = payload.get("conversion_rates") or {}
        if not isinstance(conversion_rates, dict):
            raise ExchangeRateError("invalid exchange API response: conversion_rates is not an object")

        rates = []
        for code, value in conversion_rates.items():
            code = str(code).upper()
            if code == base_code:
                continue
            if wanted is not None and code not in wanted:
                continue
            try:
                rate = float(value)
            except (TypeError, ValueError):
                logger.warning(f"Skipping unusable {base_code}->{code} rate: {value!r}")
                continue
            if rate < 0:
                logger.warning(f"Skipping negative {base_code}->{code} rate: {rate}")
                continue
            rates.append(ExchangeRate(
                provider=self.name,
                base_currency=base_code,
                target_currency=code,
                rate=rate,
                rate_date=rate_date,
                fetched_at=fetched_at,
            ))
        return rates
