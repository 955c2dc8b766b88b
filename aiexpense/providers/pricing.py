"""
AI pricing providers for the pricing ledger sync.

A provider exposes `provider` and `fetch() -> list[PricingConfig]` returning
unsaved rows priced in USD per token. Fetches are retried 3 times with
exponential backoff before PricingFetchError is raised.
"""
import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Optional

import httpx

from aiexpense.models import PricingConfig

logger = logging.getLogger(__name__)

MAX_FETCH_ATTEMPTS = 3

# Published Gemini prices, USD per token
GEMINI_PRICING = {
    "gemini-2.5-flash-lite": (0.0000001, 0.0000004),
    "gemini-2.5-lite": (0.000000075, 0.0000003),
    "gemini-2.0-flash": (0.000000075, 0.0000003),
    "gemini-1.5-pro": (0.0000035, 0.0000105),
}

OPENROUTER_MODELS_URL = "https://openrouter.ai/api/v1/models"


class PricingFetchError(Exception):
    """Pricing could not be fetched from the provider."""
    pass


def _new_config(provider: str, model: str, input_price: float, output_price: float) -> PricingConfig:
    now = datetime.now(timezone.utc)
    return PricingConfig(
        provider=provider,
        model=model,
        input_token_price=input_price,
        output_token_price=output_price,
        currency="USD",
        effective_date=date.today(),
        is_active=True,
        created_at=now,
        updated_at=now,
    )


class _RetryingProvider:
    provider = ""
    backoff_base = 1.0

    async def fetch(self) -> list[PricingConfig]:
        last_error: Optional[Exception] = None
        for attempt in range(1, MAX_FETCH_ATTEMPTS + 1):
            try:
                return await self._fetch_once()
            except (httpx.HTTPError, PricingFetchError, ValueError) as e:
                last_error = e
                if attempt < MAX_FETCH_ATTEMPTS:
                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    logger.warning(
                        f"pricing_fetch attempt {attempt}/{MAX_FETCH_ATTEMPTS} failed: {e}, "
                        f"retrying in {backoff}s"
                    )
                    await asyncio.sleep(backoff)

        logger.error(f"pricing_fetch failed after {MAX_FETCH_ATTEMPTS} attempts for provider={self.provider}")
        raise PricingFetchError(
            f"failed to fetch {self.provider} pricing after {MAX_FETCH_ATTEMPTS} attempts: {last_error}"
        )

    async def _fetch_once(self) -> list[PricingConfig]:
        raise NotImplementedError


class GeminiPricingProvider(_RetryingProvider):
    """Serves the published Gemini price table."""

    provider = "gemini"

    def __init__(self, prices: Optional[dict[str, tuple[float, float]]] = None):
        self.prices = prices if prices is not None else GEMINI_PRICING

    async def _fetch_once(self) -> list[PricingConfig]:
        if not self.prices:
            raise PricingFetchError("no gemini pricing available")
        return [
            _new_config(self.provider, model, input_price, output_price)
            for model, (input_price, output_price) in self.prices.items()
        ]


class OpenRouterPricingProvider(_RetryingProvider):
    """Reads per-token prices from the OpenRouter models API."""

    provider = "openrouter"

    def __init__(
        self,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        url: str = OPENROUTER_MODELS_URL,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self._client = http_client

    async def _fetch_once(self) -> list[PricingConfig]:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        if self._client is not None:
            response = await self._client.get(self.url, headers=headers, timeout=self.timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(self.url, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise PricingFetchError("invalid openrouter response: expected a JSON object")

        configs = []
        for model_data in data.get("data") or []:
            if not isinstance(model_data, dict):
                continue
            model_id = model_data.get("id", "")
            pricing = model_data.get("pricing") or {}
            if not model_id or not pricing or not isinstance(pricing, dict):
                continue
            # OpenRouter prices are strings in dollars per token
            try:
                input_price = float(pricing.get("prompt", 0))
                output_price = float(pricing.get("completion", 0))
            except (ValueError, TypeError):
                continue
            if input_price < 0 or output_price < 0:
                # -1 marks variable-priced router models
                continue
            configs.append(_new_config(self.provider, model_id, input_price, output_price))

        if not configs:
            raise PricingFetchError("no openrouter pricing found in response")
        return configs
