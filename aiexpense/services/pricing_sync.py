"""
Pricing ledger sync.

Fetches current prices from a pricing provider and reconciles them against
the ledger. A model is only re-versioned when a token price actually
changed, so repeated syncs against an unchanged feed write nothing.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from aiexpense.models import PricingConfig
from aiexpense.providers.pricing import PricingFetchError
from aiexpense.repositories import PricingConflictError, PricingLedger

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one sync run."""
    success: bool
    provider: str
    synced_at: datetime
    models_updated: int = 0
    models_unchanged: int = 0
    errors: list[str] = field(default_factory=list)
    updated_configs: list[PricingConfig] = field(default_factory=list)


def has_price_changed(active: PricingConfig, fetched: PricingConfig) -> bool:
    # Exact comparison: any difference in a stored price is a new version
    return (
        active.input_token_price != fetched.input_token_price
        or active.output_token_price != fetched.output_token_price
    )


class PricingSync:
    """Reconciles a pricing provider's feed with the pricing ledger."""

    def __init__(self, ledger: PricingLedger, provider):
        self.ledger = ledger
        self.provider = provider

    async def sync(self) -> SyncResult:
        result = SyncResult(
            success=True,
            provider=self.provider.provider,
            synced_at=datetime.now(timezone.utc),
        )

        try:
            fetched = await self.provider.fetch()
        except PricingFetchError as e:
            logger.error(f"Pricing sync for {self.provider.provider} failed: {e}")
            result.success = False
            result.errors.append(str(e))
            return result

        for config in fetched:
            await self._sync_one(config, result)

        logger.info(
            f"Pricing sync for {result.provider}: {result.models_updated} updated, "
            f"{result.models_unchanged} unchanged, {len(result.errors)} errors",
            extra={"provider": result.provider, "models_updated": result.models_updated},
        )
        return result

    async def _sync_one(self, config: PricingConfig, result: SyncResult) -> None:
        key = f"{config.provider}/{config.model}"
        try:
            active = await self.ledger.get_active(config.provider, config.model)
        except Exception as e:
            logger.error(f"Failed to read active pricing for {key}: {e}")
            result.errors.append(f"{key}: failed to read active pricing: {e}")
            return

        if active is not None and not has_price_changed(active, config):
            result.models_unchanged += 1
            return

        try:
            if active is None:
                config.is_active = True
                saved = await self.ledger.create(config)
            else:
                saved = await self.ledger.supersede(active, config)
        except PricingConflictError as e:
            logger.warning(f"Pricing for {key} changed concurrently: {e}")
            result.errors.append(f"{key}: failed to deactivate previous pricing: {e}")
            return
        except Exception as e:
            logger.error(f"Failed to store pricing for {key}: {e}")
            result.errors.append(f"{key}: failed to store pricing: {e}")
            return

        result.models_updated += 1
        result.updated_configs.append(saved)
        logger.info(
            f"Pricing updated for {key}: input={saved.input_token_price} output={saved.output_token_price}"
        )
