"""
Pricing ledger routes.
"""
from fastapi import APIRouter, Depends, HTTPException

from aiexpense.container import Container, get_container
from aiexpense.models import PricingConfig

router = APIRouter(prefix="/api/pricing")


def pricing_to_dict(config: PricingConfig) -> dict:
    return {
        "id": config.id,
        "provider": config.provider,
        "model": config.model,
        "input_token_price": config.input_token_price,
        "output_token_price": config.output_token_price,
        "currency": config.currency,
        "effective_date": config.effective_date.isoformat() if config.effective_date else None,
        "is_active": config.is_active,
    }


@router.get("")
async def list_pricing(container: Container = Depends(get_container)):
    """All active pricing rows."""
    configs = await container.ledger.get_all_active()
    return {"pricing": [pricing_to_dict(c) for c in configs]}


@router.post("/sync")
async def sync_pricing(container: Container = Depends(get_container)):
    """Fetch current prices from the provider and update the ledger."""
    result = await container.pricing_sync.sync()
    if not result.success:
        raise HTTPException(status_code=502, detail="; ".join(result.errors) or "Pricing fetch failed")
    return {
        "success": result.success,
        "provider": result.provider,
        "synced_at": result.synced_at.isoformat(),
        "models_updated": result.models_updated,
        "models_unchanged": result.models_unchanged,
        "errors": result.errors,
        "updated": [pricing_to_dict(c) for c in result.updated_configs],
    }
