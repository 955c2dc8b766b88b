"""
Wiring of repositories, providers and services from settings.

This is the only place outside the app and CLI entry points that reads
`settings`; everything it builds gets its collaborators through
constructor arguments.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aiexpense.config import settings
from aiexpense.providers.ai import DisabledAIService
from aiexpense.providers.exchange_rates import ExchangeRateAPIProvider
from aiexpense.providers.gemini import GeminiAI
from aiexpense.providers.pricing import GeminiPricingProvider, OpenRouterPricingProvider
from aiexpense.repositories import (
    AICostRepository,
    CategoryRepository,
    ExchangeRateStore,
    ExpenseRepository,
    PricingLedger,
    UserRepository,
)
from aiexpense.services.ai_cost_report import AICostReportService
from aiexpense.services.conversation_parser import ConversationParser
from aiexpense.services.cost_meter import CostMeter
from aiexpense.services.currency_service import ExchangeRateService
from aiexpense.services.date_resolver import DateResolver
from aiexpense.services.expense_service import ExpenseService
from aiexpense.services.message_service import MessageService
from aiexpense.services.pricing_sync import PricingSync

logger = logging.getLogger(__name__)


@dataclass
class Container:
    users: UserRepository
    categories: CategoryRepository
    expenses: ExpenseRepository
    rates: ExchangeRateStore
    ledger: PricingLedger
    cost_logs: AICostRepository
    ai_service: object
    cost_meter: CostMeter
    exchange_service: ExchangeRateService
    parser: ConversationParser
    expense_service: ExpenseService
    message_service: MessageService
    pricing_sync: PricingSync
    cost_report: AICostReportService


def build_ai_service(http_client: Optional[httpx.AsyncClient] = None):
    """The configured AI backend, or a disabled one when unconfigured."""
    if settings.AI_PROVIDER.lower() == "gemini" and settings.GEMINI_API_KEY:
        return GeminiAI(
            api_key=settings.GEMINI_API_KEY,
            model=settings.GEMINI_MODEL,
            http_client=http_client,
            base_url=settings.GEMINI_BASE_URL,
            timeout=settings.AI_TIMEOUT_SECONDS,
        )
    logger.warning(f"AI provider '{settings.AI_PROVIDER}' not configured, using regex fallback only")
    return DisabledAIService()


def build_pricing_provider(http_client: Optional[httpx.AsyncClient] = None):
    if settings.PRICING_PROVIDER.lower() == "openrouter":
        return OpenRouterPricingProvider(api_key=settings.OPENROUTER_API_KEY, http_client=http_client)
    return GeminiPricingProvider()


def build_container(
    session_factory: async_sessionmaker[AsyncSession],
    http_client: Optional[httpx.AsyncClient] = None,
    ai_service=None,
    exchange_provider=None,
    pricing_provider=None,
) -> Container:
    """
    Build the service graph.

    Args:
        session_factory: Session factory shared by all repositories
        http_client: Shared client for outbound provider calls
        ai_service: Override for the AI backend
        exchange_provider: Override for the FX provider
        pricing_provider: Override for the pricing provider
    """
    users = UserRepository(session_factory)
    categories = CategoryRepository(session_factory)
    expenses = ExpenseRepository(session_factory)
    rates = ExchangeRateStore(session_factory)
    ledger = PricingLedger(session_factory)
    cost_logs = AICostRepository(session_factory)

    if ai_service is None:
        ai_service = build_ai_service(http_client)
    if exchange_provider is None:
        exchange_provider = ExchangeRateAPIProvider(
            api_key=settings.EXCHANGE_RATE_API_KEY,
            http_client=http_client,
            base_url=settings.EXCHANGE_RATE_BASE_URL,
        )
    if pricing_provider is None:
        pricing_provider = build_pricing_provider(http_client)

    cost_meter = CostMeter(
        ledger,
        cost_logs,
        queue_size=settings.COST_LOG_QUEUE_SIZE,
        timeout=settings.COST_LOG_TIMEOUT_SECONDS,
    )
    exchange_service = ExchangeRateService(
        rates,
        exchange_provider,
        tracked_symbols=settings.EXCHANGE_RATE_BASES,
        base_currencies=settings.EXCHANGE_RATE_BASES,
    )
    parser = ConversationParser(ai_service, cost_meter, DateResolver())
    expense_service = ExpenseService(
        expenses,
        categories,
        users,
        ai_service=ai_service,
        exchange_service=exchange_service,
        cost_meter=cost_meter,
        default_home_currency=settings.DEFAULT_HOME_CURRENCY,
    )
    message_service = MessageService(parser, expense_service, users, categories)

    return Container(
        users=users,
        categories=categories,
        expenses=expenses,
        rates=rates,
        ledger=ledger,
        cost_logs=cost_logs,
        ai_service=ai_service,
        cost_meter=cost_meter,
        exchange_service=exchange_service,
        parser=parser,
        expense_service=expense_service,
        message_service=message_service,
        pricing_sync=PricingSync(ledger, pricing_provider),
        cost_report=AICostReportService(session_factory),
    )


def get_container(request: Request) -> Container:
    """FastAPI dependency returning the container built by the app lifespan."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return container
