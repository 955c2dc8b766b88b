"""
Service layer for aiexpense.

Services hold the ingestion pipeline logic and talk to storage through the
repositories passed to them.
"""
from aiexpense.services.conversation_parser import ConversationParser, parse_with_fallback
from aiexpense.services.cost_meter import CostMeter
from aiexpense.services.currency_service import ExchangeRateService
from aiexpense.services.date_resolver import DateResolver
from aiexpense.services.expense_service import (
    CreateExpenseRequest,
    CreateExpenseResponse,
    ExactNameCategoryMatcher,
    ExpenseService,
)
from aiexpense.services.message_service import MessageResult, MessageService
from aiexpense.services.pricing_sync import PricingSync, SyncResult

__all__ = [
    "ConversationParser",
    "CostMeter",
    "CreateExpenseRequest",
    "CreateExpenseResponse",
    "DateResolver",
    "ExactNameCategoryMatcher",
    "ExchangeRateService",
    "ExpenseService",
    "MessageResult",
    "MessageService",
    "PricingSync",
    "SyncResult",
    "parse_with_fallback",
]
