"""
Expense assembly.

Combines a parsed candidate with category resolution and currency
normalization, persists the Expense, and builds the confirmation line shown
to the user. Only a failure to persist the expense itself reaches the
caller; category and currency problems degrade to sensible defaults.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from aiexpense.models import Category, Expense
from aiexpense.providers.ai import DEFAULT_ACCOUNT, AIServiceError, TokenUsage
from aiexpense.providers.exchange_rates import ExchangeRateError
from aiexpense.repositories import CategoryRepository, ExpenseRepository, UserRepository
from aiexpense.services.cost_meter import CostMeter
from aiexpense.services.currency_service import ExchangeRateService

logger = logging.getLogger(__name__)

OPERATION_SUGGEST_CATEGORY = "suggest_category"


@dataclass
class CreateExpenseRequest:
    user_id: str
    description: str
    original_amount: float
    currency: str = ""
    home_amount: Optional[float] = None
    home_currency: str = ""
    exchange_rate: Optional[float] = None
    category_id: Optional[str] = None
    account: str = ""
    date: Optional[datetime] = None


@dataclass
class CreateExpenseResponse:
    id: str
    description: str
    original_amount: float
    currency: str
    home_amount: float
    home_currency: str
    exchange_rate: float
    category_id: Optional[str]
    category: Optional[str]
    account: str
    expense_date: datetime
    message: str


class CategoryMatcher(Protocol):
    def match(self, name: str, categories: list[Category]) -> Optional[Category]:
        ...


class ExactNameCategoryMatcher:
    """Matches a suggested name to the first category with exactly that name."""

    def match(self, name: str, categories: list[Category]) -> Optional[Category]:
        if not name:
            return None
        for category in categories:
            if category.name == name:
                return category
        return None


def format_amount(amount: float) -> str:
    """Two decimals, trailing zeros trimmed: 3150.0 -> "3150", 12.5 -> "12.5"."""
    text = f"{amount:.2f}".rstrip("0").rstrip(".")
    return text or "0"


def build_create_message(
    description: str,
    original_amount: float,
    currency: str,
    home_amount: float,
    home_currency: str,
    category: Optional[str] = None,
) -> str:
    """Confirmation line; the original amount is shown only when it was converted."""
    if currency and currency != home_currency:
        message = (
            f"{description} {format_amount(original_amount)} {currency} "
            f"(≈ {format_amount(home_amount)} {home_currency})"
        )
    else:
        message = f"{description} {format_amount(home_amount)} {home_currency}"
    if category:
        message += f" [{category}]"
    return message


class ExpenseService:
    """Creates expenses from parsed or manually entered data."""

    def __init__(
        self,
        expense_repo: ExpenseRepository,
        category_repo: CategoryRepository,
        user_repo: UserRepository,
        ai_service=None,
        exchange_service: Optional[ExchangeRateService] = None,
        cost_meter: Optional[CostMeter] = None,
        category_matcher: Optional[CategoryMatcher] = None,
        default_home_currency: str = "TWD",
    ):
        self.expense_repo = expense_repo
        self.category_repo = category_repo
        self.user_repo = user_repo
        self.ai_service = ai_service
        self.exchange_service = exchange_service
        self.cost_meter = cost_meter
        self.category_matcher = category_matcher or ExactNameCategoryMatcher()
        self.default_home_currency = default_home_currency.upper()

    async def execute(self, request: CreateExpenseRequest) -> CreateExpenseResponse:
        """
        Create and persist an expense.

        Raises:
            Whatever the expense repository raises when the insert fails
        """
        category_id, category_name = await self._resolve_category(request)

        home_currency = await self._resolve_home_currency(request)
        currency = (request.currency or "").strip().upper() or home_currency
        expense_date = request.date or datetime.now(timezone.utc)

        home_amount, rate = await self._normalize(request, currency, home_currency, expense_date)

        now = datetime.now(timezone.utc)
        expense = Expense(
            user_id=request.user_id,
            description=request.description,
            original_amount=request.original_amount,
            currency=currency,
            home_amount=home_amount,
            home_currency=home_currency,
            exchange_rate=rate,
            category_id=category_id,
            account=(request.account or "").strip() or DEFAULT_ACCOUNT,
            expense_date=expense_date,
            created_at=now,
            updated_at=now,
        )
        expense = await self.expense_repo.create(expense)

        return CreateExpenseResponse(
            id=expense.id,
            description=expense.description,
            original_amount=expense.original_amount,
            currency=expense.currency,
            home_amount=expense.home_amount,
            home_currency=expense.home_currency,
            exchange_rate=expense.exchange_rate,
            category_id=expense.category_id,
            category=category_name,
            account=expense.account,
            expense_date=expense.expense_date,
            message=build_create_message(
                expense.description,
                expense.original_amount,
                expense.currency,
                expense.home_amount,
                expense.home_currency,
                category_name,
            ),
        )

    async def _resolve_category(self, request: CreateExpenseRequest) -> tuple[Optional[str], Optional[str]]:
        if request.category_id:
            category = await self.category_repo.get_by_id(request.category_id)
            return request.category_id, category.name if category else None

        if self.ai_service is None:
            return None, None

        categories = await self.category_repo.get_by_user_id(request.user_id)

        usage: Optional[TokenUsage] = None
        try:
            suggestion = await self.ai_service.suggest_category(
                request.description,
                request.user_id,
                categories=[c.name for c in categories],
            )
            usage = suggestion.usage
        except AIServiceError as e:
            logger.warning(f"Category suggestion failed for '{request.description}': {e}")
            self._meter(request.user_id, e.usage)
            return None, None
        except Exception as e:
            logger.warning(f"Unexpected category suggestion error for '{request.description}': {e}")
            return None, None

        self._meter(request.user_id, usage)

        category = self.category_matcher.match(suggestion.category, categories)
        if category is None:
            logger.debug(f"Suggested category '{suggestion.category}' not found for user {request.user_id}")
            return None, None
        return category.id, category.name

    async def _resolve_home_currency(self, request: CreateExpenseRequest) -> str:
        if request.home_currency:
            return request.home_currency.strip().upper()
        user = await self.user_repo.get_by_id(request.user_id)
        if user and user.home_currency:
            return user.home_currency.upper()
        return self.default_home_currency

    async def _normalize(
        self,
        request: CreateExpenseRequest,
        currency: str,
        home_currency: str,
        expense_date: datetime,
    ) -> tuple[float, float]:
        if request.home_amount is not None:
            rate = request.exchange_rate
            if rate is None:
                rate = request.home_amount / request.original_amount if request.original_amount else 1.0
            return request.home_amount, rate

        if currency == home_currency:
            return request.original_amount, 1.0

        if self.exchange_service is None:
            logger.warning(f"No exchange service configured, keeping {currency} amount as {home_currency}")
            return request.original_amount, 1.0

        try:
            return await self.exchange_service.convert(
                request.original_amount, currency, home_currency, expense_date
            )
        except (ExchangeRateError, SQLAlchemyError) as e:
            logger.warning(
                f"Currency conversion {currency}->{home_currency} failed, using rate 1.0: {e}",
                extra={"user_id": request.user_id, "currency": currency, "home_currency": home_currency},
            )
            return request.original_amount, 1.0

    def _meter(self, user_id: str, usage: Optional[TokenUsage]) -> None:
        if self.cost_meter is None or usage is None or usage.is_empty():
            return
        self.cost_meter.submit(
            user_id=user_id,
            operation=OPERATION_SUGGEST_CATEGORY,
            provider=getattr(self.ai_service, "provider", "unknown"),
            model=getattr(self.ai_service, "model", "unknown"),
            usage=usage,
        )
