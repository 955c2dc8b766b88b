"""
Message processing entry point for messenger adapters.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from aiexpense.providers.ai import DEFAULT_CATEGORIES
from aiexpense.repositories import CategoryRepository, UserRepository
from aiexpense.services.conversation_parser import ConversationParser
from aiexpense.services.expense_service import (
    CreateExpenseRequest,
    CreateExpenseResponse,
    ExpenseService,
    format_amount,
)

logger = logging.getLogger(__name__)

NO_EXPENSES_MESSAGE = "No expenses detected in message"


@dataclass
class MessageResult:
    user_id: str
    expenses: list[CreateExpenseResponse] = field(default_factory=list)
    total: float = 0.0
    home_currency: str = ""
    reply: str = NO_EXPENSES_MESSAGE
    failed: int = 0

    @property
    def success(self) -> bool:
        return bool(self.expenses)


def format_expense_line(expense: CreateExpenseResponse) -> str:
    line = f"• [{expense.expense_date.strftime('%Y-%m-%d')}] {expense.description}"
    if expense.category:
        line += f" ({expense.category})"
    line += f": {format_amount(expense.home_amount)} {expense.home_currency}"
    if expense.currency != expense.home_currency:
        line += f" (≈ {format_amount(expense.original_amount)} {expense.currency})"
    return line


class MessageService:
    """Registers the sender, parses the message and records each expense."""

    def __init__(
        self,
        parser: ConversationParser,
        expense_service: ExpenseService,
        user_repo: UserRepository,
        category_repo: CategoryRepository,
        messenger_type: str = "terminal",
    ):
        self.parser = parser
        self.expense_service = expense_service
        self.user_repo = user_repo
        self.category_repo = category_repo
        self.messenger_type = messenger_type

    async def ensure_user(self, user_id: str) -> None:
        """Create the user with the default categories on first contact."""
        user, created = await self.user_repo.ensure(user_id, self.messenger_type)
        if created:
            for name in DEFAULT_CATEGORIES:
                await self.category_repo.create(user_id, name, is_default=True)
            logger.info(f"Registered new user {user_id} ({self.messenger_type})")

    async def process(self, user_id: str, text: str, now: Optional[datetime] = None) -> MessageResult:
        await self.ensure_user(user_id)

        result = MessageResult(user_id=user_id)
        candidates = await self.parser.execute(text, user_id, now=now)
        if not candidates:
            return result

        for candidate in candidates:
            request = CreateExpenseRequest(
                user_id=user_id,
                description=candidate.description,
                original_amount=candidate.amount,
                currency=candidate.currency,
                account=candidate.account,
                date=candidate.date,
            )
            try:
                expense = await self.expense_service.execute(request)
            except Exception as e:
                logger.error(
                    f"Failed to create expense '{candidate.description}' for user {user_id}: {e}",
                    extra={"user_id": user_id},
                )
                result.failed += 1
                continue
            result.expenses.append(expense)
            result.total += expense.home_amount

        if not result.expenses:
            result.reply = f"Failed to record {result.failed} expense(s)"
            return result

        result.home_currency = result.expenses[0].home_currency
        lines = [
            f"✓ Recorded {len(result.expenses)} expense(s), total: "
            f"{format_amount(result.total)} {result.home_currency}"
        ]
        lines.extend(format_expense_line(expense) for expense in result.expenses)
        result.reply = "\n".join(lines)
        return result
