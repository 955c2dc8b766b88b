"""
Types shared by AI backends.

An AI backend exposes two coroutines:

    parse_expense(text, user_id) -> ParseExpenseResult
    suggest_category(description, user_id, categories=None) -> CategorySuggestion

and raises AIServiceError on failure. Token usage is reported on both
success and, where the backend got that far, on failure.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

DEFAULT_ACCOUNT = "Cash"

# Categories seeded for every new user; offered to the model when a user has none
DEFAULT_CATEGORIES = ["Food", "Transport", "Shopping", "Entertainment", "Other"]


@dataclass
class TokenUsage:
    """Token counts reported by an AI API response."""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def is_empty(self) -> bool:
        return self.total_tokens <= 0


@dataclass
class ParsedExpenseCandidate:
    """
    An unpersisted expense extracted from a message.

    `date` is None until the parser resolves it. `currency` may be empty,
    meaning "the user's home currency".
    """
    description: str
    amount: float
    currency: str = ""
    currency_original: str = ""
    suggested_category: Optional[str] = None
    date: Optional[datetime] = None
    account: str = DEFAULT_ACCOUNT


@dataclass
class ParseExpenseResult:
    candidates: list[ParsedExpenseCandidate] = field(default_factory=list)
    usage: Optional[TokenUsage] = None
    system_prompt: str = ""
    raw_response: str = ""


@dataclass
class CategorySuggestion:
    category: str
    usage: Optional[TokenUsage] = None


class AIServiceError(Exception):
    """AI backend failure, optionally with the usage consumed before failing."""

    def __init__(self, message: str, usage: Optional[TokenUsage] = None):
        super().__init__(message)
        self.usage = usage


class DisabledAIService:
    """Backend used when no AI provider is configured. Every call fails."""

    provider = "none"
    model = "none"

    async def parse_expense(self, text: str, user_id: str) -> ParseExpenseResult:
        raise AIServiceError("AI backend is not configured")

    async def suggest_category(
        self,
        description: str,
        user_id: str,
        categories: Optional[list[str]] = None,
    ) -> CategorySuggestion:
        raise AIServiceError("AI backend is not configured")
