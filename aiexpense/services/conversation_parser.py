"""
Conversation parsing: free text to expense candidates.

The AI backend is tried first. When it fails or finds nothing, a
deterministic regex fallback takes over so a message is never lost to an
AI outage.
"""
import logging
import re
from datetime import datetime
from typing import Optional

from aiexpense.providers.ai import (
    DEFAULT_ACCOUNT,
    AIServiceError,
    ParsedExpenseCandidate,
    TokenUsage,
)
from aiexpense.services.cost_meter import CostMeter
from aiexpense.services.date_resolver import DateResolver

logger = logging.getLogger(__name__)

OPERATION_PARSE = "parse_conversation"

# Currency words recognised after an amount, mapped to ISO codes
CURRENCY_ALIASES = {
    "台幣": "TWD",
    "新台幣": "TWD",
    "元": "TWD",
    "NT$": "TWD",
    "TWD": "TWD",
    "日幣": "JPY",
    "日元": "JPY",
    "円": "JPY",
    "JPY": "JPY",
    "YEN": "JPY",
    "美元": "USD",
    "美金": "USD",
    "USD": "USD",
    "DOLLAR": "USD",
    "DOLLARS": "USD",
    "歐元": "EUR",
    "EUR": "EUR",
    "EURO": "EUR",
    "EUROS": "EUR",
    "€": "EUR",
    "人民幣": "CNY",
    "人民币": "CNY",
    "RMB": "CNY",
    "CNY": "CNY",
}

_AMOUNT = r"(\d+(?:\.\d{1,2})?)"
_CURRENCY_WORDS = "|".join(
    re.escape(word) for word in sorted(CURRENCY_ALIASES, key=len, reverse=True)
)

# Fallback pattern families, in priority order
_DOLLAR_PATTERN = re.compile(r"([^\d$]+?)\s*(NT)?\$" + _AMOUNT)
_CURRENCY_WORD_PATTERN = re.compile(
    r"([^\d]+?)\s*" + _AMOUNT + r"\s*(" + _CURRENCY_WORDS + r")(?![A-Za-z])",
    re.IGNORECASE,
)
_LOOSE_PATTERN = re.compile(r"([^\d]+?)\s+" + _AMOUNT + r"(?=\s|$)")

# Separators left between items ("coffee 50, lunch 120")
_DESCRIPTION_STRIP = " \t\n,;，、；。"


def normalize_currency(word: str) -> str:
    """Map a currency word or symbol to its ISO code; unknown words pass through upper-cased."""
    if not word:
        return ""
    word = word.strip()
    return CURRENCY_ALIASES.get(word.upper(), CURRENCY_ALIASES.get(word, word.upper()))


def _candidate(description: str, amount: str, currency: str = "", currency_original: str = "") -> Optional[ParsedExpenseCandidate]:
    description = description.strip(_DESCRIPTION_STRIP)
    if not description:
        return None
    try:
        value = float(amount)
    except ValueError:
        return None
    return ParsedExpenseCandidate(
        description=description,
        amount=value,
        currency=currency,
        currency_original=currency_original,
        account=DEFAULT_ACCOUNT,
    )


def parse_with_fallback(text: str) -> list[ParsedExpenseCandidate]:
    """
    Extract candidates with regular expressions.

    Pattern families are tried in order: "description$amount", then
    "description amount <currency word>", then a loose
    "description amount". The first family that matches anything wins.
    Dollar amounts leave `currency` empty so the user's home currency applies;
    "NT$" amounts are TWD.
    """
    text = text or ""

    candidates = []
    for match in _DOLLAR_PATTERN.finditer(text):
        if match.group(2):
            candidate = _candidate(match.group(1), match.group(3), "TWD", "NT$")
        else:
            candidate = _candidate(match.group(1), match.group(3), currency_original="$")
        if candidate:
            candidates.append(candidate)
    if candidates:
        return candidates

    for match in _CURRENCY_WORD_PATTERN.finditer(text):
        word = match.group(3)
        candidate = _candidate(match.group(1), match.group(2), normalize_currency(word), word)
        if candidate:
            candidates.append(candidate)
    if candidates:
        return candidates

    for match in _LOOSE_PATTERN.finditer(text):
        candidate = _candidate(match.group(1), match.group(2))
        if candidate:
            candidates.append(candidate)
    return candidates


class ConversationParser:
    """Turns a raw message into dated expense candidates."""

    def __init__(
        self,
        ai_service,
        cost_meter: Optional[CostMeter] = None,
        date_resolver: Optional[DateResolver] = None,
    ):
        self.ai_service = ai_service
        self.cost_meter = cost_meter
        self.date_resolver = date_resolver or DateResolver()

    async def execute(self, text: str, user_id: str, now: Optional[datetime] = None) -> list[ParsedExpenseCandidate]:
        """
        Parse `text` into candidates. Never raises.

        Candidates without a date get the date resolved from the whole
        message, so every item of one message shares it.
        """
        candidates: list[ParsedExpenseCandidate] = []
        usage: Optional[TokenUsage] = None

        try:
            result = await self.ai_service.parse_expense(text, user_id)
            usage = result.usage
            candidates = [c for c in result.candidates if c.description and c.amount is not None]
        except AIServiceError as e:
            usage = e.usage
            logger.warning(f"AI parse failed for user {user_id}, using fallback: {e}")
        except Exception as e:
            logger.warning(f"Unexpected AI parse error for user {user_id}, using fallback: {e}")

        self._meter(user_id, usage)

        if not candidates:
            candidates = parse_with_fallback(text)
            logger.debug(f"Fallback parser found {len(candidates)} candidate(s)")

        resolved: Optional[datetime] = None
        for candidate in candidates:
            if not candidate.account:
                candidate.account = DEFAULT_ACCOUNT
            if candidate.date is None:
                if resolved is None:
                    resolved = self.date_resolver.resolve(text, now)
                candidate.date = resolved

        return candidates

    def _meter(self, user_id: str, usage: Optional[TokenUsage]) -> None:
        if self.cost_meter is None or usage is None or usage.is_empty():
            return
        self.cost_meter.submit(
            user_id=user_id,
            operation=OPERATION_PARSE,
            provider=getattr(self.ai_service, "provider", "unknown"),
            model=getattr(self.ai_service, "model", "unknown"),
            usage=usage,
        )
