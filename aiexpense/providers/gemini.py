"""
Gemini backend for expense extraction and category suggestion.

Calls the generateContent REST endpoint with a JSON response mime type and
reads token counts from `usageMetadata`.
"""
import logging
from datetime import date, datetime, timezone
from typing import Optional

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from aiexpense.providers.ai import (
    DEFAULT_ACCOUNT,
    DEFAULT_CATEGORIES,
    AIServiceError,
    CategorySuggestion,
    ParsedExpenseCandidate,
    ParseExpenseResult,
    TokenUsage,
)

logger = logging.getLogger(__name__)

PARSE_PROMPT = """You are an expense tracking assistant. Extract expenses from the following text.
Today is {today}.

Return a JSON array of objects with these fields:
- description: string (what was bought)
- amount: number (price)
- currency: string (ISO 4217 code such as TWD, USD, JPY; empty string if not stated)
- suggested_category: string (one of: {categories})
- date: string (YYYY-MM-DD, resolve relative dates like "yesterday" from today's date; empty string if not stated)
- account: string (payment method such as Cash or Credit Card; empty string if not stated)

If no expenses are found, return an empty array [].

Text: {text}
"""

CATEGORY_PROMPT = """Pick the best category for this expense.
Available categories: {categories}

Respond with ONLY a JSON object in this exact format:
{{"category": "category_name"}}

Expense: {description}
"""


class _ParsedItem(BaseModel):
    description: str = ""
    amount: float = 0
    currency: str = ""
    suggested_category: str = ""
    date: str = ""
    account: str = ""


class _CategoryItem(BaseModel):
    category: str


_items_adapter = TypeAdapter(list[_ParsedItem])


def extract_usage(response_data: dict) -> TokenUsage:
    """Read prompt/candidate token counts from a Gemini response body."""
    usage = response_data.get("usageMetadata") or {}
    return TokenUsage(
        input_tokens=usage.get("promptTokenCount", 0) or 0,
        output_tokens=usage.get("candidatesTokenCount", 0) or 0,
    )


def _parse_item_date(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = date.fromisoformat(value.strip())
    except ValueError:
        return None
    return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)


class GeminiAI:
    """AI backend over the Gemini REST API."""

    provider = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash-lite",
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 10.0,
    ):
        if not api_key:
            raise ValueError("Gemini API key is required")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client

    async def parse_expense(self, text: str, user_id: str) -> ParseExpenseResult:
        prompt = PARSE_PROMPT.format(
            today=date.today().isoformat(),
            categories=", ".join(DEFAULT_CATEGORIES),
            text=text,
        )
        raw, usage = await self._generate(prompt)

        try:
            items = _items_adapter.validate_json(raw)
        except ValidationError as e:
            raise AIServiceError(f"failed to decode expense list: {e}", usage=usage) from e

        candidates = []
        for item in items:
            candidates.append(ParsedExpenseCandidate(
                description=item.description.strip(),
                amount=item.amount,
                currency=item.currency.strip().upper(),
                currency_original=item.currency.strip(),
                suggested_category=item.suggested_category or None,
                date=_parse_item_date(item.date),
                account=item.account.strip() or DEFAULT_ACCOUNT,
            ))
        logger.debug(f"Gemini extracted {len(candidates)} expense(s) for user {user_id}")

        return ParseExpenseResult(
            candidates=candidates,
            usage=usage,
            system_prompt=prompt,
            raw_response=raw,
        )

    async def suggest_category(
        self,
        description: str,
        user_id: str,
        categories: Optional[list[str]] = None,
    ) -> CategorySuggestion:
        """Ask for one of `categories`, or of the default set when none are given."""
        prompt = CATEGORY_PROMPT.format(
            categories=", ".join(categories or DEFAULT_CATEGORIES),
            description=description,
        )
        raw, usage = await self._generate(prompt)

        try:
            item = _CategoryItem.model_validate_json(raw)
        except ValidationError as e:
            raise AIServiceError(f"failed to decode category: {e}", usage=usage) from e

        return CategorySuggestion(category=item.category.strip(), usage=usage)

    async def _generate(self, prompt: str) -> tuple[str, TokenUsage]:
        """Run one generateContent call, returning (response text, usage)."""
        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

        try:
            if self._client is not None:
                response = await self._client.post(url, json=body, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(url, json=body, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise AIServiceError(f"failed to call Gemini API: {e}") from e

        if response.status_code != 200:
            raise AIServiceError(f"Gemini API error {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise AIServiceError(f"failed to decode Gemini response: {e}") from e

        usage = extract_usage(data)
        candidates = data.get("candidates") or []
        if not candidates:
            raise AIServiceError("no content in Gemini response", usage=usage)
        parts = (candidates[0].get("content") or {}).get("parts") or []
        if not parts:
            raise AIServiceError("no content in Gemini response", usage=usage)

        return parts[0].get("text", ""), usage
