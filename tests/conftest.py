import pytest
from datetime import date, datetime, timezone
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from typer.testing import CliRunner

from aiexpense.main import app
from aiexpense.database import Base
from aiexpense.models import ExchangeRate, PricingConfig
from aiexpense.providers.ai import (
    AIServiceError,
    CategorySuggestion,
    ParseExpenseResult,
    TokenUsage,
)
from aiexpense.providers.exchange_rates import ExchangeRateError
from aiexpense.container import build_container


# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeAI:
    """In-memory AI backend with scripted results."""

    provider = "gemini"
    model = "gemini-2.0-flash"

    def __init__(self):
        self.candidates = []
        self.category = "Food"
        self.usage = TokenUsage(input_tokens=100, output_tokens=50)
        self.fail_parse = False
        self.fail_category = False
        self.parse_calls = 0
        self.category_calls = 0
        self.last_categories = None

    async def parse_expense(self, text, user_id):
        self.parse_calls += 1
        if self.fail_parse:
            raise AIServiceError("AI unavailable", usage=self.usage)
        return ParseExpenseResult(candidates=list(self.candidates), usage=self.usage)

    async def suggest_category(self, description, user_id, categories=None):
        self.category_calls += 1
        self.last_categories = categories
        if self.fail_category:
            raise AIServiceError("AI unavailable")
        return CategorySuggestion(category=self.category, usage=self.usage)


class FakeRateProvider:
    """FX provider returning fixed rates dated today."""

    name = "fake"

    def __init__(self, rates=None):
        self.rates = rates if rates is not None else {("USD", "TWD"): 31.5}
        self.calls = []
        self.fail = False

    async def fetch(self, base, symbols=None):
        self.calls.append((base, symbols))
        if self.fail:
            raise ExchangeRateError("provider down")
        return [
            ExchangeRate(
                provider=self.name,
                base_currency=b,
                target_currency=t,
                rate=rate,
                rate_date=date.today(),
                fetched_at=datetime.now(timezone.utc),
            )
            for (b, t), rate in self.rates.items()
            if b == base and (not symbols or t in symbols)
        ]


class FakePricingProvider:
    """Pricing provider serving a mutable price table."""

    provider = "gemini"

    def __init__(self, prices=None):
        self.prices = prices if prices is not None else {
            "gemini-2.0-flash": (0.000000075, 0.0000003),
            "gemini-1.5-pro": (0.0000035, 0.0000105),
        }
        self.error = None

    async def fetch(self):
        if self.error:
            raise self.error
        return [
            PricingConfig(
                provider=self.provider,
                model=model,
                input_token_price=input_price,
                output_token_price=output_price,
                currency="USD",
                effective_date=date.today(),
                is_active=True,
            )
            for model, (input_price, output_price) in self.prices.items()
        ]


@pytest.fixture
async def test_db():
    """Create a fresh test database for each test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def fake_ai():
    return FakeAI()


@pytest.fixture
def rate_provider():
    return FakeRateProvider()


@pytest.fixture
def pricing_provider():
    return FakePricingProvider()


@pytest.fixture
def container(test_db, fake_ai, rate_provider, pricing_provider):
    """Service graph over the test database and fake providers."""
    return build_container(
        test_db,
        ai_service=fake_ai,
        exchange_provider=rate_provider,
        pricing_provider=pricing_provider,
    )


@pytest.fixture
async def client(container):
    """Create an async test client."""
    # Cost events stay queued; tests drain the meter explicitly
    app.state.container = container
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.container = None


@pytest.fixture
def cli_runner():
    return CliRunner()
