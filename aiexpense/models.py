import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Float, Text, Boolean, Date, Index

from aiexpense.database import Base


def generate_uuid():
    return str(uuid.uuid4())


def utc_now():
    return datetime.now(timezone.utc)


class User(Base):
    """A messenger user. Rows are created on first contact."""
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    messenger_type = Column(String, nullable=False, default="terminal")  # line, telegram, slack, ...
    home_currency = Column(String, nullable=True)  # Preferred reporting currency, NULL = system default
    created_at = Column(DateTime(timezone=True), default=utc_now)


class Category(Base):
    __tablename__ = "categories"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.user_id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class Expense(Base):
    """
    A persisted expense carrying both the transaction currency and the
    user's home-currency equivalent.

    home_amount = original_amount * exchange_rate (rounding tolerated).
    exchange_rate is 1.0 when currencies match or conversion was unavailable.
    """
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.user_id"), nullable=False, index=True)
    description = Column(Text, nullable=False)

    original_amount = Column(Float, nullable=False)
    currency = Column(String, nullable=False)
    home_amount = Column(Float, nullable=False)
    home_currency = Column(String, nullable=False)
    exchange_rate = Column(Float, nullable=False, default=1.0)

    category_id = Column(String, ForeignKey("categories.id"), nullable=True)  # Uncategorized when NULL
    account = Column(String, nullable=False, default="Cash")  # Cash, Credit Card, ...
    expense_date = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now)


class ExchangeRate(Base):
    """
    Cached FX rate. Rows are never updated: a later fetch for the same
    (base, target, rate_date) inserts a new row and lookups take the
    most recently fetched one.
    """
    __tablename__ = "exchange_rates"
    __table_args__ = (
        Index("ix_exchange_rates_pair_date", "base_currency", "target_currency", "rate_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String, nullable=False, default="exchange-rate-api")
    base_currency = Column(String, nullable=False)
    target_currency = Column(String, nullable=False)
    rate = Column(Float, nullable=False)
    rate_date = Column(Date, nullable=False)
    fetched_at = Column(DateTime(timezone=True), default=utc_now)


class PricingConfig(Base):
    """
    Versioned per-token pricing for an AI provider/model, in `currency` per token.

    Design principles:
    1. Rows are never repriced in place. A price change deactivates the
       current row and inserts a new active one, so history is preserved
       for retroactive cost audits.
    2. At most one is_active row per (provider, model). This is maintained
       by PricingSync, not by a storage constraint.
    """
    __tablename__ = "ai_pricing_config"
    __table_args__ = (
        Index("ix_ai_pricing_config_provider_model_active", "provider", "model", "is_active"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    provider = Column(String, nullable=False, index=True)
    model = Column(String, nullable=False, index=True)
    input_token_price = Column(Float, nullable=False, default=0)
    output_token_price = Column(Float, nullable=False, default=0)
    currency = Column(String, nullable=False, default="USD")
    effective_date = Column(Date, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now)

    def get_cost(self, input_tokens: int, output_tokens: int) -> float:
        """Cost of a call at this row's prices."""
        return input_tokens * self.input_token_price + output_tokens * self.output_token_price


class AICostLog(Base):
    """Append-only record of one metered AI call."""
    __tablename__ = "ai_cost_logs"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, nullable=False, index=True)
    operation = Column(String, nullable=False)  # parse_conversation, suggest_category
    provider = Column(String, nullable=False)
    model = Column(String, nullable=False)
    input_tokens = Column(Integer, default=0)
    output_tokens = Column(Integer, default=0)
    total_tokens = Column(Integer, default=0)
    cost = Column(Float, nullable=False, default=0)
    currency = Column(String, nullable=False, default="USD")
    cost_note = Column(String, nullable=True)  # e.g. pricing_not_configured
    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
