"""
Storage layer for the ingestion pipeline.

Each repository takes a session factory and opens a short-lived session per
operation, so the detached cost-logging worker never shares a session with
the request path.
"""
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aiexpense.models import (
    AICostLog,
    Category,
    ExchangeRate,
    Expense,
    PricingConfig,
    User,
)


class PricingConflictError(Exception):
    """The row being superseded was no longer the active one."""
    pass


class _Repository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory


class UserRepository(_Repository):

    async def get_by_id(self, user_id: str) -> Optional[User]:
        async with self.session_factory() as session:
            return await session.get(User, user_id)

    async def ensure(self, user_id: str, messenger_type: str = "terminal") -> tuple[User, bool]:
        """Return (user, created), creating the user on first contact."""
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
            if user:
                return user, False
            user = User(user_id=user_id, messenger_type=messenger_type)
            session.add(user)
            await session.commit()
            return user, True

    async def set_home_currency(self, user_id: str, currency: str) -> Optional[User]:
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
            if not user:
                return None
            user.home_currency = currency.strip().upper()
            await session.commit()
            return user


class CategoryRepository(_Repository):

    async def get_by_id(self, category_id: str) -> Optional[Category]:
        async with self.session_factory() as session:
            return await session.get(Category, category_id)

    async def get_by_user_id(self, user_id: str) -> list[Category]:
        """All categories for a user in creation order."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Category)
                .where(Category.user_id == user_id)
                .order_by(Category.created_at, Category.id)
            )
            return list(result.scalars().all())

    async def create(self, user_id: str, name: str, is_default: bool = False) -> Category:
        async with self.session_factory() as session:
            category = Category(user_id=user_id, name=name, is_default=is_default)
            session.add(category)
            await session.commit()
            return category


class ExpenseRepository(_Repository):

    async def create(self, expense: Expense) -> Expense:
        async with self.session_factory() as session:
            session.add(expense)
            await session.commit()
            return expense

    async def get_by_id(self, expense_id: str) -> Optional[Expense]:
        async with self.session_factory() as session:
            return await session.get(Expense, expense_id)

    async def get_by_user_id(self, user_id: str, limit: int = 100) -> list[Expense]:
        """Most recent expenses first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Expense)
                .where(Expense.user_id == user_id)
                .order_by(Expense.expense_date.desc())
                .limit(limit)
            )
            return list(result.scalars().all())


class ExchangeRateStore(_Repository):
    """Append-only FX rate cache."""

    async def save_rate(self, rate: ExchangeRate) -> ExchangeRate:
        async with self.session_factory() as session:
            session.add(rate)
            await session.commit()
            return rate

    async def get_rate(self, base: str, target: str, rate_date: date) -> Optional[ExchangeRate]:
        """Exact-date lookup; the latest fetch wins when a day has several rows."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ExchangeRate)
                .where(
                    ExchangeRate.base_currency == base,
                    ExchangeRate.target_currency == target,
                    ExchangeRate.rate_date == rate_date,
                )
                .order_by(ExchangeRate.fetched_at.desc(), ExchangeRate.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_most_recent_rate(self, base: str, target: str, before: date) -> Optional[ExchangeRate]:
        """Latest rate dated on or before `before`."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ExchangeRate)
                .where(
                    ExchangeRate.base_currency == base,
                    ExchangeRate.target_currency == target,
                    ExchangeRate.rate_date <= before,
                )
                .order_by(
                    ExchangeRate.rate_date.desc(),
                    ExchangeRate.fetched_at.desc(),
                    ExchangeRate.id.desc(),
                )
                .limit(1)
            )
            return result.scalar_one_or_none()


class PricingLedger(_Repository):
    """
    Versioned provider/model price rows.

    Rows are only ever inserted or deactivated; prices on an existing row
    never change.
    """

    async def get_active(self, provider: str, model: str) -> Optional[PricingConfig]:
        """The active row for (provider, model) that is already in effect."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(PricingConfig)
                .where(
                    PricingConfig.provider == provider,
                    PricingConfig.model == model,
                    PricingConfig.is_active == True,
                    PricingConfig.effective_date <= date.today(),
                )
                .order_by(PricingConfig.effective_date.desc(), PricingConfig.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_all_active(self) -> list[PricingConfig]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PricingConfig)
                .where(PricingConfig.is_active == True)
                .order_by(PricingConfig.provider, PricingConfig.model)
            )
            return list(result.scalars().all())

    async def get_history(self, provider: str, model: str) -> list[PricingConfig]:
        """Every row for (provider, model), newest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(PricingConfig)
                .where(PricingConfig.provider == provider, PricingConfig.model == model)
                .order_by(PricingConfig.created_at.desc())
            )
            return list(result.scalars().all())

    async def create(self, config: PricingConfig) -> PricingConfig:
        async with self.session_factory() as session:
            session.add(config)
            await session.commit()
            return config

    async def deactivate(self, config_id: str) -> bool:
        """Deactivate a row if it is still active. Returns whether it was."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(PricingConfig)
                .where(PricingConfig.id == config_id, PricingConfig.is_active == True)
                .values(is_active=False, updated_at=datetime.now(timezone.utc))
            )
            await session.commit()
            return result.rowcount > 0

    async def supersede(self, current: PricingConfig, replacement: PricingConfig) -> PricingConfig:
        """
        Deactivate `current` and insert `replacement` as active in one transaction.

        The deactivate is conditional on `current` still being active. If a
        concurrent sync already replaced it, nothing is written and
        PricingConflictError is raised.
        """
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(PricingConfig)
                    .where(PricingConfig.id == current.id, PricingConfig.is_active == True)
                    .values(is_active=False, updated_at=datetime.now(timezone.utc))
                )
                if result.rowcount == 0:
                    raise PricingConflictError(
                        f"pricing {current.id} for {current.provider}/{current.model} is no longer active"
                    )
                replacement.is_active = True
                session.add(replacement)
            return replacement


class AICostRepository(_Repository):

    async def create(self, log: AICostLog) -> AICostLog:
        async with self.session_factory() as session:
            session.add(log)
            await session.commit()
            return log

    async def get_recent(self, user_id: Optional[str] = None, limit: int = 100) -> list[AICostLog]:
        async with self.session_factory() as session:
            query = select(AICostLog)
            if user_id:
                query = query.where(AICostLog.user_id == user_id)
            query = query.order_by(AICostLog.created_at.desc()).limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())
