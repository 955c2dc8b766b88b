"""
AI cost reporting over the cost log.
"""
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aiexpense.models import AICostLog


class AICostReportService:
    """Aggregates AICostLog rows over a trailing window of days."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    def _since(days: int) -> datetime:
        return datetime.now(timezone.utc) - timedelta(days=days)

    async def summary(self, days: int = 30) -> dict:
        """Total cost, call count and tokens for the window."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    func.count(AICostLog.id),
                    func.sum(AICostLog.cost),
                    func.sum(AICostLog.input_tokens),
                    func.sum(AICostLog.output_tokens),
                    func.sum(AICostLog.total_tokens),
                ).where(AICostLog.created_at >= self._since(days))
            )
            row = result.one()

        return {
            "days": days,
            "total_calls": row[0] or 0,
            "total_cost": float(row[1] or 0),
            "input_tokens": row[2] or 0,
            "output_tokens": row[3] or 0,
            "total_tokens": row[4] or 0,
            "currency": "USD",
        }

    async def by_operation(self, days: int = 30) -> list[dict]:
        """Cost and tokens per operation, most expensive first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    AICostLog.operation,
                    func.count(AICostLog.id),
                    func.sum(AICostLog.cost),
                    func.sum(AICostLog.total_tokens),
                )
                .where(AICostLog.created_at >= self._since(days))
                .group_by(AICostLog.operation)
                .order_by(func.sum(AICostLog.cost).desc())
            )
            rows = result.all()

        return [
            {
                "operation": row[0],
                "calls": row[1] or 0,
                "cost": float(row[2] or 0),
                "total_tokens": row[3] or 0,
            }
            for row in rows
        ]

    async def daily_stats(self, days: int = 30) -> list[dict]:
        """Per-day cost and call counts, oldest day first."""
        day = func.date(AICostLog.created_at)
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    day,
                    func.count(AICostLog.id),
                    func.sum(AICostLog.cost),
                    func.sum(AICostLog.total_tokens),
                )
                .where(AICostLog.created_at >= self._since(days))
                .group_by(day)
                .order_by(day)
            )
            rows = result.all()

        return [
            {
                "date": str(row[0]),
                "calls": row[1] or 0,
                "cost": float(row[2] or 0),
                "total_tokens": row[3] or 0,
            }
            for row in rows
        ]

    async def top_users(self, days: int = 30, limit: int = 10) -> list[dict]:
        """Users ranked by AI cost."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    AICostLog.user_id,
                    func.count(AICostLog.id),
                    func.sum(AICostLog.cost),
                    func.sum(AICostLog.total_tokens),
                )
                .where(AICostLog.created_at >= self._since(days))
                .group_by(AICostLog.user_id)
                .order_by(func.sum(AICostLog.cost).desc())
                .limit(limit)
            )
            rows = result.all()

        return [
            {
                "user_id": row[0],
                "calls": row[1] or 0,
                "cost": float(row[2] or 0),
                "total_tokens": row[3] or 0,
            }
            for row in rows
        ]
