"""
AI cost reporting routes.
"""
from fastapi import APIRouter, Depends, Query

from aiexpense.container import Container, get_container

router = APIRouter(prefix="/api/ai-cost")


@router.get("/summary")
async def ai_cost_summary(
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(10, ge=1, le=100),
    container: Container = Depends(get_container),
):
    """AI spend over the last `days` days."""
    report = container.cost_report
    return {
        "summary": await report.summary(days),
        "by_operation": await report.by_operation(days),
        "daily": await report.daily_stats(days),
        "top_users": await report.top_users(days, limit),
    }
