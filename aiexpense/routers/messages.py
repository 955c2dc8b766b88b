"""
Expense ingestion routes.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from aiexpense.container import Container, get_container
from aiexpense.services.expense_service import CreateExpenseRequest, CreateExpenseResponse

router = APIRouter(prefix="/api")


class MessageIn(BaseModel):
    user_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)


class ExpenseIn(BaseModel):
    user_id: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)
    currency: str = ""
    home_currency: str = ""
    category_id: Optional[str] = None
    account: str = ""
    date: Optional[datetime] = None


def expense_to_dict(expense: CreateExpenseResponse) -> dict:
    return {
        "id": expense.id,
        "description": expense.description,
        "original_amount": expense.original_amount,
        "currency": expense.currency,
        "home_amount": expense.home_amount,
        "home_currency": expense.home_currency,
        "exchange_rate": expense.exchange_rate,
        "category_id": expense.category_id,
        "category": expense.category,
        "account": expense.account,
        "expense_date": expense.expense_date.isoformat(),
        "message": expense.message,
    }


@router.post("/messages")
async def process_message(body: MessageIn, container: Container = Depends(get_container)):
    """Parse a free-text message and record every expense found in it."""
    result = await container.message_service.process(body.user_id, body.text)
    return {
        "user_id": result.user_id,
        "success": result.success,
        "expenses": [expense_to_dict(e) for e in result.expenses],
        "total": result.total,
        "home_currency": result.home_currency,
        "failed": result.failed,
        "reply": result.reply,
    }


@router.post("/expenses", status_code=201)
async def create_expense(body: ExpenseIn, container: Container = Depends(get_container)):
    """Record a single expense from structured input."""
    await container.message_service.ensure_user(body.user_id)
    response = await container.expense_service.execute(CreateExpenseRequest(
        user_id=body.user_id,
        description=body.description,
        original_amount=body.amount,
        currency=body.currency,
        home_currency=body.home_currency,
        category_id=body.category_id,
        account=body.account,
        date=body.date,
    ))
    return expense_to_dict(response)
