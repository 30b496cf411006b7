"""/v1/expenses - tenant spending that feeds the budget streak"""

from typing import List

from fastapi import APIRouter, Depends, Query

from rentease_ledger.api.dependencies import get_current_user, get_expense_service
from rentease_ledger.api.v1.schemas import (
    CategorySpendResponse,
    ExpenseCreateRequest,
    ExpenseResponse,
    ExpenseSummaryResponse,
)
from rentease_ledger.infrastructure.database.models import User
from rentease_ledger.services.budgets import ExpenseService

router = APIRouter()


@router.post("/expenses", response_model=ExpenseResponse, status_code=201)
def add_expense(
    request_body: ExpenseCreateRequest,
    user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    expense = service.add_expense(
        user,
        category=request_body.category,
        amount_cents=request_body.amount_cents,
        spent_on=request_body.spent_on,
        description=request_body.description,
    )
    return ExpenseResponse.model_validate(expense)


@router.get("/expenses", response_model=List[ExpenseResponse])
def list_expenses(
    period: str = Query("month", description="week, month or all"),
    user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    return [ExpenseResponse.model_validate(e) for e in service.list_expenses(user, period)]


@router.get("/expenses/summary", response_model=ExpenseSummaryResponse)
def expense_summary(
    period: str = Query("month", description="week, month or all"),
    user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    """Spending totals per category for the period"""
    summary = service.summary(user, period)
    return ExpenseSummaryResponse(
        period=summary.period,
        total_cents=summary.total_cents,
        count=summary.count,
        categories=[
            CategorySpendResponse(category=c.category, total_cents=c.total_cents, count=c.count)
            for c in summary.categories
        ],
    )
