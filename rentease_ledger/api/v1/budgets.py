"""/v1/budgets - spending budgets and the daily under-budget streak"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from rentease_ledger.api.dependencies import get_budget_service, get_current_user
from rentease_ledger.api.v1.schemas import BudgetProgressResponse, BudgetRequest, BudgetResponse
from rentease_ledger.domain.models import CategoryAllocation
from rentease_ledger.infrastructure.database.models import User
from rentease_ledger.services.budgets import BudgetService

router = APIRouter()


@router.get("/budgets", response_model=List[BudgetResponse])
def list_budgets(
    user: User = Depends(get_current_user),
    service: BudgetService = Depends(get_budget_service),
):
    return [BudgetResponse.model_validate(b) for b in service.list_budgets(user)]


@router.post("/budgets/progress", response_model=BudgetProgressResponse)
def evaluate_budget_progress(
    user: User = Depends(get_current_user),
    service: BudgetService = Depends(get_budget_service),
):
    """
    Count today toward the monthly under-budget streak and report progress.

    Only the first call of a day moves the counter; later calls return the
    same state. Thirty qualifying days earn a one-time 100 point bonus.
    """
    progress = service.evaluate(user)
    budget = progress.budget
    return BudgetProgressResponse(
        has_budget=budget is not None,
        total_spent_cents=progress.total_spent_cents,
        budget_amount_cents=budget.amount_cents if budget is not None else 0,
        is_under_budget=progress.is_under_budget,
        days_completed=progress.days_completed,
        days_remaining=progress.days_remaining,
        points_awarded=progress.points_awarded,
        points_earned=progress.points_earned,
        was_reset=progress.was_reset,
        message=progress.message,
    )


@router.get("/budgets/{period}", response_model=BudgetResponse)
def get_budget(
    period: str,
    user: User = Depends(get_current_user),
    service: BudgetService = Depends(get_budget_service),
):
    budget = service.get_budget(user, period)
    if budget is None:
        raise HTTPException(status_code=404, detail="Budget not found")
    return BudgetResponse.model_validate(budget)


@router.put("/budgets/{period}", response_model=BudgetResponse)
def upsert_budget(
    period: str,
    request_body: BudgetRequest,
    user: User = Depends(get_current_user),
    service: BudgetService = Depends(get_budget_service),
):
    allocations = None
    if request_body.category_allocations is not None:
        allocations = [
            CategoryAllocation(category=a.category, percentage=a.percentage, amount_cents=a.amount_cents)
            for a in request_body.category_allocations
        ]
    budget = service.upsert_budget(user, period, request_body.amount_cents, allocations)
    return BudgetResponse.model_validate(budget)
