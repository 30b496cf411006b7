"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Rent plans

class RentPlanCreateRequest(BaseModel):
    """Request body for POST /v1/rent-plans; the tenant is named by id or username"""

    tenant_id: Optional[uuid.UUID] = None
    tenant_username: Optional[str] = None
    monthly_rent_cents: int = Field(..., gt=0, description="Monthly rent in cents")
    deposit_cents: int = Field(..., gt=0, description="Deposit in cents, charged on acceptance")
    duration_months: int = Field(..., gt=0)
    description: Optional[str] = None
    start_date: Optional[date] = None


class RentPlanResponse(ORMModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    landlord_id: uuid.UUID
    monthly_rent_cents: int
    deposit_cents: int
    duration_months: int
    description: Optional[str] = None
    start_date: Optional[date] = None
    status: str
    proposed_at: datetime
    reviewed_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    next_due_date: Optional[date] = None
    signing_status: str


class CheckoutResponse(BaseModel):
    """Where to send the tenant to pay"""

    intent_id: str
    redirect_url: str


class SigningStatusResponse(BaseModel):
    plan_id: uuid.UUID
    status: str
    submission_id: Optional[str] = None
    signing_url: Optional[str] = None
    signed_at: Optional[datetime] = None


# Bills

class BillCreateRequest(BaseModel):
    """Request body for POST /v1/bills"""

    tenant_id: uuid.UUID
    type: str = Field(..., min_length=1, description="rent, water, electricity, ...")
    amount_cents: int = Field(..., gt=0)
    due_date: date
    description: Optional[str] = None


class BillResponse(ORMModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    landlord_id: uuid.UUID
    type: str
    description: Optional[str] = None
    amount_cents: int
    due_date: date
    is_paid: bool
    paid_at: Optional[datetime] = None


# Rewards and shop

class BalanceResponse(BaseModel):
    points_available: int
    points_earned: int
    points_spent: int
    reconciled: bool


class RewardResponse(ORMModel):
    id: uuid.UUID
    kind: str
    bill_id: Optional[uuid.UUID] = None
    budget_id: Optional[uuid.UUID] = None
    amount_cents: int
    is_on_time: bool
    points_earned: int
    created_at: datetime


class RewardListResponse(BaseModel):
    rewards: List[RewardResponse]
    total_points: int


class RedemptionResponse(ORMModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    item_id: uuid.UUID
    item_name: str
    points_spent: int
    created_at: datetime


class RedeemResponse(BaseModel):
    redemption: RedemptionResponse
    points_balance: int


# Budgets and expenses

class CategoryAllocationSchema(BaseModel):
    category: str = Field(..., min_length=1)
    percentage: float
    amount_cents: int = Field(0, ge=0)


class BudgetRequest(BaseModel):
    """Request body for PUT /v1/budgets/{period}; omit allocations to keep the current ones"""

    amount_cents: int
    category_allocations: Optional[List[CategoryAllocationSchema]] = None


class CategoryBudgetResponse(ORMModel):
    category: str
    percentage: float
    amount_cents: int


class BudgetResponse(ORMModel):
    id: uuid.UUID
    period: str
    amount_cents: int
    days_completed: int
    last_checked_date: Optional[date] = None
    points_awarded: bool
    category_budgets: List[CategoryBudgetResponse] = []


class BudgetProgressResponse(BaseModel):
    has_budget: bool
    total_spent_cents: int
    budget_amount_cents: int
    is_under_budget: bool
    days_completed: int
    days_remaining: int
    points_awarded: bool
    points_earned: int
    was_reset: bool
    message: str


class ExpenseCreateRequest(BaseModel):
    category: str = Field(..., min_length=1)
    amount_cents: int = Field(..., gt=0)
    spent_on: Optional[date] = None
    description: Optional[str] = None


class ExpenseResponse(ORMModel):
    id: uuid.UUID
    category: str
    amount_cents: int
    spent_on: date
    description: Optional[str] = None


class CategorySpendResponse(BaseModel):
    category: str
    total_cents: int
    count: int


class ExpenseSummaryResponse(BaseModel):
    period: str
    total_cents: int
    count: int
    categories: List[CategorySpendResponse]


# Webhooks and operations

class WebhookAck(BaseModel):
    received: bool = True
    outcome: Optional[str] = None


class AnomalyResponse(ORMModel):
    id: uuid.UUID
    kind: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    intent_id: Optional[str] = None
    detail: str
    created_at: datetime
    resolved_at: Optional[datetime] = None
    resolution_note: Optional[str] = None


class ResolveAnomalyRequest(BaseModel):
    note: Optional[str] = None
