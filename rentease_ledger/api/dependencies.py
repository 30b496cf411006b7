"""Dependency injection for FastAPI endpoints"""

import hmac
import uuid
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from rentease_ledger.config import settings
from rentease_ledger.infrastructure.clients.payments import PaymentGateway, StripeCheckoutGateway
from rentease_ledger.infrastructure.clients.signing import DocuSealClient
from rentease_ledger.infrastructure.database.models import User
from rentease_ledger.infrastructure.database.repositories import UserRepository
from rentease_ledger.infrastructure.database.session import get_db
from rentease_ledger.services.bills import BillService
from rentease_ledger.services.budgets import BudgetService, ExpenseService
from rentease_ledger.services.rent_plans import RentPlanService
from rentease_ledger.services.rewards import RewardService
from rentease_ledger.services.webhooks import PaymentWebhookHandler, SigningWebhookHandler
from rentease_ledger.utils.date_utils import Clock, utcnow


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_payment_gateway() -> PaymentGateway:
    """Provide payment processor client instance"""
    return StripeCheckoutGateway()


def get_signing_client() -> DocuSealClient:
    """Provide e-signature client instance"""
    return DocuSealClient()


def get_clock() -> Clock:
    return utcnow


def get_current_user(
    x_user_id: str | None = Header(default=None, alias="X-User-ID"),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the caller. Authentication happens upstream; this service trusts
    the user id the auth layer forwards.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Unauthorized")

    user = UserRepository(db).get(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def require_operator(x_operator_key: str | None = Header(default=None, alias="X-Operator-Key")) -> None:
    """Gate operator endpoints behind the configured API key"""
    expected = settings.operator_api_key
    if not expected or not x_operator_key or not hmac.compare_digest(x_operator_key, expected):
        raise HTTPException(status_code=403, detail="Forbidden")


def get_rent_plan_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
) -> RentPlanService:
    return RentPlanService(db, gateway=gateway, clock=clock)


def get_bill_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
) -> BillService:
    return BillService(db, gateway=gateway, clock=clock)


def get_reward_service(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> RewardService:
    return RewardService(db, clock=clock)


def get_budget_service(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> BudgetService:
    return BudgetService(db, clock=clock)


def get_expense_service(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> ExpenseService:
    return ExpenseService(db, clock=clock)


def get_payment_webhook_handler(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> PaymentWebhookHandler:
    return PaymentWebhookHandler(db, clock=clock)


def get_signing_webhook_handler(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> SigningWebhookHandler:
    return SigningWebhookHandler(db, clock=clock)
