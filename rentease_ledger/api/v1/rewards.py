"""/v1/rewards and /v1/shop - points balance, history and redemptions"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header

from rentease_ledger.api.dependencies import get_current_user, get_reward_service
from rentease_ledger.api.v1.schemas import (
    BalanceResponse,
    RedeemResponse,
    RedemptionResponse,
    RewardListResponse,
    RewardResponse,
)
from rentease_ledger.infrastructure.database.models import User
from rentease_ledger.services.access import parse_uuid
from rentease_ledger.services.rewards import RewardService

router = APIRouter()


@router.get("/rewards/balance", response_model=BalanceResponse)
def get_balance(
    user: User = Depends(get_current_user),
    service: RewardService = Depends(get_reward_service),
):
    balance = service.balance(user)
    return BalanceResponse(
        points_available=balance.points_available,
        points_earned=balance.points_earned,
        points_spent=balance.points_spent,
        reconciled=balance.reconciled,
    )


@router.get("/rewards", response_model=RewardListResponse)
def list_rewards(
    user: User = Depends(get_current_user),
    service: RewardService = Depends(get_reward_service),
):
    """Reward history, newest first"""
    rewards = service.list_rewards(user)
    return RewardListResponse(
        rewards=[RewardResponse.model_validate(r) for r in rewards],
        total_points=sum(r.points_earned for r in rewards),
    )


@router.post("/shop/items/{item_id}/redeem", response_model=RedeemResponse, status_code=201)
def redeem_item(
    item_id: str,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    user: User = Depends(get_current_user),
    service: RewardService = Depends(get_reward_service),
):
    """
    Spend points on a shop item.

    Clients retrying after a timeout should resend the same Idempotency-Key;
    the original redemption is returned and points are spent once.
    """
    redemption, points_balance = service.redeem(user, parse_uuid(item_id, "item ID"), request_key=idempotency_key)
    return RedeemResponse(
        redemption=RedemptionResponse.model_validate(redemption),
        points_balance=points_balance,
    )


@router.get("/shop/redemptions", response_model=List[RedemptionResponse])
def list_redemptions(
    user: User = Depends(get_current_user),
    service: RewardService = Depends(get_reward_service),
):
    return [RedemptionResponse.model_validate(r) for r in service.list_redemptions(user)]
