"""Reward Accrual Engine - the only writer of User.points"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentease_ledger.domain.exceptions import InsufficientPointsError, NotFoundError
from rentease_ledger.domain.models import RewardKind, Role
from rentease_ledger.domain.rewards import (
    STREAK_BONUS_POINTS,
    is_payment_on_time,
    ledger_balance,
    points_for_bill_payment,
)
from rentease_ledger.infrastructure.database.models import Bill, Budget, Redemption, Reward, User
from rentease_ledger.infrastructure.database.repositories import (
    RedemptionRepository,
    RewardRepository,
    ShopItemRepository,
    UserRepository,
)
from rentease_ledger.infrastructure.database.session import transaction
from rentease_ledger.infrastructure.observability.logging import log_points_movement
from rentease_ledger.infrastructure.observability.metrics import points_awarded_counter, points_redeemed_counter
from rentease_ledger.services.access import require_role
from rentease_ledger.utils.date_utils import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class PointsBalance:
    points_available: int
    points_earned: int
    points_spent: int

    @property
    def reconciled(self) -> bool:
        """User.points agrees with the append-only reward/redemption rows"""
        return self.points_available == ledger_balance(self.points_earned, self.points_spent)


class RewardService:
    """
    Grants and spends points.

    `accrue_*` methods run inside the caller's transaction and never commit,
    so the reward row, the points increment and the triggering state change
    land in one commit.
    """

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.users = UserRepository(db)
        self.rewards = RewardRepository(db)
        self.redemptions = RedemptionRepository(db)
        self.items = ShopItemRepository(db)

    def accrue_bill_payment(self, bill: Bill, paid_at: datetime) -> Tuple[bool, int]:
        """
        Points for a bill whose paid flag this transaction just flipped.

        Returns:
            (is_on_time, points_earned); no reward row when points are zero
        """
        is_on_time = is_payment_on_time(paid_at, bill.due_date)
        points = points_for_bill_payment(bill.amount_cents, is_on_time)
        if points > 0:
            self._grant(
                tenant_id=bill.tenant_id,
                kind=RewardKind.BILL_PAYMENT,
                points=points,
                amount_cents=bill.amount_cents,
                is_on_time=is_on_time,
                bill_id=bill.id,
                created_at=paid_at,
            )
        return is_on_time, points

    def accrue_streak_bonus(self, budget: Budget) -> int:
        """Flat bonus for a completed under-budget streak (no bill attached)"""
        self._grant(
            tenant_id=budget.tenant_id,
            kind=RewardKind.BUDGET_STREAK,
            points=STREAK_BONUS_POINTS,
            amount_cents=budget.amount_cents,
            is_on_time=True,
            budget_id=budget.id,
            created_at=self.clock(),
        )
        return STREAK_BONUS_POINTS

    def _grant(self, tenant_id: uuid.UUID, kind: RewardKind, points: int, **fields) -> Reward:
        reward = self.rewards.create(tenant_id=tenant_id, kind=kind.value, points_earned=points, **fields)
        self.users.increment_points(tenant_id, points)
        points_awarded_counter.labels(kind=kind.value).inc(points)
        log_points_movement(str(tenant_id), points, kind.value, str(reward.id))
        return reward

    def redeem(self, tenant: User, item_id: uuid.UUID, request_key: Optional[str] = None) -> Tuple[Redemption, int]:
        """
        Spend points on a shop item.

        The decrement is a guarded update (`points >= cost`) committed together
        with the redemption row. Repeating a request_key returns the first
        redemption without spending again.

        Returns:
            (redemption, points balance after the redemption)

        Raises:
            NotFoundError: Unknown item
            InsufficientPointsError: Balance below the item's cost
        """
        require_role(tenant, Role.TENANT, "Only tenants can redeem shop items")

        if request_key:
            existing = self.redemptions.get_by_request_key(tenant.id, request_key)
            if existing is not None:
                return existing, self._current_points(tenant.id)

        item = self.items.get(item_id)
        if item is None:
            raise NotFoundError("Item not found")

        try:
            with transaction(self.db):
                if not self.users.decrement_points(tenant.id, item.point_cost):
                    raise InsufficientPointsError("Not enough points to redeem item")
                redemption = self.redemptions.create(
                    tenant_id=tenant.id,
                    item_id=item.id,
                    item_name=item.name,
                    points_spent=item.point_cost,
                    request_key=request_key,
                    created_at=self.clock(),
                )
        except IntegrityError:
            # Concurrent request with the same key won the insert; ours rolled back
            existing = self.redemptions.get_by_request_key(tenant.id, request_key) if request_key else None
            if existing is None:
                raise
            return existing, self._current_points(tenant.id)

        points_redeemed_counter.inc(item.point_cost)
        log_points_movement(str(tenant.id), -item.point_cost, "redemption", str(redemption.id))
        return redemption, self._current_points(tenant.id)

    def _current_points(self, tenant_id: uuid.UUID) -> int:
        user = self.users.get(tenant_id)
        return int(user.points)

    def balance(self, tenant: User) -> PointsBalance:
        require_role(tenant, Role.TENANT, "Only tenants can view reward balance")
        result = PointsBalance(
            points_available=self._current_points(tenant.id),
            points_earned=self.rewards.total_earned(tenant.id),
            points_spent=self.redemptions.total_spent(tenant.id),
        )
        if not result.reconciled:
            logger.error(
                "Points balance does not match reward ledger",
                extra={
                    "tenant_id": str(tenant.id),
                    "points_available": result.points_available,
                    "points_earned": result.points_earned,
                    "points_spent": result.points_spent,
                },
            )
        return result

    def list_rewards(self, tenant: User) -> List[Reward]:
        require_role(tenant, Role.TENANT, "Only tenants can view rewards")
        return self.rewards.list_by_tenant(tenant.id)

    def list_redemptions(self, user: User) -> List[Redemption]:
        if user.role == Role.TENANT.value:
            return self.redemptions.list_for_tenant(user.id)
        return self.redemptions.list_for_landlord(user.id)
