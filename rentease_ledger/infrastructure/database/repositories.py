"""Data access layer for ledger entities

Guarded updates (`UPDATE ... WHERE <expected state>`) return whether a row
changed; callers use that result to decide whether side effects run.
"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session
from rentease_ledger.domain.models import (
    CategoryAllocation,
    EventOutcome,
    PaymentEvent,
    Role,
    SigningSubmission,
    StreakOutcome,
)
from rentease_ledger.infrastructure.database.models import (
    Bill,
    Budget,
    CategoryBudget,
    Expense,
    PaymentEventRecord,
    ReconciliationAnomalyRecord,
    Redemption,
    RentPlan,
    Reward,
    ShopItem,
    User,
)


SETTLED_OUTCOMES = (EventOutcome.APPLIED.value, EventOutcome.DUPLICATE.value)


class _Repository:
    def __init__(self, db: Session):
        self.db = db

    def _guarded_update(self, model, entity_id: uuid.UUID, conditions: Iterable, values: Dict[str, Any]) -> bool:
        """Apply `values` only if the row still matches `conditions`; True if it changed"""
        self.db.flush()
        changed = (
            self.db.query(model)
            .filter(model.id == entity_id, *conditions)
            .update(values, synchronize_session=False)
        )
        # Loaded instance is stale after a bulk update
        instance = self.db.identity_map.get(self.db.identity_key(model, entity_id))
        if instance is not None:
            self.db.expire(instance)
        return changed == 1


class UserRepository(_Repository):
    """Repository for tenants and landlords"""

    def create(self, name: str, email: str, username: str, role: Role, points: int = 0) -> User:
        user = User(name=name, email=email, username=username, role=Role(role).value, points=points)
        self.db.add(user)
        self.db.flush()
        return user

    def get(self, user_id: uuid.UUID) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def find_tenant(self, tenant_id: Optional[uuid.UUID] = None, username: Optional[str] = None) -> Optional[User]:
        """Look up a tenant by id or username"""
        query = self.db.query(User).filter(User.role == Role.TENANT.value)
        if username:
            return query.filter(User.username == username).first()
        return query.filter(User.id == tenant_id).first()

    def link_landlord(self, tenant_id: uuid.UUID, landlord_id: uuid.UUID) -> bool:
        """Set the tenant's landlord exactly once"""
        return self._guarded_update(User, tenant_id, [User.landlord_id.is_(None)], {"landlord_id": landlord_id})

    def increment_points(self, user_id: uuid.UUID, points: int) -> None:
        """Atomic `points = points + n`, never a read-modify-write"""
        self._guarded_update(User, user_id, [], {"points": User.points + points})

    def decrement_points(self, user_id: uuid.UUID, points: int) -> bool:
        """Atomic spend; False when the balance does not cover it"""
        return self._guarded_update(User, user_id, [User.points >= points], {"points": User.points - points})


class RentPlanRepository(_Repository):
    """Repository for rent plans"""

    def create(self, **fields) -> RentPlan:
        plan = RentPlan(**fields)
        self.db.add(plan)
        self.db.flush()
        return plan

    def get(self, plan_id: uuid.UUID) -> Optional[RentPlan]:
        return self.db.query(RentPlan).filter(RentPlan.id == plan_id).first()

    def get_by_intent(self, intent_id: str, for_update: bool = False) -> Optional[RentPlan]:
        """Fetch plan by payment intent, optionally row-locked for the transaction"""
        query = self.db.query(RentPlan).filter(RentPlan.payment_intent_id == intent_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_by_submission(self, submission_id: str) -> Optional[RentPlan]:
        return self.db.query(RentPlan).filter(RentPlan.signing_submission_id == submission_id).first()

    def transition(self, plan_id: uuid.UUID, from_statuses: Iterable[str], values: Dict[str, Any]) -> bool:
        """Move plan out of one of `from_statuses`; False if another writer got there first"""
        statuses = [getattr(s, "value", s) for s in from_statuses]
        return self._guarded_update(RentPlan, plan_id, [RentPlan.status.in_(statuses)], values)

    def attach_signing(self, plan_id: uuid.UUID, submission: SigningSubmission) -> None:
        self._guarded_update(
            RentPlan,
            plan_id,
            [RentPlan.signing_submission_id.is_(None)],
            {
                "signing_submission_id": submission.submission_id,
                "signing_url": submission.signing_url,
                "signing_status": "pending",
            },
        )

    def update_signing(self, plan_id: uuid.UUID, from_statuses: Iterable[str], values: Dict[str, Any]) -> bool:
        statuses = [getattr(s, "value", s) for s in from_statuses]
        return self._guarded_update(RentPlan, plan_id, [RentPlan.signing_status.in_(statuses)], values)


class BillRepository(_Repository):
    """Repository for bills"""

    def create(self, **fields) -> Bill:
        bill = Bill(**fields)
        self.db.add(bill)
        self.db.flush()
        return bill

    def get(self, bill_id: uuid.UUID) -> Optional[Bill]:
        return self.db.query(Bill).filter(Bill.id == bill_id).first()

    def get_by_intent(self, intent_id: str) -> Optional[Bill]:
        return self.db.query(Bill).filter(Bill.payment_intent_id == intent_id).first()

    def set_intent(self, bill_id: uuid.UUID, intent_id: str) -> bool:
        """Record the latest payment attempt on an unpaid bill"""
        return self._guarded_update(Bill, bill_id, [Bill.is_paid.is_(False)], {"payment_intent_id": intent_id})

    def mark_paid(self, bill_id: uuid.UUID, paid_at: datetime) -> bool:
        """One-way `is_paid: false -> true`; True only for the first confirmation"""
        return self._guarded_update(Bill, bill_id, [Bill.is_paid.is_(False)], {"is_paid": True, "paid_at": paid_at})


class RewardRepository(_Repository):
    """Append-only reward rows"""

    def create(self, **fields) -> Reward:
        reward = Reward(**fields)
        self.db.add(reward)
        self.db.flush()
        return reward

    def list_by_tenant(self, tenant_id: uuid.UUID) -> List[Reward]:
        return (
            self.db.query(Reward)
            .filter(Reward.tenant_id == tenant_id)
            .order_by(Reward.created_at.desc())
            .all()
        )

    def total_earned(self, tenant_id: uuid.UUID) -> int:
        total = self.db.query(func.sum(Reward.points_earned)).filter(Reward.tenant_id == tenant_id).scalar()
        return int(total or 0)


class ShopItemRepository(_Repository):
    def create(self, name: str, point_cost: int, description: str = "", image_url: Optional[str] = None) -> ShopItem:
        item = ShopItem(name=name, point_cost=point_cost, description=description, image_url=image_url)
        self.db.add(item)
        self.db.flush()
        return item

    def get(self, item_id: uuid.UUID) -> Optional[ShopItem]:
        return self.db.query(ShopItem).filter(ShopItem.id == item_id).first()


class RedemptionRepository(_Repository):
    """Repository for shop redemptions"""

    def create(self, **fields) -> Redemption:
        redemption = Redemption(**fields)
        self.db.add(redemption)
        self.db.flush()
        return redemption

    def get_by_request_key(self, tenant_id: uuid.UUID, request_key: str) -> Optional[Redemption]:
        """Request keys are scoped to the tenant that sent them"""
        return (
            self.db.query(Redemption)
            .filter(Redemption.tenant_id == tenant_id, Redemption.request_key == request_key)
            .first()
        )

    def list_for_tenant(self, tenant_id: uuid.UUID) -> List[Redemption]:
        return (
            self.db.query(Redemption)
            .filter(Redemption.tenant_id == tenant_id)
            .order_by(Redemption.created_at.desc())
            .all()
        )

    def list_for_landlord(self, landlord_id: uuid.UUID) -> List[Redemption]:
        """Redemptions made by the landlord's linked tenants"""
        return (
            self.db.query(Redemption)
            .join(User, User.id == Redemption.tenant_id)
            .filter(User.landlord_id == landlord_id)
            .order_by(Redemption.created_at.desc())
            .all()
        )

    def total_spent(self, tenant_id: uuid.UUID) -> int:
        total = self.db.query(func.sum(Redemption.points_spent)).filter(Redemption.tenant_id == tenant_id).scalar()
        return int(total or 0)


class BudgetRepository(_Repository):
    """Repository for budgets and their category breakdowns"""

    def get(self, tenant_id: uuid.UUID, period: str, for_update: bool = False) -> Optional[Budget]:
        query = self.db.query(Budget).filter(Budget.tenant_id == tenant_id, Budget.period == period)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def list_by_tenant(self, tenant_id: uuid.UUID) -> List[Budget]:
        return self.db.query(Budget).filter(Budget.tenant_id == tenant_id).order_by(Budget.period).all()

    def upsert(
        self,
        tenant_id: uuid.UUID,
        period: str,
        amount_cents: int,
        allocations: Optional[List[CategoryAllocation]] = None,
    ) -> Budget:
        """
        Create or update the (tenant, period) budget.

        Streak counters are left alone on update. When `allocations` is given
        (even empty) it replaces the category breakdown.
        """
        budget = self.get(tenant_id, period, for_update=True)
        if budget is None:
            budget = Budget(tenant_id=tenant_id, period=period, amount_cents=amount_cents)
            self.db.add(budget)
        else:
            budget.amount_cents = amount_cents

        if allocations is not None:
            budget.category_budgets = [
                CategoryBudget(category=a.category, percentage=a.percentage, amount_cents=a.amount_cents)
                for a in allocations
            ]

        self.db.flush()
        return budget

    def apply_streak(self, budget_id: uuid.UUID, today: date, outcome: StreakOutcome) -> bool:
        """
        Persist an evaluation, conditioned on the budget not being checked today.

        Two evaluations racing on the same day cannot both succeed.
        """
        values: Dict[str, Any] = {
            "days_completed": outcome.days_completed,
            "last_checked_date": today,
        }
        if outcome.bonus_awarded:
            values["points_awarded"] = True
        conditions = [
            (Budget.last_checked_date.is_(None)) | (Budget.last_checked_date < today),
        ]
        if outcome.bonus_awarded:
            conditions.append(Budget.points_awarded.is_(False))
        return self._guarded_update(Budget, budget_id, conditions, values)


class ExpenseRepository(_Repository):
    """Repository for tenant expenses"""

    def create(self, tenant_id: uuid.UUID, category: str, amount_cents: int, spent_on: date, description: Optional[str] = None) -> Expense:
        expense = Expense(
            tenant_id=tenant_id,
            category=category,
            amount_cents=amount_cents,
            spent_on=spent_on,
            description=description,
        )
        self.db.add(expense)
        self.db.flush()
        return expense

    def _since(self, query, since: Optional[date]):
        if since is not None:
            query = query.filter(Expense.spent_on >= since)
        return query

    def list_since(self, tenant_id: uuid.UUID, since: Optional[date]) -> List[Expense]:
        query = self.db.query(Expense).filter(Expense.tenant_id == tenant_id)
        return self._since(query, since).order_by(Expense.spent_on.desc()).all()

    def total_since(self, tenant_id: uuid.UUID, since: Optional[date]) -> int:
        query = self.db.query(func.sum(Expense.amount_cents)).filter(Expense.tenant_id == tenant_id)
        return int(self._since(query, since).scalar() or 0)

    def totals_by_category(self, tenant_id: uuid.UUID, since: Optional[date]) -> List[Tuple[str, int, int]]:
        """(category, total_cents, count) rows, largest spend first"""
        query = self.db.query(
            Expense.category,
            func.sum(Expense.amount_cents),
            func.count(Expense.id),
        ).filter(Expense.tenant_id == tenant_id)
        rows = self._since(query, since).group_by(Expense.category).all()
        return sorted(((c, int(t or 0), int(n)) for c, t, n in rows), key=lambda r: r[1], reverse=True)


class PaymentEventRepository(_Repository):
    """Durable webhook delivery log"""

    def record(self, event: PaymentEvent, entity_type: Optional[str], entity_id: Optional[str]) -> PaymentEventRecord:
        record = PaymentEventRecord(
            provider_event_id=event.event_id,
            event_type=event.event_type,
            intent_id=event.intent_id,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=event.raw or {"metadata": event.metadata},
            outcome="received",
        )
        self.db.add(record)
        self.db.flush()
        return record

    def already_settled(self, provider_event_id: str, exclude_id: uuid.UUID) -> bool:
        """True if an earlier delivery of this event was applied or found nothing to do"""
        return (
            self.db.query(PaymentEventRecord.id)
            .filter(
                PaymentEventRecord.provider_event_id == provider_event_id,
                PaymentEventRecord.id != exclude_id,
                PaymentEventRecord.outcome.in_(SETTLED_OUTCOMES),
            )
            .first()
            is not None
        )

    def set_outcome(self, record_id: uuid.UUID, outcome: str) -> None:
        self._guarded_update(PaymentEventRecord, record_id, [], {"outcome": outcome})


class AnomalyRepository(_Repository):
    """Operator queue of reconciliation anomalies"""

    def create(self, kind: str, detail: str, entity_type: Optional[str] = None, entity_id: Optional[str] = None, intent_id: Optional[str] = None) -> ReconciliationAnomalyRecord:
        record = ReconciliationAnomalyRecord(
            kind=kind,
            detail=detail,
            entity_type=entity_type,
            entity_id=entity_id,
            intent_id=intent_id,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def list(self, include_resolved: bool = False, limit: int = 100) -> List[ReconciliationAnomalyRecord]:
        query = self.db.query(ReconciliationAnomalyRecord)
        if not include_resolved:
            query = query.filter(ReconciliationAnomalyRecord.resolved_at.is_(None))
        return query.order_by(ReconciliationAnomalyRecord.created_at.desc()).limit(limit).all()

    def resolve(self, anomaly_id: uuid.UUID, resolved_at: datetime, note: Optional[str]) -> bool:
        return self._guarded_update(
            ReconciliationAnomalyRecord,
            anomaly_id,
            [ReconciliationAnomalyRecord.resolved_at.is_(None)],
            {"resolved_at": resolved_at, "resolution_note": note},
        )
