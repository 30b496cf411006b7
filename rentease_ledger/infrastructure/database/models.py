"""SQLAlchemy ORM models for the financial lifecycle tables"""

import uuid
from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class User(Base):
    """Tenant or landlord; `points` is a cache of the reward/redemption ledger"""

    __tablename__ = "app_user"
    __table_args__ = (CheckConstraint("points >= 0", name="ck_user_points_non_negative"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    username = Column(Text, nullable=False, unique=True)
    role = Column(Text, nullable=False)
    points = Column(BigInteger, nullable=False, default=0)
    landlord_id = Column(Uuid, ForeignKey("app_user.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class RentPlan(Base):
    """Landlord's lease proposal to one tenant"""

    __tablename__ = "rent_plan"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("app_user.id"), nullable=False, index=True)
    landlord_id = Column(Uuid, ForeignKey("app_user.id"), nullable=False, index=True)
    monthly_rent_cents = Column(BigInteger, nullable=False)
    deposit_cents = Column(BigInteger, nullable=False)
    duration_months = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    status = Column(Text, nullable=False, default="pending")
    proposed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    next_due_date = Column(Date, nullable=True)
    payment_intent_id = Column(Text, nullable=True, unique=True)
    signing_status = Column(Text, nullable=False, default="pending")
    signing_submission_id = Column(Text, nullable=True, index=True)
    signing_url = Column(Text, nullable=True)
    signed_at = Column(DateTime(timezone=True), nullable=True)

    tenant = relationship("User", foreign_keys=[tenant_id])
    landlord = relationship("User", foreign_keys=[landlord_id])


class Bill(Base):
    """Single payable charge issued by a landlord"""

    __tablename__ = "bill"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("app_user.id"), nullable=False, index=True)
    landlord_id = Column(Uuid, ForeignKey("app_user.id"), nullable=False, index=True)
    type = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    amount_cents = Column(BigInteger, nullable=False)
    due_date = Column(Date, nullable=False)
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_intent_id = Column(Text, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    landlord = relationship("User", foreign_keys=[landlord_id])


class Reward(Base):
    """Append-only record of points granted; one per bill and one per budget at most"""

    __tablename__ = "reward"
    __table_args__ = (CheckConstraint("points_earned >= 0", name="ck_reward_points_non_negative"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("app_user.id"), nullable=False, index=True)
    kind = Column(Text, nullable=False)
    bill_id = Column(Uuid, ForeignKey("bill.id"), nullable=True, unique=True)
    budget_id = Column(Uuid, ForeignKey("budget.id"), nullable=True, unique=True)
    amount_cents = Column(BigInteger, nullable=False)
    is_on_time = Column(Boolean, nullable=False)
    points_earned = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Budget(Base):
    """Spending budget per tenant and period, with the monthly streak counters"""

    __tablename__ = "budget"
    __table_args__ = (UniqueConstraint("tenant_id", "period", name="uq_budget_tenant_period"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("app_user.id"), nullable=False, index=True)
    period = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    days_completed = Column(Integer, nullable=False, default=0)
    last_checked_date = Column(Date, nullable=True)
    points_awarded = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    category_budgets = relationship("CategoryBudget", back_populates="budget", cascade="all, delete-orphan")


class CategoryBudget(Base):
    __tablename__ = "category_budget"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    budget_id = Column(Uuid, ForeignKey("budget.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(Text, nullable=False)
    percentage = Column(Float, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)

    budget = relationship("Budget", back_populates="category_budgets")


class Expense(Base):
    """Tenant-recorded spending, summed by the streak tracker"""

    __tablename__ = "expense"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("app_user.id"), nullable=False, index=True)
    category = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    spent_on = Column(Date, nullable=False, index=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ShopItem(Base):
    __tablename__ = "shop_item"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    point_cost = Column(BigInteger, nullable=False)
    image_url = Column(Text, nullable=True)


class Redemption(Base):
    """Points spent on a shop item; written in the same commit as the points decrement"""

    __tablename__ = "redemption"
    __table_args__ = (UniqueConstraint("tenant_id", "request_key", name="uq_redemption_tenant_request_key"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("app_user.id"), nullable=False, index=True)
    item_id = Column(Uuid, ForeignKey("shop_item.id"), nullable=False)
    item_name = Column(Text, nullable=False)
    points_spent = Column(BigInteger, nullable=False)
    request_key = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PaymentEventRecord(Base):
    """Durable log of every payment processor callback received"""

    __tablename__ = "payment_event"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_event_id = Column(Text, nullable=True, index=True)
    event_type = Column(Text, nullable=False)
    intent_id = Column(Text, nullable=True, index=True)
    entity_type = Column(Text, nullable=True)
    entity_id = Column(Text, nullable=True)
    payload = Column(JSON, nullable=False)
    outcome = Column(Text, nullable=False, default="received")
    received_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ReconciliationAnomalyRecord(Base):
    """Operator queue for webhooks that arrived in an unexpected state"""

    __tablename__ = "reconciliation_anomaly"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    kind = Column(Text, nullable=False, index=True)
    entity_type = Column(Text, nullable=True)
    entity_id = Column(Text, nullable=True)
    intent_id = Column(Text, nullable=True)
    detail = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolution_note = Column(Text, nullable=True)
