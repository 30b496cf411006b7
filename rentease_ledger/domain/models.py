"""Domain models - pure Python dataclasses and enums representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Optional


class Role(str, Enum):
    TENANT = "tenant"
    LANDLORD = "landlord"


class PlanStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class SigningStatus(str, Enum):
    PENDING = "pending"
    VIEWED = "viewed"
    SIGNED = "signed"
    DECLINED = "declined"


class BudgetPeriod(str, Enum):
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


class RewardKind(str, Enum):
    BILL_PAYMENT = "bill_payment"
    BUDGET_STREAK = "budget_streak"


class EventOutcome(str, Enum):
    """What the webhook path did with a delivered payment event"""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    ANOMALY = "anomaly"
    FAILED = "failed"


PAYMENT_COMPLETED = "payment.completed"


@dataclass
class PaymentIntent:
    """Checkout handle returned by the payment processor"""

    intent_id: str
    redirect_url: str


@dataclass
class PaymentEvent:
    """Normalized asynchronous callback from the payment processor"""

    event_id: str
    event_type: str  # "payment.completed" or the provider's raw type
    intent_id: Optional[str]
    metadata: Dict[str, str] = field(default_factory=dict)
    raw: Dict = field(default_factory=dict)

    @property
    def plan_id(self) -> Optional[str]:
        return self.metadata.get("plan_id")

    @property
    def bill_id(self) -> Optional[str]:
        return self.metadata.get("bill_id")


@dataclass
class SigningSubmission:
    """Result of sending a document to the e-signature service"""

    submission_id: str
    submitter_id: Optional[str]
    signing_url: Optional[str]


@dataclass
class CategoryAllocation:
    """Share of a budget assigned to one spending category"""

    category: str
    percentage: float
    amount_cents: int


@dataclass
class StreakOutcome:
    """Result of one daily under-budget evaluation"""

    changed: bool  # False = already checked today, nothing to persist
    days_completed: int
    is_under_budget: bool
    was_reset: bool = False
    bonus_awarded: bool = False


@dataclass
class PaymentConfirmation:
    """What a confirm_payment call did"""

    applied: bool  # False = duplicate delivery, nothing changed
    entity_id: str
    points_earned: int = 0
    is_on_time: Optional[bool] = None
    next_due_date: Optional[date] = None
