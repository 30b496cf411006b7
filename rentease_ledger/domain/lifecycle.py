"""Rent plan and signing lifecycles - legal transitions and derived dates"""

from datetime import date
from typing import Dict, FrozenSet, Optional

from rentease_ledger.domain.exceptions import InvalidStateError
from rentease_ledger.domain.models import PlanStatus, SigningStatus
from rentease_ledger.utils.date_utils import add_months

PLAN_TRANSITIONS: Dict[PlanStatus, FrozenSet[PlanStatus]] = {
    PlanStatus.PENDING: frozenset({PlanStatus.ACCEPTED, PlanStatus.REJECTED, PlanStatus.CANCELLED}),
    PlanStatus.ACCEPTED: frozenset({PlanStatus.COMPLETED, PlanStatus.CANCELLED}),
    PlanStatus.COMPLETED: frozenset(),
    PlanStatus.REJECTED: frozenset(),
    PlanStatus.CANCELLED: frozenset(),
}

# Signing is a side channel: it never gates the payment lifecycle
SIGNING_TRANSITIONS: Dict[SigningStatus, FrozenSet[SigningStatus]] = {
    SigningStatus.PENDING: frozenset({SigningStatus.VIEWED, SigningStatus.SIGNED, SigningStatus.DECLINED}),
    SigningStatus.VIEWED: frozenset({SigningStatus.SIGNED, SigningStatus.DECLINED}),
    SigningStatus.SIGNED: frozenset(),
    SigningStatus.DECLINED: frozenset(),
}


def can_transition(current: PlanStatus, target: PlanStatus) -> bool:
    return target in PLAN_TRANSITIONS[PlanStatus(current)]


def sources_for(target: PlanStatus) -> FrozenSet[PlanStatus]:
    """Statuses from which `target` is reachable in one step"""
    return frozenset(src for src, targets in PLAN_TRANSITIONS.items() if target in targets)


def require_transition(current: PlanStatus, target: PlanStatus, action: str) -> None:
    """
    Raise InvalidStateError unless current -> target is a legal edge.

    Args:
        current: Plan's status as last read
        target: Status the operation wants to move to
        action: Verb used in the error message ("accept", "cancel", ...)
    """
    current = PlanStatus(current)
    if not can_transition(current, target):
        raise InvalidStateError(f"Cannot {action} plan with status: {current.value}")


def can_advance_signing(current: Optional[SigningStatus], target: SigningStatus) -> bool:
    if current is None:
        current = SigningStatus.PENDING
    return target in SIGNING_TRANSITIONS[SigningStatus(current)]


def next_due_date(start_date: Optional[date], today: date) -> date:
    """First rent due date after the deposit clears: one month after start (or today)"""
    return add_months(start_date or today, 1)
