"""Budget streak evaluation - pure function of today's date, spend and budget state"""

from datetime import date
from typing import Optional

from rentease_ledger.domain.models import StreakOutcome
from rentease_ledger.domain.rewards import STREAK_TARGET_DAYS


def evaluate_streak(
    today: date,
    last_checked: Optional[date],
    total_spent_cents: int,
    budget_cents: int,
    days_completed: int,
    points_awarded: bool,
) -> StreakOutcome:
    """
    Decide how one evaluation moves the under-budget day counter.

    Rules, in order:
    1. Already checked today -> nothing changes (one count per calendar day)
    2. Under budget and bonus not yet awarded -> +1 day; bonus when reaching 30
    3. Over budget with a running streak -> reset to 0 (bonus latch untouched)
    4. Otherwise -> only stamp today's date

    Args:
        today: Calendar day of this evaluation
        last_checked: Day of the previous evaluation, if any
        total_spent_cents: Spend since the first of the current month
        budget_cents: Monthly budget amount
        days_completed: Current counter value
        points_awarded: One-shot bonus latch

    Returns:
        StreakOutcome; `changed=False` means the caller must persist nothing
    """
    is_under_budget = total_spent_cents <= budget_cents

    if last_checked is not None and last_checked >= today:
        return StreakOutcome(changed=False, days_completed=days_completed, is_under_budget=is_under_budget)

    if is_under_budget and not points_awarded:
        new_days = min(days_completed + 1, STREAK_TARGET_DAYS)
        return StreakOutcome(
            changed=True,
            days_completed=new_days,
            is_under_budget=True,
            bonus_awarded=new_days >= STREAK_TARGET_DAYS,
        )

    if not is_under_budget and days_completed > 0:
        return StreakOutcome(changed=True, days_completed=0, is_under_budget=False, was_reset=True)

    return StreakOutcome(changed=True, days_completed=days_completed, is_under_budget=is_under_budget)


def days_remaining(days_completed: int) -> int:
    return max(STREAK_TARGET_DAYS - days_completed, 0)
