"""Reward accrual rules - how many points a confirmed event is worth"""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP

# 10% of the paid amount (in major units) for on-time bill payment
ON_TIME_REWARD_RATE = Decimal("0.10")

# One-shot bonus for staying under the monthly budget for 30 evaluated days
STREAK_BONUS_POINTS = 100
STREAK_TARGET_DAYS = 30


def is_payment_on_time(paid_at: datetime, due_date: date) -> bool:
    """A payment is on time when it clears on or before the due date"""
    return paid_at.date() <= due_date


def points_for_bill_payment(amount_cents: int, is_on_time: bool) -> int:
    """
    Points earned for a confirmed bill payment.

    Late payments earn zero; they never deduct points.

    Example:
        $200.00 on time -> 20000 cents * 0.10 / 100 = 20 points
        $12.50 on time  -> 1.25 -> 1 point
        $15.00 on time  -> 1.5  -> 2 points (half rounds up)
    """
    if not is_on_time or amount_cents <= 0:
        return 0

    major_units = Decimal(amount_cents) / 100
    points = (major_units * ON_TIME_REWARD_RATE).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(points)


def ledger_balance(total_earned: int, total_spent: int) -> int:
    """Balance implied by the append-only reward and redemption rows"""
    return total_earned - total_spent
