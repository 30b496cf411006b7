"""Date manipulation utilities"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware current time; the default clock for services"""
    return datetime.now(timezone.utc)


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def add_months(from_date: date, months: int) -> date:
    """
    Add calendar months, clamping the day to the target month's length.

    Jan 31 + 1 month -> Feb 28 (or 29 in leap years).
    """
    month_index = from_date.month - 1 + months
    year = from_date.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(from_date.day, last_day))


def period_start(period: str, today: date) -> Optional[date]:
    """First day included in a reporting period; None means no lower bound"""
    if period == "week":
        return today - timedelta(days=7)
    if period == "all":
        return None
    return start_of_month(today)
