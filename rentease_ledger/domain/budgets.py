"""Budget configuration rules"""

from typing import List, Sequence

from rentease_ledger.domain.exceptions import ValidationError
from rentease_ledger.domain.models import BudgetPeriod, CategoryAllocation

ALLOCATION_TOLERANCE = 0.1


def parse_period(value: str) -> BudgetPeriod:
    try:
        return BudgetPeriod(value)
    except ValueError:
        raise ValidationError('Invalid period. Must be "week", "month", or "all"') from None


def validate_budget_amount(amount_cents: int) -> None:
    if amount_cents < 0:
        raise ValidationError("Invalid amount: budget cannot be negative")


def validate_allocations(allocations: Sequence[CategoryAllocation]) -> List[CategoryAllocation]:
    """
    Category percentages must total 100% (within 0.1) when any are given.

    An empty list is valid and clears the category breakdown.
    """
    allocations = list(allocations)
    if not allocations:
        return allocations

    for allocation in allocations:
        if not allocation.category:
            raise ValidationError("Category allocation requires a category name")
        if allocation.percentage < 0 or allocation.amount_cents < 0:
            raise ValidationError(f"Category allocation for {allocation.category} cannot be negative")

    categories = [a.category for a in allocations]
    if len(set(categories)) != len(categories):
        raise ValidationError("Category allocations must not repeat a category")

    total_percentage = sum(a.percentage for a in allocations)
    if abs(total_percentage - 100) > ALLOCATION_TOLERANCE:
        raise ValidationError("Category allocations must total 100%")

    return allocations
