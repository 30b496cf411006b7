"""Budget configuration, expense tracking and the daily under-budget streak"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from rentease_ledger.domain.budgets import parse_period, validate_allocations, validate_budget_amount
from rentease_ledger.domain.exceptions import ValidationError
from rentease_ledger.domain.models import BudgetPeriod, CategoryAllocation, Role
from rentease_ledger.domain.rewards import STREAK_BONUS_POINTS
from rentease_ledger.domain.streak import days_remaining, evaluate_streak
from rentease_ledger.infrastructure.database.models import Budget, Expense, User
from rentease_ledger.infrastructure.database.repositories import BudgetRepository, ExpenseRepository
from rentease_ledger.infrastructure.database.session import transaction
from rentease_ledger.infrastructure.observability.metrics import streak_evaluation_counter
from rentease_ledger.services.access import require_role
from rentease_ledger.services.rewards import RewardService
from rentease_ledger.utils.date_utils import Clock, period_start, start_of_month, utcnow

logger = logging.getLogger(__name__)


@dataclass
class StreakProgress:
    """Budget state after an evaluation, plus what the evaluation did"""

    budget: Optional[Budget]
    total_spent_cents: int = 0
    is_under_budget: bool = True
    days_completed: int = 0
    days_remaining: int = 0
    points_awarded: bool = False
    points_earned: int = 0
    was_reset: bool = False
    message: str = "No budget set"


@dataclass
class CategorySpend:
    category: str
    total_cents: int
    count: int


@dataclass
class ExpenseSummary:
    period: str
    total_cents: int
    count: int
    categories: List[CategorySpend]


class BudgetService:
    """Tenant budgets and the Budget Streak Tracker"""

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.budgets = BudgetRepository(db)
        self.expenses = ExpenseRepository(db)
        self.rewards = RewardService(db, clock=clock)

    def get_budget(self, tenant: User, period: str) -> Optional[Budget]:
        require_role(tenant, Role.TENANT, "Only tenants can view budgets")
        return self.budgets.get(tenant.id, parse_period(period).value)

    def list_budgets(self, tenant: User) -> List[Budget]:
        require_role(tenant, Role.TENANT, "Only tenants can view budgets")
        return self.budgets.list_by_tenant(tenant.id)

    def upsert_budget(
        self,
        tenant: User,
        period: str,
        amount_cents: int,
        allocations: Optional[Sequence[CategoryAllocation]] = None,
    ) -> Budget:
        """
        Create or update the budget for a period.

        Passing allocations replaces the category breakdown; None keeps it.
        """
        require_role(tenant, Role.TENANT, "Only tenants can manage budgets")
        budget_period = parse_period(period)
        validate_budget_amount(amount_cents)
        checked = validate_allocations(allocations) if allocations is not None else None

        with transaction(self.db):
            budget = self.budgets.upsert(tenant.id, budget_period.value, amount_cents, checked)
        return budget

    def evaluate(self, tenant: User) -> StreakProgress:
        """
        Count today toward the monthly under-budget streak.

        Safe to call any number of times a day: the budget row is locked for
        the check, and the write is conditioned on the budget not having been
        checked today, so only one evaluation per day can move the counter.
        The +100 bonus is granted in the same commit as the latch.
        """
        require_role(tenant, Role.TENANT, "Only tenants can check budget progress")
        today = self.clock().date()

        with transaction(self.db):
            budget = self.budgets.get(tenant.id, BudgetPeriod.MONTH.value, for_update=True)
            if budget is None:
                return StreakProgress(budget=None)

            total_spent = self.expenses.total_since(tenant.id, start_of_month(today))
            outcome = evaluate_streak(
                today=today,
                last_checked=budget.last_checked_date,
                total_spent_cents=total_spent,
                budget_cents=budget.amount_cents,
                days_completed=budget.days_completed,
                points_awarded=budget.points_awarded,
            )

            applied = outcome.changed and self.budgets.apply_streak(budget.id, today, outcome)
            points_earned = 0
            if applied and outcome.bonus_awarded:
                points_earned = self.rewards.accrue_streak_bonus(budget)

        result = self._result_label(outcome, applied)
        streak_evaluation_counter.labels(result=result).inc()
        logger.info(
            "Budget streak evaluated",
            extra={
                "tenant_id": str(tenant.id),
                "budget_id": str(budget.id),
                "result": result,
                "days_completed": budget.days_completed,
                "total_spent_cents": total_spent,
            },
        )

        return StreakProgress(
            budget=budget,
            total_spent_cents=total_spent,
            is_under_budget=outcome.is_under_budget,
            days_completed=budget.days_completed,
            days_remaining=days_remaining(budget.days_completed),
            points_awarded=budget.points_awarded,
            points_earned=points_earned,
            was_reset=applied and outcome.was_reset,
            message=self._message(outcome, applied, budget.days_completed),
        )

    @staticmethod
    def _result_label(outcome, applied: bool) -> str:
        if not applied:
            return "already_checked"
        if outcome.bonus_awarded:
            return "bonus"
        if outcome.was_reset:
            return "reset"
        if outcome.is_under_budget and outcome.days_completed > 0:
            return "advanced"
        return "unchanged"

    @staticmethod
    def _message(outcome, applied: bool, days_completed: int) -> str:
        if not applied:
            return f"Already checked today. {days_completed} days under budget."
        if outcome.bonus_awarded:
            return (
                f"Congratulations! You stayed under budget for {days_completed} days "
                f"and earned {STREAK_BONUS_POINTS} points!"
            )
        if outcome.was_reset:
            return "Budget exceeded. Day counter reset."
        if outcome.is_under_budget:
            return f"Great! Day {days_completed} of staying under budget!"
        return "Over budget today."


class ExpenseService:
    """Tenant-recorded spending that feeds the streak tracker"""

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.expenses = ExpenseRepository(db)

    def add_expense(
        self,
        user: User,
        category: str,
        amount_cents: int,
        spent_on: Optional[date] = None,
        description: Optional[str] = None,
    ) -> Expense:
        """Record spending; defaults to today"""
        if not category:
            raise ValidationError("Missing required fields: category")
        if amount_cents <= 0:
            raise ValidationError("Invalid amount")
        spent_on = spent_on or self.clock().date()
        with transaction(self.db):
            expense = self.expenses.create(user.id, category, amount_cents, spent_on, description)
        return expense

    def list_expenses(self, user: User, period: str = "month") -> List[Expense]:
        since = period_start(parse_period(period).value, self.clock().date())
        return self.expenses.list_since(user.id, since)

    def summary(self, user: User, period: str = "month") -> ExpenseSummary:
        period = parse_period(period).value
        since = period_start(period, self.clock().date())
        rows = self.expenses.totals_by_category(user.id, since)
        return ExpenseSummary(
            period=period,
            total_cents=sum(total for _, total, _ in rows),
            count=sum(count for _, _, count in rows),
            categories=[CategorySpend(category=c, total_cents=t, count=n) for c, t, n in rows],
        )

