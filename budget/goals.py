"""Budget goal evaluation and the persisted goal collection.

``evaluate_goal`` is a pure function of a goal and a ``PeriodSummary``; every
goal variant reports a percentage where 100 means the target is reached.
"""

import uuid
from dataclasses import replace
from datetime import date, datetime
from typing import Optional

from budget.logging_setup import get_logger
from budget.logic import Observable
from budget.models import (
    BalanceAboveGoal, CategoryBudgetGoal, ExpenseBelowGoal, Goal, GoalProgress, Period,
    PeriodSummary, PeriodTargetGoal, SavingsFixedGoal, SavingsPercentageGoal,
)
from budget.storage import STORAGE_KEYS, Storage, goal_to_dict, migrate_goals
from budget.validation import validate_goal

logger = get_logger(__name__)


def _money(amount: float) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return min(high, max(low, value))


def _ratio_percentage(current: float, target: float) -> float:
    if target <= 0:
        return 0.0
    return _clamp(current / target * 100)


def progress_status(percentage: float, lower_is_better: bool = False) -> str:
    """Colour band for a progress bar."""
    if lower_is_better:
        if percentage < 50:
            return "success"
        if percentage < 80:
            return "warning"
        return "danger"
    if percentage < 30:
        return "danger"
    if percentage < 70:
        return "warning"
    return "success"


def goal_title(goal: Goal) -> str:
    if isinstance(goal, BalanceAboveGoal):
        return f"Goal: Achieve Balance Above {_money(goal.amount)}"
    if isinstance(goal, ExpenseBelowGoal):
        return f"Goal: Keep Expenses Below {_money(goal.amount)}"
    if isinstance(goal, CategoryBudgetGoal):
        return f"Goal: Spend at most {_money(goal.amount)} on {goal.category}"
    if isinstance(goal, SavingsPercentageGoal):
        return f"Goal: Save {goal.percentage:g}% of income"
    if isinstance(goal, SavingsFixedGoal):
        return f"Goal: Save {_money(goal.amount)}"
    if isinstance(goal, PeriodTargetGoal):
        direction = "Increase" if goal.difference >= 0 else "Decrease"
        return f"Goal: {direction} by {_money(abs(goal.difference))} in {goal.days} days"
    raise TypeError(f"Unsupported goal type: {type(goal).__name__}")


def _period_target(goal: PeriodTargetGoal, summary: PeriodSummary, today: date):
    balance = summary.balance
    days_passed = (today - summary.period.start).days + 1
    days_remaining = max(0, goal.days - days_passed)
    daily_rate = balance / days_passed if days_passed > 0 else 0.0
    projected = balance + daily_rate * days_remaining

    target = abs(goal.difference)
    if goal.difference >= 0:
        on_track = projected >= target
    else:
        on_track = projected <= target
    return balance, projected, _ratio_percentage(projected, target), on_track


def evaluate_goal(goal: Goal, summary: PeriodSummary, today: Optional[date] = None) -> GoalProgress:
    income = summary.total_income
    expenses = summary.total_expenses
    balance = summary.balance
    savings = max(0.0, income - expenses)
    projected = None

    if isinstance(goal, BalanceAboveGoal):
        current, target = balance, goal.amount
        percentage = _ratio_percentage(current, target)
        on_track = balance >= goal.amount
    elif isinstance(goal, ExpenseBelowGoal):
        current, target = expenses, goal.amount
        percentage = _ratio_percentage(current, target)
        on_track = expenses <= goal.amount
    elif isinstance(goal, CategoryBudgetGoal):
        current, target = summary.category_spend(goal.category), goal.amount
        percentage = _ratio_percentage(current, target)
        on_track = current <= goal.amount
    elif isinstance(goal, SavingsPercentageGoal):
        current, target = savings, income * goal.percentage / 100
        rate = savings / income if income > 0 else 0.0
        target_rate = goal.percentage / 100
        percentage = _ratio_percentage(rate, target_rate)
        on_track = rate >= target_rate
    elif isinstance(goal, SavingsFixedGoal):
        current, target = savings, goal.amount
        percentage = _ratio_percentage(current, target)
        on_track = savings >= goal.amount
    elif isinstance(goal, PeriodTargetGoal):
        target = goal.difference
        current, projected, percentage, on_track = _period_target(goal, summary, today or date.today())
    else:
        raise TypeError(f"Unsupported goal type: {type(goal).__name__}")

    lower_is_better = goal.lower_is_better or (
        isinstance(goal, PeriodTargetGoal) and goal.difference < 0
    )
    return GoalProgress(
        goal_id=goal.id,
        kind=goal.kind,
        title=goal_title(goal),
        current_amount=round(current, 2),
        target_amount=round(target, 2),
        percentage=percentage,
        on_track=on_track,
        status=progress_status(percentage, lower_is_better),
        message=_message(goal, on_track, current, target, projected),
        projected_amount=round(projected, 2) if projected is not None else None,
    )


def _message(goal: Goal, on_track: bool, current: float, target: float, projected: Optional[float]) -> str:
    if isinstance(goal, PeriodTargetGoal):
        if on_track:
            return f"On track! Projected balance: {_money(projected)} after {goal.days} days"
        return (f"Off track. Projected balance: {_money(projected)}. "
                f"Target: {_money(abs(target))} after {goal.days} days.")

    if goal.lower_is_better:
        if on_track:
            return f"On track! Spent {_money(current)} of {_money(target)}"
        return f"Off track. Spent {_money(current)}. {_money(current - target)} over limit."

    if on_track:
        return f"On track! Current: {_money(current)}"
    return f"Off track. Current: {_money(current)}. Need {_money(target - current)} more."


class GoalBook(Observable):
    """Ordered goal list persisted under ``budgetGoal``."""

    def __init__(self, storage: Optional[Storage] = None):
        super().__init__()
        self.storage = storage if storage is not None else Storage()
        self.save_ok = True
        self._goals: list[Goal] = []

    def __len__(self):
        return len(self._goals)

    def load(self) -> None:
        self._goals = migrate_goals(self.storage.get(STORAGE_KEYS["BUDGET_GOAL"]))
        logger.info("Loaded %d goals", len(self._goals))
        self._notify("changed")

    def _persist(self) -> bool:
        data = [goal_to_dict(g) for g in self._goals]
        self.save_ok = self.storage.set(STORAGE_KEYS["BUDGET_GOAL"], data)
        if not self.save_ok:
            logger.warning("Goal changes kept in memory only; storage rejected the write")
            self._notify("save_failed")
        return self.save_ok

    def add(self, goal: Goal) -> Goal:
        goal = validate_goal(goal)
        record = replace(goal, id=uuid.uuid4().hex, created=goal.created or datetime.now())
        self._goals.append(record)
        self._persist()
        self._notify("changed")
        return record

    def update(self, goal_id: str, goal: Goal) -> Optional[Goal]:
        for i, existing in enumerate(self._goals):
            if existing.id == goal_id:
                record = replace(validate_goal(goal), id=goal_id, created=existing.created)
                self._goals[i] = record
                self._persist()
                self._notify("changed")
                return record
        logger.warning("Cannot update goal %s: not found", goal_id)
        return None

    def remove(self, goal_id: str) -> bool:
        count = len(self._goals)
        self._goals = [g for g in self._goals if g.id != goal_id]
        removed = len(self._goals) != count
        if not removed:
            logger.warning("Cannot delete goal %s: not found", goal_id)
        self._persist()
        self._notify("changed")
        return removed

    def get(self, goal_id: str) -> Optional[Goal]:
        return next((g for g in self._goals if g.id == goal_id), None)

    def all(self) -> list[Goal]:
        return list(self._goals)

    def for_period(self, period: Period) -> list[Goal]:
        return [g for g in self._goals if g.applies_to(period)]

    def evaluate(self, summary: PeriodSummary, today: Optional[date] = None) -> list[GoalProgress]:
        return [evaluate_goal(g, summary, today) for g in self.for_period(summary.period)]
