"""Input validation for transactions and goals.

Everything here raises ``ValidationError`` (a ``ValueError``) with a message
fit to show the user, and never touches stored state.
"""

from __future__ import annotations
import math
from datetime import date, datetime
from typing import Any, Optional

from dateutil.parser import isoparse

from budget.exceptions import ValidationError
from budget.models import (
    CADENCES, GOAL_TYPES, TRANSACTION_TYPES, CategoryBudgetGoal, Goal, PeriodTargetGoal,
    SavingsPercentageGoal, Transaction,
)


def parse_amount(raw: Any, what: str = "amount") -> float:
    """Parse a strictly positive money amount, rounded to cents."""
    try:
        amount = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Please enter a valid {what}") from None
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError(f"Please enter a valid {what} greater than zero")
    return round(amount, 2)


def parse_rec_interval(raw: Any) -> int | str | None:
    """Accept None, a positive day count, or a named cadence."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, str):
        value = raw.strip().lower()
        if value in CADENCES:
            return value
        if not value.isdigit():
            raise ValidationError(f"Invalid interval, use a number of days or: {'/'.join(CADENCES)}")
        raw = int(value)
    if isinstance(raw, bool) or not isinstance(raw, int) or raw <= 0:
        raise ValidationError("Please enter a valid recurrence interval")
    return raw


def parse_date(raw: Any) -> date:
    """Accept a date, a datetime (its date part) or an ISO 8601 string."""
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        try:
            return isoparse(raw.strip()).date()
        except (ValueError, OverflowError):
            pass
    raise ValidationError("Please enter a valid date")


def validate_transaction(transaction: Transaction) -> Transaction:
    """Check a transaction, normalizing its fields in place.

    A missing date is left as ``None`` for the caller to fill in.
    """
    if not transaction.desc or not transaction.desc.strip():
        raise ValidationError("Please enter a description")
    transaction.amount = parse_amount(transaction.amount)
    if transaction.t_type not in TRANSACTION_TYPES:
        raise ValidationError("Type must be 'income' or 'expense'")
    if transaction.t_date is not None:
        transaction.t_date = parse_date(transaction.t_date)
    transaction.rec_interval = parse_rec_interval(transaction.rec_interval)
    transaction.desc = transaction.desc.strip()
    transaction.category = (transaction.category or "").strip()
    return transaction


def build_goal(
        kind: str,
        *,
        amount: Any = None,
        percentage: Any = None,
        category: Optional[str] = None,
        days: Any = None,
        difference: Any = None,
        recurring: bool = False,
        created: Optional[datetime] = None,
        goal_id: Optional[str] = None,
) -> Goal:
    """Build the goal variant for ``kind`` from loose form input."""
    cls = GOAL_TYPES.get(kind)
    if cls is None:
        raise ValidationError(f"Unknown goal type: {kind}")

    common = {"id": goal_id, "recurring": bool(recurring), "created": created}

    if cls is SavingsPercentageGoal:
        try:
            pct = float(percentage)
        except (TypeError, ValueError):
            raise ValidationError("Please enter a valid percentage") from None
        if not math.isfinite(pct) or not 0 < pct <= 100:
            raise ValidationError("Percentage must be greater than 0 and at most 100")
        return SavingsPercentageGoal(percentage=pct, **common)

    if cls is PeriodTargetGoal:
        try:
            n_days = int(days)
        except (TypeError, ValueError):
            raise ValidationError("Please enter a valid number of days for your goal period") from None
        if n_days <= 0:
            raise ValidationError("Please enter a valid number of days greater than zero")
        try:
            diff = float(difference)
        except (TypeError, ValueError):
            raise ValidationError("Please enter a valid target difference amount") from None
        if not math.isfinite(diff) or diff == 0:
            raise ValidationError("Target difference must be a non-zero amount")
        return PeriodTargetGoal(days=n_days, difference=round(diff, 2), **common)

    value = parse_amount(amount, "goal amount")
    if cls is CategoryBudgetGoal:
        if not category or not str(category).strip():
            raise ValidationError("Please select a category for this budget")
        return CategoryBudgetGoal(amount=value, category=str(category).strip(), **common)
    return cls(amount=value, **common)


def validate_goal(goal: Goal) -> Goal:
    """Re-check an already constructed goal; returns a normalized copy."""
    return build_goal(
        goal.kind,
        amount=getattr(goal, "amount", None),
        percentage=getattr(goal, "percentage", None),
        category=getattr(goal, "category", None),
        days=getattr(goal, "days", None),
        difference=getattr(goal, "difference", None),
        recurring=goal.recurring,
        created=goal.created,
        goal_id=goal.id,
    )
