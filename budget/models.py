from __future__ import annotations
import calendar
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import ClassVar, Literal, Optional, List

from dateutil.relativedelta import relativedelta


TransactionType = Literal["income", "expense"]
TRANSACTION_TYPES = ("income", "expense")

CADENCES = ("daily", "weekly", "monthly", "yearly")

CATEGORIES = (
    "salary", "food", "housing", "transportation", "utilities",
    "entertainment", "healthcare", "shopping", "education", "other",
)
OTHER_CATEGORY = "other"


@dataclass
class Transaction:
    amount: float
    t_type: TransactionType
    t_date: Optional[date] = None
    desc: str = ""
    category: str = ""
    rec_interval: int | str | None = None
    id: Optional[str] = None

    @property
    def is_rec(self) -> bool:
        return self.rec_interval is not None


@dataclass(frozen=True)
class Period:
    month: int
    year: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be in 1..12, got {self.month}")

    @classmethod
    def of(cls, d: date) -> Period:
        return cls(d.month, d.year)

    @classmethod
    def current(cls) -> Period:
        return cls.of(date.today())

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def days(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def end(self) -> date:
        return date(self.year, self.month, self.days)

    def contains(self, d: date) -> bool:
        return d.year == self.year and d.month == self.month

    def previous(self) -> Period:
        return Period.of(self.start - relativedelta(months=1))

    def next(self) -> Period:
        return Period.of(self.start + relativedelta(months=1))

    def __str__(self):
        return f"{calendar.month_name[self.month]} {self.year}"


# ===== GOALS =====
@dataclass(kw_only=True)
class Goal:
    kind: ClassVar[str] = ""
    lower_is_better: ClassVar[bool] = False

    id: Optional[str] = None
    recurring: bool = False
    created: Optional[datetime] = None

    def applies_to(self, period: Period) -> bool:
        """Recurring goals apply everywhere, others only to their creation month."""
        if self.recurring or self.created is None:
            return True
        return period.contains(self.created.date())


@dataclass(kw_only=True)
class BalanceAboveGoal(Goal):
    kind: ClassVar[str] = "balance-above"
    amount: float


@dataclass(kw_only=True)
class ExpenseBelowGoal(Goal):
    kind: ClassVar[str] = "expense-below"
    lower_is_better: ClassVar[bool] = True
    amount: float


@dataclass(kw_only=True)
class CategoryBudgetGoal(Goal):
    kind: ClassVar[str] = "category-budget"
    lower_is_better: ClassVar[bool] = True
    amount: float
    category: str


@dataclass(kw_only=True)
class SavingsPercentageGoal(Goal):
    kind: ClassVar[str] = "savings-percentage"
    percentage: float


@dataclass(kw_only=True)
class SavingsFixedGoal(Goal):
    kind: ClassVar[str] = "savings-fixed"
    amount: float


@dataclass(kw_only=True)
class PeriodTargetGoal(Goal):
    kind: ClassVar[str] = "period-target"
    days: int
    difference: float


GOAL_TYPES: dict[str, type[Goal]] = {
    cls.kind: cls
    for cls in (
        BalanceAboveGoal, ExpenseBelowGoal, CategoryBudgetGoal,
        SavingsPercentageGoal, SavingsFixedGoal, PeriodTargetGoal,
    )
}


# ===== RESULTS =====
@dataclass
class CategoryTotal:
    category: str
    amount: float
    percentage: float = 0.0


@dataclass
class PeriodSummary:
    period: Period
    total_income: float = 0.0
    total_expenses: float = 0.0
    breakdown: List[CategoryTotal] = field(default_factory=list)

    @property
    def balance(self) -> float:
        return self.total_income - self.total_expenses

    def category_spend(self, category: str) -> float:
        for entry in self.breakdown:
            if entry.category == category:
                return entry.amount
        return 0.0


@dataclass
class Page:
    items: List[Transaction]
    page: int
    total_pages: int
    total_items: int
    has_previous: bool
    has_next: bool


@dataclass
class GoalProgress:
    goal_id: Optional[str]
    kind: str
    title: str
    current_amount: float
    target_amount: float
    percentage: float
    on_track: bool
    status: str
    message: str
    projected_amount: Optional[float] = None
