"""Budget tracker exceptions"""


class BudgetError(Exception):
    """Base exception for the budget package"""

    pass


class ValidationError(BudgetError, ValueError):
    """User input rejected before any state change"""

    pass
