import math
import uuid
from dataclasses import fields, replace
from datetime import date, timedelta
from typing import Callable, Iterable, Optional

from dateutil.relativedelta import relativedelta

from budget import config
from budget.logging_setup import get_logger
from budget.models import (
    OTHER_CATEGORY, CategoryTotal, Page, Period, PeriodSummary, Transaction, TransactionType,
)
from budget.storage import STORAGE_KEYS, Storage, transaction_from_dict, transaction_to_dict
from budget.validation import validate_transaction

logger = get_logger(__name__)

Listener = Callable[[str], None]

_EDITABLE_FIELDS = {f.name for f in fields(Transaction)} - {"id"}


class Observable:
    """Minimal callback list; listeners receive an event name."""

    def __init__(self):
        self._listeners: list[Listener] = []

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, event: str) -> None:
        for callback in list(self._listeners):
            callback(event)


def paginate(items: list, page: int, page_size: int = config.PAGE_SIZE) -> Page:
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    page = max(1, page)
    total_items = len(items)
    total_pages = max(1, math.ceil(total_items / page_size))
    start = (page - 1) * page_size
    return Page(
        items=items[start:start + page_size],
        page=page,
        total_pages=total_pages,
        total_items=total_items,
        has_previous=page > 1,
        has_next=page < total_pages,
    )


def breakdown(transactions: Iterable[Transaction], period: Period) -> list[CategoryTotal]:
    """Expense totals per category for ``period``, largest first."""
    totals: dict[str, float] = {}
    for t in transactions:
        if t.t_type != "expense" or not period.contains(t.t_date):
            continue
        category = t.category or OTHER_CATEGORY
        totals[category] = totals.get(category, 0.0) + t.amount

    grand_total = sum(totals.values())
    entries = [
        CategoryTotal(
            category=category,
            amount=round(amount, 2),
            percentage=amount / grand_total * 100 if grand_total > 0 else 0.0,
        )
        for category, amount in totals.items()
    ]
    # sorted() is stable, so ties keep first-seen order
    return sorted(entries, key=lambda e: e.amount, reverse=True)


def next_due(transaction: Transaction, after: date) -> Optional[date]:
    """Next occurrence of a recurring transaction strictly after ``after``."""
    interval = transaction.rec_interval
    if interval is None:
        return None

    start = transaction.t_date
    if start > after:
        return start

    if isinstance(interval, int) or interval in ("daily", "weekly"):
        step = {"daily": 1, "weekly": 7}.get(interval, interval)
        periods = (after - start).days // step + 1
        return start + timedelta(days=periods * step)

    months = 12 if interval == "yearly" else 1
    n = ((after.year - start.year) * 12 + after.month - start.month) // months
    # relativedelta clamps to month end (Jan 31 -> Feb 28/29)
    candidate = start + relativedelta(months=n * months)
    while candidate <= after:
        n += 1
        candidate = start + relativedelta(months=n * months)
    return candidate


class TransactionStore(Observable):
    """In-memory transaction list mirrored to storage on every change."""

    def __init__(self, storage: Optional[Storage] = None, page_size: int = config.PAGE_SIZE):
        super().__init__()
        self.storage = storage if storage is not None else Storage()
        self.page_size = page_size
        self.save_ok = True
        self._transactions: list[Transaction] = []

    def __len__(self):
        return len(self._transactions)

    def __contains__(self, transaction_id):
        return self.get(transaction_id) is not None

    # ===== PERSISTENCE =====
    def load(self) -> None:
        raw = self.storage.get(STORAGE_KEYS["TRANSACTIONS"], [])
        if not isinstance(raw, list):
            logger.error("Stored transactions are not a list, starting empty")
            raw = []

        loaded = []
        for t_data in raw:
            try:
                loaded.append(transaction_from_dict(t_data))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping invalid transaction %s: %s",
                               t_data.get("id") if isinstance(t_data, dict) else t_data, e)

        self._transactions = loaded
        logger.info("Loaded %d transactions", len(loaded))
        self._notify("changed")

    def _persist(self) -> bool:
        data = [transaction_to_dict(t) for t in self._transactions]
        self.save_ok = self.storage.set(STORAGE_KEYS["TRANSACTIONS"], data)
        if not self.save_ok:
            logger.warning("Changes kept in memory only; storage rejected the write")
            self._notify("save_failed")
        return self.save_ok

    # ===== MUTATIONS =====
    def add(self, transaction: Transaction) -> Transaction:
        record = validate_transaction(replace(transaction))
        record.id = uuid.uuid4().hex
        if record.t_date is None:
            record.t_date = date.today()

        self._transactions.append(record)
        self._persist()
        self._notify("changed")
        return record

    def update(self, transaction_id: str, **changes) -> Optional[Transaction]:
        index = self._index(transaction_id)
        if index is None:
            logger.warning("Cannot update transaction %s: not found", transaction_id)
            return None

        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            logger.warning("Ignoring unknown transaction fields: %s", ", ".join(sorted(unknown)))
        updates = {k: v for k, v in changes.items() if k in _EDITABLE_FIELDS}

        record = validate_transaction(replace(self._transactions[index], **updates))
        if record.t_date is None:
            record.t_date = self._transactions[index].t_date
        self._transactions[index] = record
        self._persist()
        self._notify("changed")
        return record

    def remove(self, transaction_id: str) -> bool:
        count = len(self._transactions)
        self._transactions = [t for t in self._transactions if t.id != transaction_id]
        removed = len(self._transactions) != count
        if not removed:
            logger.warning("Cannot delete transaction %s: not found", transaction_id)

        self._persist()
        self._notify("changed")
        return removed

    # ===== QUERIES =====
    def _index(self, transaction_id: str) -> Optional[int]:
        for i, t in enumerate(self._transactions):
            if t.id == transaction_id:
                return i
        return None

    def get(self, transaction_id: str) -> Optional[Transaction]:
        index = self._index(transaction_id)
        return self._transactions[index] if index is not None else None

    def all(self) -> list[Transaction]:
        return list(self._transactions)

    def categories(self) -> list[str]:
        seen = dict.fromkeys(t.category for t in self._transactions if t.category)
        return list(seen)

    def query(
            self,
            period: Period,
            search_text: str = "",
            t_type: TransactionType | str = "all",
            category: str = "all",
    ) -> list[Transaction]:
        search = search_text.strip().lower()
        return [
            t for t in self._transactions
            if period.contains(t.t_date)
            and (t_type == "all" or t.t_type == t_type)
            and (category == "all" or t.category == category)
            and (not search or search in t.desc.lower() or search in t.category.lower())
        ]

    def paginate(self, items: list[Transaction], page: int = 1, page_size: Optional[int] = None) -> Page:
        return paginate(items, page, page_size if page_size is not None else self.page_size)

    def _total(self, period: Period, t_type: TransactionType) -> float:
        return round(sum(
            t.amount for t in self._transactions
            if t.t_type == t_type and period.contains(t.t_date)
        ), 2)

    def total_income(self, period: Period) -> float:
        return self._total(period, "income")

    def total_expenses(self, period: Period) -> float:
        return self._total(period, "expense")

    def breakdown(self, period: Period) -> list[CategoryTotal]:
        return breakdown(self._transactions, period)

    def summary(self, period: Period) -> PeriodSummary:
        return PeriodSummary(
            period=period,
            total_income=self.total_income(period),
            total_expenses=self.total_expenses(period),
            breakdown=self.breakdown(period),
        )


class PeriodCursor(Observable):
    """The period currently being viewed."""

    def __init__(self, period: Optional[Period] = None):
        super().__init__()
        self.period = period or Period.current()

    def set(self, period: Period) -> Period:
        self.period = period
        self._notify("period_changed")
        return period

    def previous(self) -> Period:
        return self.set(self.period.previous())

    def next(self) -> Period:
        return self.set(self.period.next())
