import io
import json
import os
import tempfile
import unittest
from datetime import date, datetime
from unittest.mock import patch

from budget import config
from budget.cli import BudgetShell
from budget.exceptions import ValidationError
from budget.goals import GoalBook, evaluate_goal, progress_status
from budget.logic import PeriodCursor, TransactionStore, breakdown, next_due, paginate
from budget.models import (
    BalanceAboveGoal, CategoryBudgetGoal, CategoryTotal, ExpenseBelowGoal, Period, PeriodSummary,
    PeriodTargetGoal, SavingsFixedGoal, SavingsPercentageGoal, Transaction,
)
from budget.storage import (
    FileBackend, MemoryBackend, Storage, goal_from_dict, goal_to_dict, migrate_goals,
    transaction_from_dict,
)
from budget.validation import (
    build_goal, parse_amount, parse_date, parse_rec_interval, validate_goal, validate_transaction,
)


MARCH = Period(3, 2024)


def make_transaction(amount, t_type, t_date, category="", desc="Item", rec_interval=None):
    return Transaction(amount=amount, t_type=t_type, t_date=t_date, desc=desc,
                       category=category, rec_interval=rec_interval)


class TestModels(unittest.TestCase):
    def test_period_navigation(self):
        """Test month arithmetic across year boundaries"""
        self.assertEqual(Period(1, 2024).previous(), Period(12, 2023))
        self.assertEqual(Period(12, 2023).next(), Period(1, 2024))
        self.assertEqual(Period(6, 2024).next(), Period(7, 2024))

    def test_period_bounds(self):
        """Test period start/end and leap years"""
        feb = Period(2, 2024)
        self.assertEqual(feb.start, date(2024, 2, 1))
        self.assertEqual(feb.end, date(2024, 2, 29))
        self.assertEqual(feb.days, 29)
        self.assertEqual(Period(2, 2023).days, 28)
        self.assertTrue(feb.contains(date(2024, 2, 29)))
        self.assertFalse(feb.contains(date(2023, 2, 15)))
        self.assertEqual(Period.of(date(2024, 3, 5)), MARCH)
        self.assertEqual(str(MARCH), "March 2024")

    def test_period_invalid_month(self):
        with self.assertRaises(ValueError):
            Period(13, 2024)

    def test_goal_scope(self):
        """Non-recurring goals only apply to the month they were created in"""
        scoped = BalanceAboveGoal(amount=100, created=datetime(2024, 3, 10, 9, 0))
        recurring = BalanceAboveGoal(amount=100, recurring=True, created=datetime(2024, 3, 10))

        self.assertTrue(scoped.applies_to(MARCH))
        self.assertFalse(scoped.applies_to(Period(4, 2024)))
        self.assertTrue(recurring.applies_to(Period(4, 2024)))

    def test_transaction_recurrence_flag(self):
        self.assertFalse(make_transaction(10, "expense", date(2024, 1, 1)).is_rec)
        self.assertTrue(make_transaction(10, "expense", date(2024, 1, 1), rec_interval="monthly").is_rec)


class TestValidation(unittest.TestCase):
    def test_parse_amount(self):
        self.assertEqual(parse_amount("12.5"), 12.5)
        self.assertEqual(parse_amount(3), 3.0)
        for bad in ("abc", "0", "-5", "nan", "inf", None):
            with self.assertRaises(ValidationError):
                parse_amount(bad)

    def test_validation_error_is_value_error(self):
        self.assertTrue(issubclass(ValidationError, ValueError))

    def test_validate_transaction(self):
        """Test description, type and interval checks"""
        t = make_transaction("20", "expense", date(2024, 1, 1), category=" food ", desc="  Lunch ")
        validate_transaction(t)
        self.assertEqual(t.amount, 20.0)
        self.assertEqual(t.desc, "Lunch")
        self.assertEqual(t.category, "food")

        with self.assertRaises(ValidationError):
            validate_transaction(make_transaction(20, "expense", date(2024, 1, 1), desc="   "))
        with self.assertRaises(ValidationError):
            validate_transaction(make_transaction(20, "transfer", date(2024, 1, 1)))

    def test_parse_rec_interval(self):
        self.assertIsNone(parse_rec_interval(None))
        self.assertEqual(parse_rec_interval("Monthly"), "monthly")
        self.assertEqual(parse_rec_interval("30"), 30)
        self.assertEqual(parse_rec_interval(7), 7)
        for bad in ("fortnightly", 0, -3, True):
            with self.assertRaises(ValidationError):
                parse_rec_interval(bad)

    def test_parse_date(self):
        """Test dates, datetimes and ISO strings"""
        self.assertEqual(parse_date(date(2024, 3, 5)), date(2024, 3, 5))
        self.assertEqual(parse_date(datetime(2024, 3, 5, 14, 30)), date(2024, 3, 5))
        self.assertEqual(parse_date("2024-03-05"), date(2024, 3, 5))
        self.assertEqual(parse_date("2024-03-05T14:30:00.000Z"), date(2024, 3, 5))
        for bad in ("yesterday", "2024-02-30", 20240305, None):
            with self.assertRaises(ValidationError):
                parse_date(bad)

    def test_validate_transaction_date(self):
        t = validate_transaction(make_transaction(5, "expense", "2024-03-05"))
        self.assertEqual(t.t_date, date(2024, 3, 5))
        self.assertIsNone(validate_transaction(make_transaction(5, "expense", None)).t_date)
        with self.assertRaises(ValidationError):
            validate_transaction(make_transaction(5, "expense", 42))

    def test_build_goal_variants(self):
        goal = build_goal("category-budget", amount="150", category="food")
        self.assertIsInstance(goal, CategoryBudgetGoal)
        self.assertEqual(goal.amount, 150.0)

        goal = build_goal("savings-percentage", percentage=100)
        self.assertIsInstance(goal, SavingsPercentageGoal)

        goal = build_goal("period-target", days="30", difference="-200")
        self.assertIsInstance(goal, PeriodTargetGoal)
        self.assertEqual(goal.days, 30)
        self.assertEqual(goal.difference, -200.0)

    def test_validate_goal(self):
        created = datetime(2024, 3, 1)
        goal = validate_goal(CategoryBudgetGoal(amount="80", category=" food ", id="g1", created=created))
        self.assertEqual(goal, CategoryBudgetGoal(amount=80.0, category="food", id="g1", created=created))
        with self.assertRaises(ValidationError):
            validate_goal(BalanceAboveGoal(amount=-1))

    def test_build_goal_rejects_bad_input(self):
        bad_inputs = [
            ("category-budget", {"amount": 100}),
            ("category-budget", {"amount": 100, "category": "  "}),
            ("savings-percentage", {"percentage": 0}),
            ("savings-percentage", {"percentage": 101}),
            ("savings-percentage", {"percentage": "lots"}),
            ("expense-below", {"amount": 0}),
            ("balance-above", {"amount": "-1"}),
            ("period-target", {"days": 0, "difference": 100}),
            ("period-target", {"days": 10, "difference": 0}),
            ("monthly-miracle", {"amount": 10}),
        ]
        for kind, kwargs in bad_inputs:
            with self.assertRaises(ValidationError, msg=f"{kind} {kwargs}"):
                build_goal(kind, **kwargs)


class TestStorage(unittest.TestCase):
    def setUp(self):
        self.backend = MemoryBackend()
        self.storage = Storage(self.backend)

    def test_set_and_get(self):
        self.assertTrue(self.storage.set("appSettings", {"theme": "dark", "since": date(2024, 1, 1)}))
        self.assertEqual(self.storage.get("appSettings"), {"theme": "dark", "since": "2024-01-01"})

    def test_get_missing_returns_default(self):
        self.assertIsNone(self.storage.get("transactions"))
        self.assertEqual(self.storage.get("transactions", []), [])

    def test_get_corrupt_returns_default(self):
        self.backend.data["transactions"] = "{not json"
        self.assertEqual(self.storage.get("transactions", []), [])

    def test_read_failure_returns_default(self):
        class BrokenBackend(MemoryBackend):
            def read(self, key):
                raise OSError("disk gone")

        self.assertEqual(Storage(BrokenBackend()).get("transactions", []), [])

    def test_quota_exceeded(self):
        storage = Storage(MemoryBackend(quota=20))
        self.assertFalse(storage.set("transactions", ["x" * 50]))

    def test_is_available(self):
        self.assertTrue(self.storage.is_available())
        self.assertNotIn("__storage_test__", self.backend.data)
        self.assertFalse(Storage(MemoryBackend(quota=0)).is_available())

    def test_clear_all(self):
        self.storage.set("transactions", [])
        self.storage.set("budgetGoal", [])
        self.storage.set("appSettings", {})
        self.storage.clear_all()
        self.assertEqual(self.backend.data, {})

    def test_file_backend(self):
        """Test one JSON file per key"""
        with tempfile.TemporaryDirectory() as tmp:
            storage = Storage(FileBackend(os.path.join(tmp, "saves")))
            self.assertIsNone(storage.get("transactions"))
            self.assertTrue(storage.set("transactions", [{"id": "a"}]))
            self.assertTrue(os.path.exists(os.path.join(tmp, "saves", "transactions.json")))
            self.assertEqual(storage.get("transactions"), [{"id": "a"}])
            self.assertTrue(storage.remove("transactions"))
            self.assertIsNone(storage.get("transactions"))

    def test_transaction_from_browser_format(self):
        """Records written by the browser app use numeric ids and ISO timestamps"""
        t = transaction_from_dict({
            "id": 123456,
            "description": "Coffee",
            "amount": "4.50",
            "type": "expense",
            "category": "food",
            "date": "2024-03-05T14:30:00.000Z",
            "recurrence": "one-time",
            "recurrenceInterval": 0,
        })
        self.assertEqual(t.id, "123456")
        self.assertEqual(t.amount, 4.5)
        self.assertEqual(t.t_date, date(2024, 3, 5))
        self.assertIsNone(t.rec_interval)

    def test_transaction_from_dict_rejects_bad_records(self):
        with self.assertRaises(KeyError):
            transaction_from_dict({"id": "1", "type": "expense", "date": "2024-03-05"})
        with self.assertRaises(ValueError):
            transaction_from_dict({"id": "1", "amount": -1, "type": "expense", "date": "2024-03-05"})
        with self.assertRaises(TypeError):
            transaction_from_dict(["not", "a", "dict"])

    def test_goal_dict_round_trip(self):
        goal = CategoryBudgetGoal(id="g1", amount=120.0, category="food", created=datetime(2024, 3, 1, 8, 30))
        data = goal_to_dict(goal)
        self.assertEqual(data["type"], "category-budget")
        self.assertEqual(data["createdAt"], "2024-03-01T08:30:00")
        self.assertEqual(goal_from_dict(json.loads(json.dumps(data))), goal)

    def test_migrate_legacy_single_goal(self):
        """Test a single old-style goal object becomes a one-element list"""
        goals = migrate_goals({"type": "positive", "amount": 500, "active": True})
        self.assertEqual(len(goals), 1)
        self.assertIsInstance(goals[0], BalanceAboveGoal)
        self.assertTrue(goals[0].recurring)
        self.assertIsNotNone(goals[0].id)

        goals = migrate_goals({"type": "period", "amount": 100, "period": "custom",
                               "days": 30, "difference": 200, "active": True})
        self.assertIsInstance(goals[0], PeriodTargetGoal)
        self.assertEqual(goals[0].days, 30)

        self.assertEqual(migrate_goals({"type": "negative", "amount": 100, "active": False}), [])
        self.assertEqual(migrate_goals({"type": None, "amount": 0, "active": False}), [])

    def test_migrate_goal_list(self):
        goals = migrate_goals([
            {"id": "a", "type": "expense-below", "amount": 300, "recurring": True},
            {"id": "b", "type": "category-budget", "amount": 50},
            "garbage",
            {"id": "c", "type": "negative", "amount": 80},
        ])
        self.assertEqual([g.id for g in goals], ["a", "c"])
        self.assertIsInstance(goals[1], ExpenseBelowGoal)

    def test_migrate_malformed(self):
        self.assertEqual(migrate_goals(None), [])
        self.assertEqual(migrate_goals("garbage"), [])
        self.assertEqual(migrate_goals(42), [])


class TestTransactionStore(unittest.TestCase):
    def setUp(self):
        self.backend = MemoryBackend()
        self.storage = Storage(self.backend)
        self.store = TransactionStore(self.storage, page_size=10)

    def _stored(self):
        return json.loads(self.backend.data["transactions"])

    def _add_march(self):
        income = self.store.add(make_transaction(500, "income", date(2024, 3, 1), "salary", "Paycheck"))
        lunch = self.store.add(make_transaction(200, "expense", date(2024, 3, 5), "food", "Groceries"))
        dinner = self.store.add(make_transaction(50, "expense", date(2024, 3, 10), "food", "Dinner out"))
        return income, lunch, dinner

    def test_add_assigns_id_and_persists(self):
        record = self.store.add(make_transaction(25, "expense", date(2024, 3, 2), "food", "Lunch"))
        self.assertIsNotNone(record.id)
        self.assertEqual(len(self.store), 1)
        self.assertIn(record.id, self.store)
        self.assertEqual(self._stored()[0]["id"], record.id)
        self.assertEqual(self._stored()[0]["date"], "2024-03-02")

    def test_add_defaults_date_to_today(self):
        record = self.store.add(Transaction(amount=10, t_type="income", desc="Gift"))
        self.assertEqual(record.t_date, date.today())

    def test_add_generates_unique_ids(self):
        ids = {self.store.add(make_transaction(1, "expense", date(2024, 3, 1))).id for _ in range(20)}
        self.assertEqual(len(ids), 20)

    def test_add_rejects_invalid(self):
        """Invalid input leaves state untouched"""
        with self.assertRaises(ValidationError):
            self.store.add(make_transaction(0, "expense", date(2024, 3, 1)))
        with self.assertRaises(ValidationError):
            self.store.add(make_transaction(10, "expense", date(2024, 3, 1), desc=""))
        self.assertEqual(len(self.store), 0)
        self.assertNotIn("transactions", self.backend.data)

    def test_add_rejects_invalid_date(self):
        with self.assertRaises(ValidationError):
            self.store.add(make_transaction(5, "expense", "not a date"))
        with self.assertRaises(ValidationError):
            self.store.add(make_transaction(5, "expense", object()))
        self.assertEqual(len(self.store), 0)
        self.assertNotIn("transactions", self.backend.data)

    def test_add_accepts_iso_date_string(self):
        record = self.store.add(make_transaction(5, "expense", "2024-03-05"))
        self.assertEqual(record.t_date, date(2024, 3, 5))
        self.assertEqual(self._stored()[0]["date"], "2024-03-05")

    def test_march_totals(self):
        """Test income/expense totals and breakdown for one month"""
        self._add_march()
        self.store.add(make_transaction(999, "expense", date(2024, 4, 1), "food"))

        self.assertEqual(self.store.total_income(MARCH), 500)
        self.assertEqual(self.store.total_expenses(MARCH), 250)
        summary = self.store.summary(MARCH)
        self.assertEqual(summary.balance, 250)
        self.assertEqual(summary.breakdown, [CategoryTotal("food", 250, 100.0)])

    def test_totals_empty_period(self):
        self.assertEqual(self.store.total_income(MARCH), 0)
        self.assertEqual(self.store.total_expenses(MARCH), 0)
        self.assertEqual(self.store.breakdown(MARCH), [])

    def test_query_filters(self):
        """Test period, type, category and text filters"""
        income, groceries, dinner = self._add_march()
        self.store.add(make_transaction(30, "expense", date(2024, 2, 28), "food", "Groceries"))

        self.assertEqual(self.store.query(MARCH), [income, groceries, dinner])
        self.assertEqual(self.store.query(MARCH, t_type="expense"), [groceries, dinner])
        self.assertEqual(self.store.query(MARCH, category="salary"), [income])
        self.assertEqual(self.store.query(MARCH, search_text="  GROC "), [groceries])
        self.assertEqual(self.store.query(MARCH, search_text="FOOD"), [groceries, dinner])
        self.assertEqual(self.store.query(MARCH, search_text="food", t_type="income"), [])

    def test_query_includes_added_once(self):
        record = self.store.add(make_transaction(12, "expense", date(2024, 3, 31), "food"))
        self.assertEqual(self.store.query(MARCH).count(record), 1)
        self.assertEqual(self.store.query(Period(4, 2024)), [])

    def test_update_merges_fields(self):
        _, groceries, _ = self._add_march()
        updated = self.store.update(groceries.id, amount="210.5", category="household")

        self.assertEqual(updated.id, groceries.id)
        self.assertEqual(updated.amount, 210.5)
        self.assertEqual(updated.category, "household")
        self.assertEqual(updated.desc, "Groceries")
        self.assertEqual(self._stored()[1]["amount"], 210.5)
        self.assertEqual(self.store.all()[1], updated)

    def test_update_keeps_identifier(self):
        _, groceries, _ = self._add_march()
        updated = self.store.update(groceries.id, id="hijacked", desc="Market")
        self.assertEqual(updated.id, groceries.id)
        self.assertEqual(updated.desc, "Market")

    def test_update_unknown_id_is_noop(self):
        self._add_march()
        before = self.backend.data["transactions"]
        with self.assertLogs("budget.logic", level="WARNING"):
            self.assertIsNone(self.store.update("missing", amount=5))
        self.assertEqual(self.backend.data["transactions"], before)

    def test_update_invalid_leaves_record(self):
        _, groceries, _ = self._add_march()
        with self.assertRaises(ValidationError):
            self.store.update(groceries.id, amount=-5)
        self.assertEqual(self.store.get(groceries.id).amount, 200)
        with self.assertRaises(ValidationError):
            self.store.update(groceries.id, t_date="someday")
        self.assertEqual(self.store.get(groceries.id).t_date, date(2024, 3, 5))

    def test_add_then_remove_restores_collection(self):
        self._add_march()
        before = self.store.all()
        extra = self.store.add(make_transaction(75, "expense", date(2024, 3, 15), "fun"))
        self.assertTrue(self.store.remove(extra.id))
        self.assertEqual(self.store.all(), before)

    def test_remove_missing_still_persists(self):
        self.assertFalse(self.store.remove("missing"))
        self.assertEqual(self._stored(), [])

    def test_load_round_trip(self):
        self._add_march()
        reloaded = TransactionStore(self.storage)
        reloaded.load()
        self.assertEqual(reloaded.all(), self.store.all())

    def test_load_corrupt_data(self):
        """Corrupt or wrongly shaped data loads as an empty collection"""
        for payload in ("{oops", '{"a": 1}', "42"):
            self.backend.data["transactions"] = payload
            self.store.load()
            self.assertEqual(len(self.store), 0)

    def test_load_skips_invalid_records(self):
        self.backend.data["transactions"] = json.dumps([
            {"id": "1", "description": "Rent", "amount": 900, "type": "expense",
             "category": "housing", "date": "2024-03-01"},
            {"id": "2", "description": "Broken", "type": "expense", "date": "2024-03-01"},
            "nonsense",
        ])
        self.store.load()
        self.assertEqual([t.id for t in self.store.all()], ["1"])

    def test_save_failure_keeps_memory_state(self):
        """A rejected write degrades to in-memory mode"""
        store = TransactionStore(Storage(MemoryBackend(quota=10)))
        events = []
        store.subscribe(events.append)

        record = store.add(make_transaction(40, "expense", date(2024, 3, 3), "food"))
        self.assertEqual(store.all(), [record])
        self.assertFalse(store.save_ok)
        self.assertEqual(events, ["save_failed", "changed"])

    def test_subscribe_and_unsubscribe(self):
        events = []
        unsubscribe = self.store.subscribe(events.append)
        self.store.add(make_transaction(5, "income", date(2024, 3, 1)))
        unsubscribe()
        self.store.add(make_transaction(5, "income", date(2024, 3, 1)))
        self.assertEqual(events, ["changed"])

    def test_categories(self):
        self._add_march()
        self.store.add(make_transaction(5, "expense", date(2024, 3, 1)))
        self.assertEqual(self.store.categories(), ["salary", "food"])

    def test_store_paginate_uses_page_size(self):
        for i in range(12):
            self.store.add(make_transaction(i + 1, "expense", date(2024, 3, 1)))
        page = self.store.paginate(self.store.query(MARCH), 2)
        self.assertEqual(len(page.items), 2)
        self.assertEqual(page.total_pages, 2)

    def test_store_paginate_explicit_page_size(self):
        for i in range(3):
            self.store.add(make_transaction(i + 1, "expense", date(2024, 3, 1)))
        self.assertEqual(len(self.store.paginate(self.store.all(), 1, page_size=2).items), 2)
        with self.assertRaises(ValueError):
            self.store.paginate(self.store.all(), 1, page_size=0)


class TestAggregation(unittest.TestCase):
    def test_paginate(self):
        items = list(range(25))
        page = paginate(items, 3, 10)
        self.assertEqual(page.items, list(range(20, 25)))
        self.assertEqual(page.total_pages, 3)
        self.assertEqual(page.total_items, 25)
        self.assertTrue(page.has_previous)
        self.assertFalse(page.has_next)

        first = paginate(items, 0, 10)
        self.assertEqual(first.page, 1)
        self.assertEqual(first.items, list(range(10)))
        self.assertFalse(first.has_previous)
        self.assertTrue(first.has_next)

        self.assertEqual(paginate(items, 9, 10).items, [])

    def test_paginate_empty(self):
        page = paginate([], 1, 10)
        self.assertEqual(page.items, [])
        self.assertEqual(page.total_pages, 1)
        self.assertFalse(page.has_next)
        self.assertFalse(page.has_previous)

    def test_paginate_never_exceeds_page_size(self):
        for count in (0, 1, 9, 10, 11, 31):
            for size in (1, 3, 10):
                page = paginate(list(range(count)), 1, size)
                self.assertLessEqual(len(page.items), size)
                self.assertEqual(page.total_pages, max(1, -(-count // size)))

    def test_paginate_rejects_bad_page_size(self):
        with self.assertRaises(ValueError):
            paginate([1, 2], 1, 0)

    def test_breakdown_ordering(self):
        """Ties keep first-seen order and missing categories fall into 'other'"""
        transactions = [
            make_transaction(50, "expense", date(2024, 3, 1), "transport"),
            make_transaction(1000, "income", date(2024, 3, 1), "salary"),
            make_transaction(30, "expense", date(2024, 3, 2), ""),
            make_transaction(50, "expense", date(2024, 3, 3), "food"),
            make_transaction(70, "expense", date(2024, 3, 4), "housing"),
            make_transaction(500, "expense", date(2024, 4, 1), "housing"),
        ]
        entries = breakdown(transactions, MARCH)

        self.assertEqual([e.category for e in entries], ["housing", "transport", "food", "other"])
        self.assertAlmostEqual(sum(e.amount for e in entries), 200)
        self.assertAlmostEqual(sum(e.percentage for e in entries), 100)
        self.assertAlmostEqual(entries[0].percentage, 35)
        amounts = [e.amount for e in entries]
        self.assertEqual(amounts, sorted(amounts, reverse=True))


class TestNextDue(unittest.TestCase):
    def test_not_recurring(self):
        self.assertIsNone(next_due(make_transaction(10, "expense", date(2024, 1, 1)), date(2024, 2, 1)))

    def test_future_start(self):
        t = make_transaction(10, "expense", date(2024, 5, 1), rec_interval="monthly")
        self.assertEqual(next_due(t, date(2024, 3, 1)), date(2024, 5, 1))

    def test_day_intervals(self):
        t = make_transaction(10, "expense", date(2024, 1, 1), rec_interval=10)
        self.assertEqual(next_due(t, date(2024, 1, 15)), date(2024, 1, 21))

        t = make_transaction(10, "expense", date(2024, 1, 1), rec_interval="weekly")
        self.assertEqual(next_due(t, date(2024, 1, 1)), date(2024, 1, 8))

        t = make_transaction(10, "expense", date(2024, 1, 1), rec_interval="daily")
        self.assertEqual(next_due(t, date(2024, 1, 31)), date(2024, 2, 1))

    def test_monthly_clamps_to_month_end(self):
        t = make_transaction(10, "expense", date(2024, 1, 31), rec_interval="monthly")
        self.assertEqual(next_due(t, date(2024, 2, 10)), date(2024, 2, 29))
        self.assertEqual(next_due(t, date(2024, 3, 5)), date(2024, 3, 31))

    def test_yearly_leap_day(self):
        t = make_transaction(100, "income", date(2020, 2, 29), rec_interval="yearly")
        self.assertEqual(next_due(t, date(2021, 3, 1)), date(2022, 2, 28))
        self.assertEqual(next_due(t, date(2023, 3, 1)), date(2024, 2, 29))


class TestPeriodCursor(unittest.TestCase):
    def test_navigation_notifies(self):
        cursor = PeriodCursor(Period(1, 2024))
        events = []
        cursor.subscribe(events.append)

        self.assertEqual(cursor.previous(), Period(12, 2023))
        self.assertEqual(cursor.next(), Period(1, 2024))
        self.assertEqual(events, ["period_changed", "period_changed"])

    def test_defaults_to_today(self):
        self.assertEqual(PeriodCursor().period, Period.of(date.today()))


class TestGoalEvaluator(unittest.TestCase):
    def summary(self, income=500.0, expenses=250.0, breakdown=None):
        if breakdown is None:
            breakdown = [CategoryTotal("food", expenses, 100.0)] if expenses else []
        return PeriodSummary(MARCH, income, expenses, breakdown)

    def test_expense_below_exceeded(self):
        progress = evaluate_goal(ExpenseBelowGoal(amount=200), self.summary())
        self.assertEqual(progress.current_amount, 250)
        self.assertEqual(progress.target_amount, 200)
        self.assertEqual(progress.percentage, 100)
        self.assertFalse(progress.on_track)
        self.assertEqual(progress.status, "danger")
        self.assertIn("over limit", progress.message)

    def test_category_budget_unknown_category(self):
        progress = evaluate_goal(CategoryBudgetGoal(amount=100, category="rent"), self.summary())
        self.assertEqual(progress.current_amount, 0)
        self.assertEqual(progress.percentage, 0)
        self.assertTrue(progress.on_track)
        self.assertEqual(progress.status, "success")

    def test_category_budget_known_category(self):
        progress = evaluate_goal(CategoryBudgetGoal(amount=500, category="food"), self.summary())
        self.assertEqual(progress.current_amount, 250)
        self.assertEqual(progress.percentage, 50)
        self.assertEqual(progress.status, "warning")

    def test_savings_percentage(self):
        progress = evaluate_goal(SavingsPercentageGoal(percentage=20), self.summary(1000, 700, []))
        self.assertEqual(progress.current_amount, 300)
        self.assertEqual(progress.target_amount, 200)
        self.assertEqual(progress.percentage, 100)
        self.assertTrue(progress.on_track)

    def test_savings_percentage_partial(self):
        progress = evaluate_goal(SavingsPercentageGoal(percentage=40), self.summary(1000, 800, []))
        self.assertAlmostEqual(progress.percentage, 50)
        self.assertFalse(progress.on_track)

    def test_savings_percentage_without_income(self):
        progress = evaluate_goal(SavingsPercentageGoal(percentage=20), self.summary(0, 100, []))
        self.assertEqual(progress.current_amount, 0)
        self.assertEqual(progress.percentage, 0)
        self.assertFalse(progress.on_track)

    def test_savings_fixed(self):
        progress = evaluate_goal(SavingsFixedGoal(amount=100), self.summary())
        self.assertEqual(progress.current_amount, 250)
        self.assertEqual(progress.percentage, 100)
        self.assertTrue(progress.on_track)

        progress = evaluate_goal(SavingsFixedGoal(amount=100), self.summary(100, 300))
        self.assertEqual(progress.current_amount, 0)
        self.assertFalse(progress.on_track)

    def test_balance_above(self):
        progress = evaluate_goal(BalanceAboveGoal(amount=500), self.summary())
        self.assertEqual(progress.current_amount, 250)
        self.assertEqual(progress.percentage, 50)
        self.assertFalse(progress.on_track)
        self.assertEqual(progress.status, "warning")
        self.assertIn("Need $250.00 more", progress.message)

    def test_negative_balance_clamps_to_zero(self):
        progress = evaluate_goal(BalanceAboveGoal(amount=500), self.summary(100, 300))
        self.assertEqual(progress.current_amount, -200)
        self.assertEqual(progress.percentage, 0)
        self.assertEqual(progress.status, "danger")

    def test_zero_target_is_zero_percent(self):
        progress = evaluate_goal(BalanceAboveGoal(amount=0), self.summary())
        self.assertEqual(progress.percentage, 0)

    def test_period_target_projection(self):
        """250 over 10 days projects to 750 after 30 days"""
        goal = PeriodTargetGoal(days=30, difference=1000)
        progress = evaluate_goal(goal, self.summary(), today=date(2024, 3, 10))
        self.assertEqual(progress.current_amount, 250)
        self.assertEqual(progress.projected_amount, 750)
        self.assertEqual(progress.percentage, 75)
        self.assertFalse(progress.on_track)
        self.assertEqual(progress.title, "Goal: Increase by $1,000.00 in 30 days")

    def test_period_target_negative(self):
        goal = PeriodTargetGoal(days=30, difference=-1000)
        progress = evaluate_goal(goal, self.summary(), today=date(2024, 3, 10))
        self.assertEqual(progress.target_amount, -1000)
        self.assertEqual(progress.percentage, 75)
        self.assertTrue(progress.on_track)
        self.assertEqual(progress.title, "Goal: Decrease by $1,000.00 in 30 days")

    def test_period_target_before_period_start(self):
        goal = PeriodTargetGoal(days=30, difference=100)
        progress = evaluate_goal(goal, self.summary(), today=date(2024, 2, 20))
        self.assertEqual(progress.projected_amount, 250)
        self.assertTrue(progress.on_track)

    def test_evaluator_is_pure(self):
        goal = PeriodTargetGoal(days=14, difference=300)
        summary = self.summary()
        first = evaluate_goal(goal, summary, today=date(2024, 3, 7))
        second = evaluate_goal(goal, summary, today=date(2024, 3, 7))
        self.assertEqual(first, second)

    def test_balance_consistent_with_totals(self):
        store = TransactionStore(Storage(MemoryBackend()))
        store.add(make_transaction(500, "income", date(2024, 3, 1), "salary"))
        store.add(make_transaction(120, "expense", date(2024, 3, 2), "food"))
        summary = store.summary(MARCH)
        self.assertEqual(summary.balance, store.total_income(MARCH) - store.total_expenses(MARCH))
        self.assertEqual(evaluate_goal(BalanceAboveGoal(amount=1000), summary).current_amount, 380)

    def test_progress_status_thresholds(self):
        self.assertEqual(progress_status(29), "danger")
        self.assertEqual(progress_status(30), "warning")
        self.assertEqual(progress_status(70), "success")
        self.assertEqual(progress_status(49, lower_is_better=True), "success")
        self.assertEqual(progress_status(50, lower_is_better=True), "warning")
        self.assertEqual(progress_status(80, lower_is_better=True), "danger")


class TestGoalBook(unittest.TestCase):
    def setUp(self):
        self.backend = MemoryBackend()
        self.storage = Storage(self.backend)
        self.book = GoalBook(self.storage)

    def test_add_assigns_id_and_created(self):
        goal = self.book.add(ExpenseBelowGoal(amount=300))
        self.assertIsNotNone(goal.id)
        self.assertIsNotNone(goal.created)
        stored = json.loads(self.backend.data["budgetGoal"])
        self.assertEqual(stored[0]["type"], "expense-below")
        self.assertEqual(stored[0]["amount"], 300)

    def test_for_period(self):
        scoped = self.book.add(ExpenseBelowGoal(amount=300, created=datetime(2024, 3, 1)))
        recurring = self.book.add(SavingsFixedGoal(amount=50, recurring=True, created=datetime(2024, 1, 1)))

        self.assertEqual(self.book.for_period(MARCH), [scoped, recurring])
        self.assertEqual(self.book.for_period(Period(4, 2024)), [recurring])

    def test_update_preserves_identity(self):
        goal = self.book.add(ExpenseBelowGoal(amount=300, created=datetime(2024, 3, 1)))
        updated = self.book.update(goal.id, CategoryBudgetGoal(amount=80, category="food"))
        self.assertEqual(updated.id, goal.id)
        self.assertEqual(updated.created, datetime(2024, 3, 1))
        self.assertEqual(self.book.get(goal.id), updated)
        self.assertIsNone(self.book.update("missing", ExpenseBelowGoal(amount=1)))

    def test_add_rejects_invalid_goal(self):
        """A goal that could not be reloaded is refused up front"""
        for goal in (ExpenseBelowGoal(amount=-5), SavingsPercentageGoal(percentage=150),
                     CategoryBudgetGoal(amount=50, category=""), PeriodTargetGoal(days=0, difference=10)):
            with self.assertRaises(ValidationError, msg=repr(goal)):
                self.book.add(goal)
        self.assertEqual(len(self.book), 0)
        self.assertNotIn("budgetGoal", self.backend.data)

        reloaded = GoalBook(self.storage)
        reloaded.load()
        self.assertEqual(len(reloaded), 0)

    def test_update_rejects_invalid_goal(self):
        goal = self.book.add(ExpenseBelowGoal(amount=300))
        with self.assertRaises(ValidationError):
            self.book.update(goal.id, ExpenseBelowGoal(amount=0))
        self.assertEqual(self.book.get(goal.id), goal)

    def test_remove(self):
        goal = self.book.add(ExpenseBelowGoal(amount=300))
        self.assertTrue(self.book.remove(goal.id))
        self.assertFalse(self.book.remove(goal.id))
        self.assertEqual(len(self.book), 0)
        self.assertEqual(json.loads(self.backend.data["budgetGoal"]), [])

    def test_load_legacy_goal(self):
        self.backend.data["budgetGoal"] = json.dumps({"type": "negative", "amount": 400, "active": True})
        self.book.load()
        self.assertEqual(len(self.book), 1)
        self.assertIsInstance(self.book.all()[0], ExpenseBelowGoal)

    def test_load_round_trip(self):
        self.book.add(CategoryBudgetGoal(amount=80, category="food", created=datetime(2024, 3, 1)))
        self.book.add(PeriodTargetGoal(days=30, difference=-50, recurring=True))
        reloaded = GoalBook(self.storage)
        reloaded.load()
        self.assertEqual(reloaded.all(), self.book.all())

    def test_evaluate(self):
        self.book.add(ExpenseBelowGoal(amount=200, created=datetime(2024, 3, 1)))
        self.book.add(ExpenseBelowGoal(amount=200, created=datetime(2024, 5, 1)))
        results = self.book.evaluate(PeriodSummary(MARCH, 500, 250))
        self.assertEqual(len(results), 1)
        self.assertFalse(results[0].on_track)


class TestConfig(unittest.TestCase):
    def test_env_int(self):
        with patch.dict(os.environ, {"BUDGET_PAGE_SIZE": "25"}):
            self.assertEqual(config._env_int("BUDGET_PAGE_SIZE", 10), 25)
        with patch.dict(os.environ, {"BUDGET_PAGE_SIZE": "abc"}):
            self.assertEqual(config._env_int("BUDGET_PAGE_SIZE", 10), 10)
        with patch.dict(os.environ, {"BUDGET_PAGE_SIZE": "-2"}):
            self.assertEqual(config._env_int("BUDGET_PAGE_SIZE", 10), 10)


class TestBudgetShell(unittest.TestCase):
    def setUp(self):
        self.storage = Storage(MemoryBackend())
        self.out = io.StringIO()
        self.store = TransactionStore(self.storage)
        self.goals = GoalBook(self.storage)
        self.shell = BudgetShell(self.store, self.goals, PeriodCursor(MARCH), stdout=self.out)

    def run_cmd(self, line):
        self.out.seek(0)
        self.out.truncate()
        self.shell.onecmd(line)
        return self.out.getvalue()

    def test_add_and_summary(self):
        output = self.run_cmd("add 500 income salary 2024-03-01 --desc Paycheck")
        self.assertIn("✓ Added income of $500.00", output)
        self.run_cmd("add 250 expense food 2024-03-05 --desc Groceries")

        output = self.run_cmd("summary")
        self.assertIn("$500.00", output)
        self.assertIn("$250.00", output)

        output = self.run_cmd("categories")
        self.assertIn("food", output)
        self.assertIn("100.0%", output)

    def test_add_invalid(self):
        self.assertIn("Invalid input", self.run_cmd("add 0 expense food --desc Nothing"))
        self.assertIn("Invalid input", self.run_cmd("add 10 expense food"))
        self.assertIn("Invalid input", self.run_cmd("add 10 gift --desc Bad type"))
        self.assertEqual(len(self.store), 0)

    def test_list_edit_delete(self):
        self.run_cmd("add 12 expense food 2024-03-03 --desc Lunch")
        record = self.store.all()[0]

        output = self.run_cmd("list --search lunch")
        self.assertIn(record.id[:8], output)
        self.assertIn("Page 1/1", output)

        self.assertIn("✓ Updated", self.run_cmd(f"edit {record.id[:8]} --amount 15 --desc Big lunch"))
        self.assertEqual(self.store.get(record.id).amount, 15)
        self.assertEqual(self.store.get(record.id).desc, "Big lunch")

        self.assertIn("✓ Updated", self.run_cmd(f"edit {record.id[:8]} --recur Monthly"))
        self.assertEqual(self.store.get(record.id).rec_interval, "monthly")
        self.assertIn("Invalid input", self.run_cmd(f"edit {record.id[:8]} --recur fortnightly"))
        self.assertIn("✓ Updated", self.run_cmd(f"edit {record.id[:8]} --recur none"))
        self.assertIsNone(self.store.get(record.id).rec_interval)

        self.assertIn("✓ Deleted", self.run_cmd(f"delete {record.id[:8]}"))
        self.assertEqual(len(self.store), 0)
        self.assertIn("Transaction not found", self.run_cmd("delete abc"))

    def test_goal_status(self):
        self.run_cmd("add 250 expense food 2024-03-05 --desc Groceries")
        self.assertIn("✓ Goal set", self.run_cmd("goal add expense-below 200 --recurring"))
        output = self.run_cmd("goal status")
        self.assertIn("Keep Expenses Below $200.00", output)
        self.assertIn("Off track", output)
        self.assertIn("Invalid input", self.run_cmd("goal add category-budget 100"))

    def test_navigation(self):
        self.assertIn("February 2024", self.run_cmd("prev"))
        self.assertIn("March 2024", self.run_cmd("next"))
        self.assertIn("January 2025", self.run_cmd("month 2025-01"))
        self.assertIn("YYYY-MM", self.run_cmd("month soon"))

    def test_save_failure_warning(self):
        storage = Storage(MemoryBackend(quota=5))
        out = io.StringIO()
        shell = BudgetShell(TransactionStore(storage), GoalBook(storage), PeriodCursor(MARCH), stdout=out)
        shell.onecmd("add 10 expense food 2024-03-01 --desc Snack")
        self.assertIn("could not be saved", out.getvalue())


if __name__ == "__main__":
    unittest.main()
