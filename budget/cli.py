import cmd
from datetime import date
from typing import Optional

from budget.exceptions import ValidationError
from budget.goals import GoalBook
from budget.logic import PeriodCursor, TransactionStore, next_due
from budget.models import CATEGORIES, Period, Transaction
from budget.validation import build_goal, parse_amount


class BudgetShell(cmd.Cmd):
    prompt = "(budget) "

    def __init__(self, store: TransactionStore, goals: GoalBook, cursor: Optional[PeriodCursor] = None,
                 stdout=None):
        super().__init__(stdout=stdout)
        self.store = store
        self.goals = goals
        self.cursor = cursor or PeriodCursor()
        self.page = 1
        self.filters = {"search_text": "", "t_type": "all", "category": "all"}
        self.intro = "Welcome to Budget Tracker. Type 'help' for commands."

        store.subscribe(self._on_change)
        goals.subscribe(self._on_change)
        self.cursor.subscribe(self._on_period_change)

    def _print(self, text: str = "") -> None:
        self.stdout.write(text + "\n")

    # ===== NOTIFICATIONS =====
    def _on_change(self, event: str) -> None:
        if event == "save_failed":
            self._print("! Changes could not be saved; they will be lost when you exit")

    def _on_period_change(self, event: str) -> None:
        self.page = 1
        self._print(f"Viewing {self.cursor.period}")

    # ===== TRANSACTIONS =====
    def do_add(self, arg):
        """Add a transaction: add <amount> <income|expense> [category] [YYYY-MM-DD] [--recur <days|daily|weekly|monthly|yearly>] --desc <description>"""
        try:
            args = self._parse_add_args(arg)
            record = self.store.add(Transaction(
                amount=args['amount'],
                t_type=args['type'],
                t_date=args['date'],
                desc=args['desc'],
                category=args['category'] or "",
                rec_interval=args['recur_interval'],
            ))
            confirmation = f"✓ Added {record.t_type} of ${record.amount:.2f} [{record.id[:8]}]"
            if record.is_rec:
                confirmation += f" (recurring {record.rec_interval})"
            self._print(confirmation)
        except ValueError as e:
            self._print(f"Invalid input: {e}")

    def do_edit(self, arg):
        """Edit a transaction: edit <ID> [--amount X] [--type income|expense] [--category NAME] [--date YYYY-MM-DD] [--recur R|none] [--desc text]"""
        args = arg.split()
        if not args:
            self._print("Usage: edit <ID> [--amount X] [--type T] [--category C] [--date D] [--recur R|none] [--desc text]")
            return
        transaction_id = self._resolve_id(args[0])
        if transaction_id is None:
            return

        try:
            changes = self._parse_edit_args(args[1:])
            record = self.store.update(transaction_id, **changes)
        except ValueError as e:
            self._print(f"Invalid input: {e}")
            return
        if record is not None:
            self._print(f"✓ Updated transaction {record.id[:8]}")

    def do_delete(self, arg):
        """Delete a transaction: delete <ID>"""
        if not arg.strip():
            self._print("Usage: delete <ID>")
            return
        transaction_id = self._resolve_id(arg.strip())
        if transaction_id is not None and self.store.remove(transaction_id):
            self._print(f"✓ Deleted transaction {transaction_id[:8]}")

    def do_list(self, arg):
        """List transactions for the current month: list [--search TEXT] [--type income|expense|all] [--category NAME|all] [--page N]"""
        args = arg.split()
        i = 0
        try:
            while i < len(args):
                if args[i] == "--search":
                    self.filters['search_text'] = args[i + 1] if i + 1 < len(args) else ""
                    self.page = 1
                elif args[i] == "--type":
                    self.filters['t_type'] = args[i + 1]
                    self.page = 1
                elif args[i] == "--category":
                    self.filters['category'] = args[i + 1]
                    self.page = 1
                elif args[i] == "--page":
                    self.page = int(args[i + 1])
                else:
                    self._print(f"Unknown flag: {args[i]}")
                    return
                i += 2
        except (IndexError, ValueError):
            self._print("Invalid list arguments")
            return

        items = self.store.query(self.cursor.period, **self.filters)
        page = self.store.paginate(items, self.page)
        self.page = page.page

        self._print(f"\n{' ' + str(self.cursor.period) + ' ':-^60}")
        if not page.items:
            self._print("No transactions found")
        today = date.today()
        for t in page.items:
            sign = "+" if t.t_type == "income" else "-"
            line = f"  {t.id[:8]}  {t.t_date}  {t.desc:<20.20} {t.category or '-':<14.14} {sign}${t.amount:,.2f}"
            due = next_due(t, today)
            if due:
                line += f"  (next {due})"
            self._print(line)
        footer = f"Page {page.page}/{page.total_pages} ({page.total_items} transactions)"
        if page.has_previous or page.has_next:
            footer += "  use --page N to browse"
        self._print(footer)

    def do_summary(self, arg):
        """Show income, expenses and balance for the current month"""
        summary = self.store.summary(self.cursor.period)
        self._print(f"\n{' ' + str(summary.period) + ' Summary ':-^50}")
        self._print(f"  Income:   ${summary.total_income:,.2f}")
        self._print(f"  Expenses: ${summary.total_expenses:,.2f}")
        self._print(f"  Balance:  ${summary.balance:,.2f}")

    def do_categories(self, arg):
        """Show expense breakdown by category for the current month"""
        entries = self.store.breakdown(self.cursor.period)
        if not entries:
            self._print("No expense data yet.")
            return
        self._print("\nBy Category:")
        for entry in entries:
            self._print(f"  {entry.category:<16} ${entry.amount:>10,.2f}  {entry.percentage:5.1f}%")

    # ===== GOALS =====
    def do_goal(self, arg):
        """Manage goals: goal <add|list|delete|status> ...
        goal add <type> <amount|percentage> [--category NAME] [--days N] [--recurring]
        Types: balance-above, expense-below, category-budget, savings-percentage, savings-fixed, period-target
        For period-target the value is the signed target difference."""
        args = arg.split()
        if not args:
            self._print(self.do_goal.__doc__)
            return

        if args[0] == "add":
            self._add_goal(args[1:])
        elif args[0] == "list":
            goals = self.goals.all()
            if not goals:
                self._print("No goals set")
            for goal in goals:
                scope = "every month" if goal.recurring or goal.created is None else str(Period.of(goal.created.date()))
                self._print(f"  {goal.id[:8]}  {goal.kind:<20} ({scope})")
        elif args[0] == "delete" and len(args) > 1:
            match = [g.id for g in self.goals.all() if g.id.startswith(args[1])]
            if len(match) == 1 and self.goals.remove(match[0]):
                self._print(f"✓ Deleted goal {match[0][:8]}")
            else:
                self._print(f"Goal not found: {args[1]}")
        elif args[0] == "status":
            results = self.goals.evaluate(self.store.summary(self.cursor.period))
            if not results:
                self._print(f"No goal set for {self.cursor.period}")
            for progress in results:
                self._print(f"\n{progress.title}")
                self._print(f"  {progress.percentage:5.1f}% [{progress.status}] {progress.message}")
        else:
            self._print(self.do_goal.__doc__)

    def _add_goal(self, args):
        if len(args) < 2:
            self._print("Usage: goal add <type> <amount|percentage> [--category NAME] [--days N] [--recurring]")
            return
        kind, value = args[0], args[1]
        options = {"category": None, "days": None, "recurring": False}
        i = 2
        while i < len(args):
            if args[i] == "--recurring":
                options['recurring'] = True
                i += 1
            elif args[i] in ("--category", "--days") and i + 1 < len(args):
                options[args[i][2:]] = args[i + 1]
                i += 2
            else:
                self._print(f"Unknown flag: {args[i]}")
                return
        try:
            goal = build_goal(
                kind,
                amount=value,
                percentage=value,
                difference=value,
                **options,
            )
        except ValidationError as e:
            self._print(f"Invalid input: {e}")
            return
        goal = self.goals.add(goal)
        self._print(f"✓ Goal set: {goal.kind} [{goal.id[:8]}]")

    # ===== NAVIGATION =====
    def do_prev(self, arg):
        """Go to the previous month"""
        self.cursor.previous()

    def do_next(self, arg):
        """Go to the next month"""
        self.cursor.next()

    def do_month(self, arg):
        """Jump to a month: month YYYY-MM"""
        try:
            year, month = (int(p) for p in arg.strip().split("-"))
            self.cursor.set(Period(month, year))
        except ValueError:
            self._print("Month must be in YYYY-MM format")

    # ===== UTILITIES =====
    def do_exit(self, arg):
        """Exit the program"""
        self._print("Goodbye!")
        return True

    do_EOF = do_exit

    # ===== HELPERS =====
    def _resolve_id(self, prefix: str) -> Optional[str]:
        matches = [t.id for t in self.store.all() if t.id.startswith(prefix)]
        if len(matches) != 1:
            self._print("Transaction not found" if not matches else f"Ambiguous ID: {prefix}")
            return None
        return matches[0]

    def _parse_add_args(self, arg):
        """Parse add command arguments"""
        args = arg.split()
        if len(args) < 2:
            raise ValueError("Missing required arguments (amount and type)")

        result = {
            'amount': parse_amount(args[0]),
            'type': args[1].lower(),
            'category': None,
            'date': date.today(),
            'recur_interval': None,
            'desc': ""
        }

        if result['type'] not in ('income', 'expense'):
            raise ValueError("Type must be 'income' or 'expense'")

        i = 2
        while i < len(args):
            if args[i] == '--recur':
                if i + 1 >= len(args):
                    raise ValueError("Missing recurrence interval after --recur")
                result['recur_interval'] = args[i + 1]
                i += 2
            elif args[i] == '--desc':
                result['desc'] = ' '.join(args[i + 1:])
                break
            elif args[i].startswith('--'):
                raise ValueError(f"Unknown flag: {args[i]}")
            else:
                try:
                    result['date'] = date.fromisoformat(args[i])
                    i += 1
                    continue
                except ValueError:
                    pass

                if result['category'] is None:
                    result['category'] = args[i]
                    i += 1
                else:
                    raise ValueError(f"Unexpected argument: {args[i]}")

        if not result['desc']:
            raise ValueError("Please enter a description (--desc ...)")
        if result['category'] and result['category'] not in CATEGORIES:
            self._print(f"Note: '{result['category']}' is not one of: {', '.join(CATEGORIES)}")
        return result

    @staticmethod
    def _parse_edit_args(args):
        changes = {}
        i = 0
        while i < len(args):
            flag = args[i]
            if flag == '--desc':
                changes['desc'] = ' '.join(args[i + 1:])
                break
            if i + 1 >= len(args):
                raise ValueError(f"Missing value after {flag}")
            value = args[i + 1]
            if flag == '--amount':
                changes['amount'] = value
            elif flag == '--type':
                changes['t_type'] = value.lower()
            elif flag == '--category':
                changes['category'] = value
            elif flag == '--date':
                changes['t_date'] = date.fromisoformat(value)
            elif flag == '--recur':
                changes['rec_interval'] = None if value.lower() == "none" else value
            else:
                raise ValueError(f"Unknown flag: {flag}")
            i += 2
        if not changes:
            raise ValueError("Nothing to change")
        return changes
