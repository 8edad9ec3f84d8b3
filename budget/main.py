from budget import config
from budget.cli import BudgetShell
from budget.goals import GoalBook
from budget.logging_setup import configure_logging, get_logger
from budget.logic import PeriodCursor, TransactionStore
from budget.storage import FileBackend, Storage

logger = get_logger(__name__)


def main():
    configure_logging()

    storage = Storage(FileBackend(config.DATA_DIR))
    if not storage.is_available():
        logger.warning("Storage at %s is unavailable; changes will not be saved", config.DATA_DIR)

    store = TransactionStore(storage)
    goals = GoalBook(storage)
    store.load()
    goals.load()

    BudgetShell(store, goals, PeriodCursor()).cmdloop()


if __name__ == "__main__":
    main()
