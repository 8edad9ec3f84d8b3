import json
import uuid
from dataclasses import asdict
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

from dateutil.parser import isoparse

from budget import config
from budget.exceptions import ValidationError
from budget.logging_setup import get_logger
from budget.models import Goal, Transaction
from budget.validation import build_goal, parse_date, validate_transaction

logger = get_logger(__name__)

STORAGE_KEYS = {
    "TRANSACTIONS": "transactions",
    "BUDGET_GOAL": "budgetGoal",
    "SETTINGS": "appSettings",
}

LEGACY_GOAL_TYPES = {
    "positive": "balance-above",
    "negative": "expense-below",
    "period": "period-target",
}

_PROBE_KEY = "__storage_test__"


class EnhancedJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        return super().default(obj)


# ===== BACKENDS =====
class FileBackend:
    """One ``<key>.json`` file per key under ``directory``."""

    def __init__(self, directory: Path | str = config.DATA_DIR):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, text: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(text, encoding="utf-8")

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class MemoryBackend:
    """Dict-backed store; ``quota`` caps the total stored characters."""

    def __init__(self, quota: Optional[int] = None):
        self.data: dict[str, str] = {}
        self.quota = quota

    def read(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def write(self, key: str, text: str) -> None:
        if self.quota is not None:
            used = sum(len(v) for k, v in self.data.items() if k != key)
            if used + len(text) > self.quota:
                raise OSError(f"storage quota exceeded writing '{key}'")
        self.data[key] = text

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


# ===== ADAPTER =====
class Storage:
    """JSON get/set over a backend. Never raises on backend or codec failure."""

    def __init__(self, backend=None):
        self.backend = backend if backend is not None else FileBackend()

    def get(self, key: str, default: Any = None) -> Any:
        try:
            text = self.backend.read(key)
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to load data (%s): %s", key, e)
            return default
        if text is None:
            return default
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("Corrupt data under '%s', using default: %s", key, e)
            return default

    def set(self, key: str, value: Any) -> bool:
        try:
            text = json.dumps(value, cls=EnhancedJSONEncoder, indent=2)
            self.backend.write(key, text)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save data (%s): %s", key, e)
            return False
        return True

    def remove(self, key: str) -> bool:
        try:
            self.backend.delete(key)
        except OSError as e:
            logger.error("Failed to remove data (%s): %s", key, e)
            return False
        return True

    def is_available(self) -> bool:
        try:
            self.backend.write(_PROBE_KEY, json.dumps(_PROBE_KEY))
            self.backend.delete(_PROBE_KEY)
        except OSError:
            return False
        return True

    def clear_all(self) -> None:
        for key in STORAGE_KEYS.values():
            self.remove(key)


# ===== CODEC =====
def transaction_to_dict(t: Transaction) -> dict:
    return {
        "id": t.id,
        "description": t.desc,
        "amount": t.amount,
        "type": t.t_type,
        "category": t.category,
        "date": t.t_date.isoformat() if t.t_date else None,
        "recurring": t.is_rec,
        "recurrenceInterval": t.rec_interval,
    }


def transaction_from_dict(data: dict) -> Transaction:
    """Rebuild a stored transaction; raises ``ValueError`` on bad records."""
    if not isinstance(data, dict):
        raise TypeError(f"expected an object, got {type(data).__name__}")
    recurring = data.get("recurring") or data.get("recurrence") == "recurring"
    transaction = Transaction(
        id=str(data["id"]),
        amount=data["amount"],
        t_type=data["type"],
        t_date=parse_date(data["date"]),
        desc=data.get("description") or "",
        category=data.get("category") or "",
        rec_interval=data.get("recurrenceInterval") if recurring else None,
    )
    return validate_transaction(transaction)


def goal_to_dict(goal: Goal) -> dict:
    data = asdict(goal)
    created = data.pop("created")
    return {
        "id": data.pop("id"),
        "type": goal.kind,
        "recurring": data.pop("recurring"),
        "createdAt": created.isoformat() if created else None,
        **data,
    }


def goal_from_dict(data: dict) -> Goal:
    created = data.get("createdAt")
    return build_goal(
        data["type"],
        amount=data.get("amount"),
        percentage=data.get("percentage"),
        category=data.get("category"),
        days=data.get("days"),
        difference=data.get("difference"),
        recurring=bool(data.get("recurring", False)),
        created=isoparse(created) if created else None,
        goal_id=str(data["id"]) if data.get("id") is not None else None,
    )


def migrate_goals(raw: Any) -> list[Goal]:
    """Normalize whatever is stored under ``budgetGoal`` into a goal list.

    Older saves hold a single goal object using the ``positive``/``negative``/
    ``period`` type names and an ``active`` flag instead of a list.
    """
    if raw is None:
        return []
    if isinstance(raw, dict):
        if raw.get("active") is False:
            return []
        legacy = dict(raw)
        if "createdAt" not in legacy:
            legacy["recurring"] = True
        raw = [legacy]
    if not isinstance(raw, list):
        logger.warning("Ignoring malformed goal data of type %s", type(raw).__name__)
        return []

    goals = []
    for item in raw:
        if not isinstance(item, dict):
            logger.warning("Skipping malformed goal entry: %r", item)
            continue
        item = dict(item)
        item["type"] = LEGACY_GOAL_TYPES.get(item.get("type"), item.get("type"))
        try:
            goal = goal_from_dict(item)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping invalid goal %s: %s", item.get("id"), e)
            continue
        if goal.id is None:
            goal.id = uuid.uuid4().hex
        goals.append(goal)
    return goals
