import os
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


DATA_DIR = Path(os.getenv("BUDGET_DATA_DIR", "saves"))
PAGE_SIZE = _env_int("BUDGET_PAGE_SIZE", 10)
LOG_LEVEL = os.getenv("BUDGET_LOG_LEVEL", "INFO")
