import os
from pathlib import Path

from .constants import (
    DATA_DIR,
    DB_FILE_NAME,
    DISCOUNT_DEBOUNCE_MS,
    AUTOSAVE_DELAY_MS,
)

BASE_DIR = Path(__file__).resolve().parent
DATA_PATH = Path(os.environ.get("CLINIC_POS_DATA_DIR", BASE_DIR / DATA_DIR))
DB_PATH = DATA_PATH / DB_FILE_NAME

LOG_LEVEL = os.environ.get("CLINIC_POS_LOG_LEVEL", "INFO").upper()


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


DISCOUNT_DEBOUNCE = _int_env("CLINIC_POS_DISCOUNT_DEBOUNCE_MS", DISCOUNT_DEBOUNCE_MS)
AUTOSAVE_DELAY = _int_env("CLINIC_POS_AUTOSAVE_MS", AUTOSAVE_DELAY_MS)
