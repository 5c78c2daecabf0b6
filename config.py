import os
from pathlib import Path

from dotenv import load_dotenv

ENV_FILE = Path(__file__).resolve().parent / ".env"
load_dotenv(dotenv_path=ENV_FILE)


def _get_bool(env_var, default):
    val = os.getenv(env_var)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


def _get_float(env_var, default):
    try:
        return float(os.getenv(env_var, str(default)))
    except ValueError:
        return default


DB_URL = os.getenv("TOKO_DB_URL", "sqlite:///./toko.db")
FLUSH_DELAY = _get_float("TOKO_FLUSH_DELAY", 1.0)  # detik
KEY_PREFIX = os.getenv("TOKO_KEY_PREFIX", "inventory_")
TIMEZONE = os.getenv("TOKO_TIMEZONE", "Asia/Jakarta")
LOG_LEVEL = os.getenv("TOKO_LOG_LEVEL", "INFO").upper()
LOG_TRANSACTION_STOCK = _get_bool("TOKO_LOG_TRANSACTION_STOCK", True)

BACKUP_VERSION = "2.0.0"
SUPPORTED_BACKUP_VERSIONS = ("2.0.0",)
