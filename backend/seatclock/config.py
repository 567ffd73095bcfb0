# backend/seatclock/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/seatclock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///seatclock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Basis points (1000 = 10.00%), used when a store has no tax rate of its own
    DEFAULT_TAX_RATE_BPS = int(os.environ.get("DEFAULT_TAX_RATE_BPS", "1000"))

    # Archival rows are written in groups of at most this many
    ARCHIVE_BATCH_SIZE = min(int(os.environ.get("ARCHIVE_BATCH_SIZE", "50")), 50)

    # POS provider
    POS_SANDBOX = _env_bool("POS_SANDBOX", True)
    POS_TIMEOUT_SECONDS = float(os.environ.get("POS_TIMEOUT_SECONDS", "10"))

    # Optional httpx transport for provider calls (tests inject httpx.MockTransport)
    POS_TRANSPORT = None
