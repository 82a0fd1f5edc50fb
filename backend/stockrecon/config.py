# backend/stockrecon/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockrecon.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockrecon.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # "reconciliation": sales write pending tracking entries, the sweep deducts later.
    # "legacy": sales deduct FIFO synchronously at sale time.
    RECONCILIATION_MODE = os.environ.get("RECONCILIATION_MODE", "reconciliation")

    # Optimistic transaction retry policy
    TX_RETRY_ATTEMPTS = int(os.environ.get("TX_RETRY_ATTEMPTS", "5"))
    TX_RETRY_BACKOFF = float(os.environ.get("TX_RETRY_BACKOFF", "0.05"))

    # Reconciliation sweep limits
    RECONCILE_DEFAULT_LIMIT = int(os.environ.get("RECONCILE_DEFAULT_LIMIT", "500"))
    RECONCILE_ON_DEMAND_LIMIT = int(os.environ.get("RECONCILE_ON_DEMAND_LIMIT", "200"))

    # Daily sweep: 02:00 Asia/Manila unless overridden
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", False)
    RECONCILE_CRON_HOUR = int(os.environ.get("RECONCILE_CRON_HOUR", "2"))
    RECONCILE_CRON_MINUTE = int(os.environ.get("RECONCILE_CRON_MINUTE", "0"))
    RECONCILE_TIMEZONE = os.environ.get("RECONCILE_TIMEZONE", "Asia/Manila")
