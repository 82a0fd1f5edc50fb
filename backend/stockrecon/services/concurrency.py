# Overview: Optimistic transaction helpers shared by every ledger, tracking and series mutation.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class TransientStoreError(Exception):
    """
    Raised when a transaction keeps conflicting or the store keeps failing
    after every retry attempt. Nothing from the failed attempts is committed.
    """
    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


def _retry_policy(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    config = current_app.config
    if attempts is None:
        attempts = int(config.get("TX_RETRY_ATTEMPTS", 5))
    if backoff_base is None:
        backoff_base = float(config.get("TX_RETRY_BACKOFF", 0.05))
    return max(1, attempts), backoff_base


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a unit of work as one optimistic transaction: read, compute,
    write-if-unchanged, commit.

    Retries on OperationalError (database locks) and StaleDataError
    (version_id mismatch on flush). The session is rolled back before every
    retry and on any other exception, so a failed attempt leaves no partial
    state behind. Raises TransientStoreError once attempts are exhausted.
    """
    attempts, backoff_base = _retry_policy(attempts, backoff_base)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            current_app.logger.debug(
                "Transaction conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    raise TransientStoreError(
        f"transaction failed after {attempts} attempts: {last_exc}", attempts
    ) from last_exc
