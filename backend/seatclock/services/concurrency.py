# Overview: Row locking and retry helpers shared by the session controller and checkout.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the optimistic
    version_id check on the session row provides the compare-and-swap.
    """
    return query.with_for_update()


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The session is rolled back before
    each retry so func always starts from a clean transaction.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
