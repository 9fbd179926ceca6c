# Overview: Row locking and retry helpers; every multi-step ledger flow runs through run_with_retry.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute one atomic unit of DB work.

    `func` must do all of its writes through db.session and commit once at
    the end. Any exception rolls the whole unit back, so a failure halfway
    through a flow never leaves stock, balances or ledger rows out of step.
    OperationalError (locks) and StaleDataError (version_id conflicts) are
    retried with exponential backoff.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

