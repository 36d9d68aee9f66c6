# Overview: Service-layer helpers for transactions, retries and optimistic locking.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConcurrencyError


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=(OperationalError,)):
    """
    Execute a DB operation with retry on transient failures.

    Retries on OperationalError (locked database, deadlocks) by default.
    Optimistic-lock conflicts are not retried here: they surface as
    ConcurrencyError so the caller re-reads before deciding again.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


@contextmanager
def atomic(description: str):
    """
    One unit of work: commit when the block finishes, roll back on any error.

    StaleDataError raised by a version_id_col check is translated to
    ConcurrencyError naming the operation.
    """
    try:
        yield
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrencyError(f"Concurrent modification during {description}; refresh and retry") from exc
    except Exception:
        db.session.rollback()
        raise
