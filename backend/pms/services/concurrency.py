# Overview: Row locking and optimistic-version retries shared by the engines.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Serialize writers on the selected rows (tasks, evaluations, scores).

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id_col
    check on flush is what rejects the losing writer.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a unit of work, retrying when the database reports a lock conflict
    (OperationalError) or a lost optimistic-version race (StaleDataError).

    func must be safe to re-run from scratch: the session is rolled back
    before every retry.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after concurrency conflict (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
