"""
services/unit_of_work.py — Transaction boundary for ledger operations.

Services only flush. Whoever drives a logical unit (create expense + apply
its deltas, settle an edge + record the settlement, ...) wraps it here:

    with atomic(db.session):
        expense_service.create_expense(group_id, caller_id, data, db.session)

On success the transaction is committed. On any exception everything flushed
inside the block is rolled back and the exception propagates unchanged.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    try:
        yield session
        session.commit()
    except Exception:
        logger.info("Rolling back ledger transaction")
        session.rollback()
        raise
