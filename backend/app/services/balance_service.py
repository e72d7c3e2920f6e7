"""
services/balance_service.py — The persisted pairwise ledger (BalanceStore).

This file is the ONLY place that writes Balance rows. Expense and settlement
services call into it; nothing else inserts, updates or deletes balances.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - The session is always passed in; there is no module-level store.
  - Functions flush, never commit. The caller wraps a whole logical unit
    (expense create/delete, settlement create/cancel) in
    unit_of_work.atomic() so that either every sub-step lands or none does.

Row semantics:
  - Keyed by (group_id, user_from, user_to). Missing row == zero debt.
  - amount > 0 always. A row that reaches exactly 0 is deleted.
  - A result below 0 is an InvariantViolation, never clamped.
  - Rows are read with SELECT ... FOR UPDATE so concurrent writers to the
    same edge serialize on databases that support row locks.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload

from backend.app.errors import (
    InsufficientBalanceError,
    InvalidDeltaError,
    InvariantViolation,
    NotFoundError,
)
from backend.app.models.balance import Balance
from backend.app.services.membership_service import (
    get_group_or_404,
    get_members,
    require_member,
)
from backend.app.services.netting_service import net_balances
from backend.app.services.split_service import DebtDelta

logger = logging.getLogger(__name__)


# ── Validation ─────────────────────────────────────────────────────────────

def _validate_delta(user_from: int, user_to: int, amount: int) -> None:
    """Rejects malformed deltas before any session access."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidDeltaError(
            f"Delta amount must be a positive integer, got {amount!r}.",
            field="amount",
        )
    if user_from == user_to:
        raise InvalidDeltaError(
            f"User {user_from} cannot owe themselves.",
            field="user_to",
        )


# ── Queries ────────────────────────────────────────────────────────────────

def find_balance(
        group_id: int,
        user_from: int,
        user_to: int,
        session: Session,
        for_update: bool = False,
) -> Balance | None:
    """Returns the directed edge user_from → user_to in group_id, or None."""
    stmt = select(Balance).where(
        Balance.group_id == group_id,
        Balance.user_from == user_from,
        Balance.user_to == user_to,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def list_group_balances(group_id: int, session: Session) -> list[Balance]:
    """Every raw directed edge in one group (both directions, un-netted)."""
    stmt = (
        select(Balance)
        .where(Balance.group_id == group_id)
        .order_by(Balance.id)
    )
    return list(session.execute(stmt).scalars().all())


def list_user_balances(user_id: int, session: Session) -> list[Balance]:
    """
    Every edge touching user_id across all groups, with group and both users
    eagerly loaded for the cross-group summary.
    """
    stmt = (
        select(Balance)
        .options(
            joinedload(Balance.group),
            joinedload(Balance.from_user),
            joinedload(Balance.to_user),
        )
        .where(or_(Balance.user_from == user_id, Balance.user_to == user_id))
        .order_by(Balance.group_id, Balance.id)
    )
    return list(session.execute(stmt).unique().scalars().all())


# ── Mutations ──────────────────────────────────────────────────────────────

def _subtract(balance: Balance, amount: int, session: Session) -> Balance | None:
    """Lowers an existing edge, deleting it at exactly zero."""
    remaining = balance.amount - amount
    if remaining == 0:
        logger.debug(
            "Deleting settled edge group=%s %s->%s",
            balance.group_id, balance.user_from, balance.user_to,
        )
        session.delete(balance)
        session.flush()
        return None

    balance.amount = remaining
    session.flush()
    return balance


def apply_delta(group_id: int, delta: DebtDelta, session: Session) -> Balance:
    """
    Adds `delta.amount` to the edge delta.user_from → delta.user_to.

    Inserts the row when the edge does not exist yet.

    Raises:
        InvalidDeltaError -- amount <= 0 or user_from == user_to.
    """
    _validate_delta(delta.user_from, delta.user_to, delta.amount)

    existing = find_balance(
        group_id, delta.user_from, delta.user_to, session, for_update=True,
    )
    if existing is None:
        existing = Balance(
            group_id=group_id,
            user_from=delta.user_from,
            user_to=delta.user_to,
            amount=delta.amount,
        )
        session.add(existing)
    else:
        existing.amount = existing.amount + delta.amount

    session.flush()
    logger.debug(
        "Applied delta group=%s %s->%s +%s (now %s)",
        group_id, delta.user_from, delta.user_to, delta.amount, existing.amount,
    )
    return existing


def reverse_delta(group_id: int, delta: DebtDelta, session: Session) -> Balance | None:
    """
    Takes back a previously applied delta (expense deletion).

    Returns the updated Balance, or None when the edge was deleted at zero.

    Raises:
        InvalidDeltaError   -- malformed delta.
        NotFoundError       -- the edge no longer exists (e.g. already settled).
        InvariantViolation  -- the edge holds less than the delta; the calling
                               sequence reversed something twice.
    """
    _validate_delta(delta.user_from, delta.user_to, delta.amount)

    existing = find_balance(
        group_id, delta.user_from, delta.user_to, session, for_update=True,
    )
    if existing is None:
        raise NotFoundError(
            f"No balance from user {delta.user_from} to user {delta.user_to} "
            f"in group {group_id}; it may already have been settled."
        )

    if existing.amount < delta.amount:
        logger.error(
            "Ledger invariant violated: reversing %s on edge group=%s %s->%s "
            "holding %s would leave %s",
            delta.amount, group_id, delta.user_from, delta.user_to,
            existing.amount, existing.amount - delta.amount,
        )
        raise InvariantViolation(
            f"Reversing {delta.amount} from the balance of user {delta.user_from} "
            f"to user {delta.user_to} in group {group_id} would make it negative "
            f"(current {existing.amount})."
        )

    return _subtract(existing, delta.amount, session)


def reduce_edge(
        group_id: int,
        user_from: int,
        user_to: int,
        amount: int,
        session: Session,
) -> Balance | None:
    """
    Pays `amount` against exactly the edge user_from → user_to (settlement).

    The reverse edge, if any, is left untouched.

    Raises:
        InvalidDeltaError        -- malformed amount or self edge.
        NotFoundError            -- no such edge.
        InsufficientBalanceError -- amount exceeds the edge.
    """
    _validate_delta(user_from, user_to, amount)

    existing = find_balance(group_id, user_from, user_to, session, for_update=True)
    if existing is None:
        raise NotFoundError(
            f"User {user_from} owes nothing to user {user_to} in group {group_id}."
        )

    if amount > existing.amount:
        raise InsufficientBalanceError(
            f"Settlement of {amount} exceeds the outstanding balance of "
            f"{existing.amount}.",
            available=existing.amount,
            requested=amount,
        )

    return _subtract(existing, amount, session)


def restore_edge(
        group_id: int,
        user_from: int,
        user_to: int,
        amount: int,
        session: Session,
) -> Balance:
    """Puts a cancelled settlement's amount back on its edge."""
    return apply_delta(group_id, DebtDelta(user_from, user_to, amount), session)


# ── Group view ─────────────────────────────────────────────────────────────

def get_balance_response(
        group_id: int,
        caller_id: int,
        session: Session,
) -> dict:
    """
    Builds the group-scoped balance payload.

    Raises:
        AppError(GROUP_NOT_FOUND, 404) -- group does not exist.
        AppError(FORBIDDEN, 403)       -- caller not a group member.
    """
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    raw = list_group_balances(group_id, session)
    netted = net_balances(raw)
    names = {m.id: m.shown_name for m in get_members(group_id, session)}

    return {
        "group_id": group_id,
        "balances": [
            {
                "user_from": b.user_from,
                "user_to": b.user_to,
                "amount": b.amount,
            }
            for b in raw
        ],
        "net_balances": [
            {
                "from_user_id": edge.user_from,
                "from_name": names.get(edge.user_from, "Unknown"),
                "to_user_id": edge.user_to,
                "to_name": names.get(edge.user_to, "Unknown"),
                "amount": edge.amount,
            }
            for edge in netted
        ],
        "total_outstanding": sum(edge.amount for edge in netted),
    }
