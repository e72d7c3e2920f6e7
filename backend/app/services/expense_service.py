"""
services/expense_service.py — Expense business logic.

Each public mutation is one logical unit over the ledger:
  create = validate + insert expense + apply N deltas
  delete = reverse the N stored deltas + delete expense

The caller runs the unit inside unit_of_work.atomic() so that a failure on
any delta leaves neither the expense row nor earlier deltas behind.

Rules enforced here:
  - FORBIDDEN (403)              — caller must be a group member
  - PAYER_NOT_MEMBER (422)       — paid_by_user_id must be a group member
  - PARTICIPANT_NOT_MEMBER (422) — every participant must be a group member
  - FORBIDDEN (403)              — only the payer may edit or delete
  - EXPENSE_ALREADY_SETTLED (422) — a share has been (partly) repaid; the
                                   settlement must be cancelled before delete

Ledger replay:
  - `expense.participants` stores the shares actually applied
    ([{"user_id", "amount"}], payer excluded). Deletion reverses exactly
    those, never a recomputation from today's membership or rules.

Layer rules:
  - No Flask imports. Receives plain ints and dicts; returns ORM objects or
    raises AppError.
  - Flush only. Commits belong to the caller.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.expense import Expense, SplitType
from backend.app.services import balance_service
from backend.app.services.membership_service import (
    get_group_or_404,
    get_member_ids,
    require_member,
)
from backend.app.services.split_service import (
    DebtDelta,
    ParticipantSpec,
    compute_split,
    payer_share,
)

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_expense_or_404(expense_id: int, session: Session) -> Expense:
    """Returns the Expense or raises EXPENSE_NOT_FOUND (404)."""
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return expense


def _validate_payer_is_member(
        paid_by_user_id: int,
        group_id: int,
        member_ids: list[int],
) -> None:
    if paid_by_user_id not in member_ids:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {paid_by_user_id} is not a member of group {group_id}.",
            422,
            field="paid_by_user_id",
        )


def _validate_participants_are_members(
        participants: list[ParticipantSpec],
        group_id: int,
        member_ids: list[int],
) -> None:
    """Raises PARTICIPANT_NOT_MEMBER (422) for the first participant not in the group."""
    member_set = set(member_ids)
    for participant in participants:
        if participant.user_id not in member_set:
            raise AppError(
                ErrorCode.PARTICIPANT_NOT_MEMBER,
                f"User {participant.user_id} is not a member of group {group_id}.",
                422,
                field="participants",
            )


def _require_payer(expense: Expense, caller_id: int, action: str) -> None:
    if caller_id != expense.paid_by_user_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only the payer may {action} this expense.",
            403,
        )


def _stored_deltas(expense: Expense) -> list[DebtDelta]:
    """Rebuilds the deltas that were applied when the expense was created."""
    return [
        DebtDelta(share["user_id"], expense.paid_by_user_id, share["amount"])
        for share in expense.participants
    ]


def _require_unsettled(expense: Expense, deltas: list[DebtDelta], session: Session) -> None:
    """
    Raises EXPENSE_ALREADY_SETTLED (422) when any edge now holds less than the
    share this expense put on it: the debtor has since paid some or all of it
    back. Checked for every share before the first reversal.
    """
    for delta in deltas:
        edge = balance_service.find_balance(
            expense.group_id, delta.user_from, delta.user_to, session, for_update=True,
        )
        outstanding = edge.amount if edge is not None else 0
        if outstanding < delta.amount:
            raise AppError(
                ErrorCode.EXPENSE_ALREADY_SETTLED,
                f"User {delta.user_from} has already paid back part of this expense "
                f"({outstanding} of {delta.amount} yen still owed); cancel the "
                f"settlement first.",
                422,
            )


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Expense:
    """
    Records an expense and applies its debts to the ledger.

    Args:
        group_id:  The group this expense belongs to.
        caller_id: The authenticated user creating the expense.
        data:      Validated dict from CreateExpenseSchema; `participants`
                   is already resolved into ParticipantSpec values.

    Returns:
        The new Expense with `participants` holding the applied shares.
    """
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    paid_by_user_id: int = data["paid_by_user_id"]
    amount: int = data["amount"]
    split_type: SplitType = data.get("split_type", SplitType.EQUAL)
    participants: list[ParticipantSpec] = data["participants"]

    member_ids = get_member_ids(group_id, session)
    _validate_payer_is_member(paid_by_user_id, group_id, member_ids)
    _validate_participants_are_members(participants, group_id, member_ids)

    deltas = compute_split(split_type, amount, paid_by_user_id, participants)

    expense = Expense(
        group_id=group_id,
        paid_by_user_id=paid_by_user_id,
        amount=amount,
        description=data.get("description"),
        split_type=split_type,
        participants=[d.to_dict() for d in deltas],
    )
    if data.get("date") is not None:
        expense.date = data["date"]
    session.add(expense)
    session.flush()

    for delta in deltas:
        balance_service.apply_delta(group_id, delta, session)

    logger.info(
        "Expense %s created in group %s: %s yen paid by %s (own share %s), %d debtor(s)",
        expense.id, group_id, amount, paid_by_user_id,
        payer_share(amount, deltas), len(deltas),
    )
    return expense


def delete_expense(
        expense_id: int,
        caller_id: int,
        session: Session,
) -> None:
    """
    Reverses an expense's debts and deletes it.

    Raises:
        AppError(EXPENSE_NOT_FOUND, 404) -- expense does not exist.
        AppError(FORBIDDEN, 403)         -- caller is not the payer.
        AppError(EXPENSE_ALREADY_SETTLED, 422) -- a share was (partly) repaid.
    """
    expense = _get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)
    _require_payer(expense, caller_id, "delete")

    deltas = _stored_deltas(expense)
    _require_unsettled(expense, deltas, session)

    for delta in deltas:
        balance_service.reverse_delta(expense.group_id, delta, session)

    session.delete(expense)
    session.flush()
    logger.info("Expense %s deleted from group %s", expense_id, expense.group_id)


def update_expense(
        expense_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Expense:
    """
    Updates description and/or date. The ledger is not touched.

    Args:
        data: Validated partial dict from PatchExpenseSchema.
    """
    expense = _get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)
    _require_payer(expense, caller_id, "edit")

    if "description" in data:
        expense.description = data["description"]
    if "date" in data:
        expense.date = data["date"]

    expense.updated_at = datetime.now(timezone.utc)
    session.flush()
    return expense


def get_expense(
        expense_id: int,
        caller_id: int,
        session: Session,
) -> Expense:
    """Returns one expense; caller must be a member of its group."""
    expense = _get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)
    return expense


def list_expenses(
        group_id: int,
        caller_id: int,
        session: Session,
) -> list[Expense]:
    """Returns a group's expenses, newest first."""
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    stmt = (
        select(Expense)
        .where(Expense.group_id == group_id)
        .order_by(Expense.date.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())
