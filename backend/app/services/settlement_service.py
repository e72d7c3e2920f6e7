"""
services/settlement_service.py — Settlement business logic.

A settlement pays down exactly one directed edge: paid_by → paid_to. If the
reverse edge paid_to → paid_by also exists it is left alone; netting the two
is a read-time view, not a write.

Logical units (run inside unit_of_work.atomic() by the caller):
  create = reduce the edge + insert the settlement
  cancel = restore the edge + delete the settlement

Rules enforced here:
  - FORBIDDEN (403)             — caller must be a group member
  - SELF_SETTLEMENT (422)       — paid_by != paid_to
  - RECIPIENT_NOT_MEMBER (422)  — paid_to must be a group member
  - BALANCE_NOT_FOUND (404)     — nothing is owed on that edge
  - INSUFFICIENT_BALANCE (400)  — amount exceeds what is owed
  - FORBIDDEN (403)             — only the payer may cancel

Layer rules:
  - No Flask imports. Flush only; commits belong to the caller.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode, NotFoundError
from backend.app.models.settlement import Settlement
from backend.app.services import balance_service
from backend.app.services.membership_service import (
    get_group_or_404,
    get_member_ids,
    require_member,
)

logger = logging.getLogger(__name__)


def create_settlement(
        group_id: int,
        paid_by_id: int,
        data: dict,
        session: Session,
) -> Settlement:
    """
    Records a repayment from paid_by_id to data["paid_to_user_id"].

    Args:
        group_id:   The group whose ledger edge is paid down.
        paid_by_id: The authenticated user making the payment (the debtor).
        data:       Validated dict from CreateSettlementSchema.
    """
    get_group_or_404(group_id, session)
    require_member(group_id, paid_by_id, session)

    paid_to_user_id: int = data["paid_to_user_id"]
    amount: int = data["amount"]

    if paid_by_id == paid_to_user_id:
        raise AppError(
            ErrorCode.SELF_SETTLEMENT,
            "A settlement cannot be made to yourself.",
            422,
            field="paid_to_user_id",
        )

    if paid_to_user_id not in get_member_ids(group_id, session):
        raise AppError(
            ErrorCode.RECIPIENT_NOT_MEMBER,
            f"User {paid_to_user_id} is not a member of group {group_id}.",
            422,
            field="paid_to_user_id",
        )

    balance_service.reduce_edge(group_id, paid_by_id, paid_to_user_id, amount, session)

    settlement = Settlement(
        group_id=group_id,
        paid_by_user_id=paid_by_id,
        paid_to_user_id=paid_to_user_id,
        amount=amount,
        method=data["method"],
        description=data.get("description"),
    )
    session.add(settlement)
    session.flush()

    logger.info(
        "Settlement %s in group %s: %s paid %s yen to %s",
        settlement.id, group_id, paid_by_id, amount, paid_to_user_id,
    )
    return settlement


def cancel_settlement(
        settlement_id: int,
        caller_id: int,
        session: Session,
) -> None:
    """
    Undoes a settlement: the edge gets its amount back and the record goes.

    Raises:
        NotFoundError(SETTLEMENT_NOT_FOUND) -- no such settlement.
        AppError(FORBIDDEN, 403)            -- caller did not make the payment.
    """
    settlement = session.get(Settlement, settlement_id)
    if settlement is None:
        raise NotFoundError(
            f"Settlement {settlement_id} does not exist.",
            code=ErrorCode.SETTLEMENT_NOT_FOUND,
        )

    if settlement.paid_by_user_id != caller_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the payer may cancel this settlement.",
            403,
        )

    balance_service.restore_edge(
        settlement.group_id,
        settlement.paid_by_user_id,
        settlement.paid_to_user_id,
        settlement.amount,
        session,
    )
    session.delete(settlement)
    session.flush()

    logger.info("Settlement %s in group %s cancelled", settlement_id, settlement.group_id)


def list_settlements(
        group_id: int,
        caller_id: int,
        session: Session,
) -> list[Settlement]:
    """Returns all settlements for a group, newest first."""
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    stmt = (
        select(Settlement)
        .where(Settlement.group_id == group_id)
        .order_by(Settlement.settled_at.desc(), Settlement.id.desc())
    )
    return list(session.execute(stmt).scalars().all())
