"""
services/membership_service.py — Group and membership lookups shared by the
ledger services.

No Flask imports. Receives a SQLAlchemy session; raises AppError.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.group import Group
from backend.app.models.membership import Membership
from backend.app.models.user import User


def get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def get_member_ids(group_id: int, session: Session) -> list[int]:
    """Returns member user_ids in join order (the stable order for equal splits)."""
    stmt = (
        select(Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at, Membership.id)
    )
    return list(session.execute(stmt).scalars().all())


def get_members(group_id: int, session: Session) -> list[User]:
    """Returns full User objects for all current group members."""
    stmt = (
        select(User)
        .join(Membership, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at, Membership.id)
    )
    return list(session.execute(stmt).scalars().all())


def require_member(group_id: int, user_id: int, session: Session) -> None:
    """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
    membership = session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()

    if membership is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )
