"""
models/membership.py — Which users belong to which ledger group.

Every ledger write checks this table first. The payer and participants of an
expense must be members, and so must both sides of a settlement. The group
balance view lists members in `joined_at` order and takes their display
names from the joined users.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class Membership(db.Model):
    __tablename__ = "memberships"

    # A user holds at most one membership per group.
    __table_args__ = (
        UniqueConstraint("user_id", "group_id", name="uq_memberships_user_group"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # RESTRICT: users and groups with ledger history are never hard-deleted.
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"), nullable=False, index=True,
    )

    # Member listing order; ties break on id.
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )

    user: Mapped["User"] = relationship(back_populates="memberships")  # noqa: F821
    group: Mapped["Group"] = relationship(back_populates="memberships")  # noqa: F821

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Membership user={self.user_id} in group={self.group_id}>"
