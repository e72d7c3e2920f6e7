"""
models/balance.py — Balance (pairwise ledger) table definition.

One row is one directed debt inside one group: `user_from` owes `user_to`
`amount` yen. No business logic; all mutations go through
services/balance_service.py.

Key design points:
  - `amount` is an Integer in yen and is always > 0. A row that reaches 0 is
    deleted, never stored.
  - UNIQUE(group_id, user_from, user_to): one row per directed pair.
  - Both A→B and B→A may exist at the same time. Netting is a read-time view
    (services/netting_service.py) and never rewrites these rows.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class Balance(db.Model):
    __tablename__ = "balances"

    __table_args__ = (
        UniqueConstraint(
            "group_id", "user_from", "user_to",
            name="uq_balances_group_from_to",
        ),
        CheckConstraint("amount > 0", name="ck_balances_amount_positive"),
        CheckConstraint("user_from <> user_to", name="ck_balances_no_self_edge"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Debtor.
    user_from: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Creditor.
    user_to: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="balances",
    )

    from_user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[user_from],
    )

    to_user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[user_to],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Balance group_id={self.group_id} "
            f"from={self.user_from} "
            f"to={self.user_to} "
            f"amount={self.amount}>"
        )
