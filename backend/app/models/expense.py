"""
models/expense.py — Expense table definition.

No business logic. No imports from services.

Key design points:
  - `amount` is an Integer in yen, never Float.
  - `participants` stores the per-debtor shares computed at creation time
    as [{"user_id": int, "amount": int}, ...], payer excluded. It is the
    replayable record used to reverse the ledger when the expense is deleted,
    so it is never recomputed from the current membership.
  - Expenses are hard-deleted together with their ledger reversal.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class SplitType(str, enum.Enum):
    EQUAL  = "equal"
    MANUAL = "manual"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'manual'), not names ('MANUAL')."""
    return [member.value for member in enum_cls]


class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    paid_by_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )

    participants: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    split_type: Mapped[SplitType] = mapped_column(
        Enum(
            SplitType,
            name="split_type_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=SplitType.EQUAL,
    )

    # When the expense happened (user-editable); created_at is when it was recorded.
    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="expenses",
    )

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[paid_by_user_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"group_id={self.group_id} "
            f"amount={self.amount} "
            f"split_type={self.split_type.value}>"
        )
