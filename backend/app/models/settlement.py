"""
models/settlement.py — Settlement table definition.

No business logic. A settlement is a real-world repayment against exactly one
directed ledger edge: paid_by_user_id (the debtor) → paid_to_user_id (the
creditor).

Key design points:
  - `amount` is an Integer in yen.
  - CHECK(paid_by_user_id <> paid_to_user_id) backs up the SELF_SETTLEMENT
    check in settlement_service.py.
  - Cancelling a settlement deletes the row and restores the edge.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
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
from backend.app.models.expense import _enum_values


class PaymentMethod(str, enum.Enum):
    CASH              = "cash"
    BANK_TRANSFER     = "bank_transfer"
    PAYPAY            = "paypay"
    LINE_PAY          = "line_pay"
    RAKUTEN_PAY       = "rakuten_pay"
    APPLE_PAY         = "apple_pay"
    MERPAY            = "merpay"
    AU_PAY            = "au_pay"
    D_PAY             = "d_pay"
    TRANSPORTATION_IC = "transportation_ic"
    CREDIT_CARD       = "credit_card"
    OTHER             = "other"


class Settlement(db.Model):
    __tablename__ = "settlements"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint(
            "paid_by_user_id <> paid_to_user_id",
            name="ck_settlements_no_self_settlement",
        ),
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

    paid_to_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    method: Mapped[PaymentMethod] = mapped_column(
        Enum(
            PaymentMethod,
            name="payment_method_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=PaymentMethod.CASH,
    )

    description: Mapped[str | None] = mapped_column(String(200), nullable=True)

    settled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="settlements",
    )

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[paid_by_user_id],
    )

    recipient: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[paid_to_user_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Settlement id={self.id} "
            f"group_id={self.group_id} "
            f"from={self.paid_by_user_id} "
            f"to={self.paid_to_user_id} "
            f"amount={self.amount}>"
        )
