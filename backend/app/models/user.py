"""
models/user.py — User table definition.

Users are created by the identity collaborator (OAuth sign-in); the ledger
only reads them to resolve names and avatars. No business logic here.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class User(db.Model):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Name supplied by the OAuth provider.
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # User-chosen override; shown instead of `name` when set.
    display_name: Mapped[str | None] = mapped_column(String(50), nullable=True)

    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
    )

    # Avatar URL.
    image: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="user",
    )

    @property
    def shown_name(self) -> str:
        """display_name, falling back to the provider name, then "Unknown"."""
        return self.display_name or self.name or "Unknown"

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} name={self.shown_name!r}>"
