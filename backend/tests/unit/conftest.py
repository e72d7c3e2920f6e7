"""
tests/unit/conftest.py — Shared setup for the unit suite.

Unit tests construct ORM objects (Balance, Expense, Settlement) without an
application. Relationships are declared by class name, so every model must be
registered before the first instance triggers mapper configuration.
"""

from __future__ import annotations

from backend.app.models import (  # noqa: F401
    balance,
    expense,
    group,
    membership,
    settlement,
    user,
)
