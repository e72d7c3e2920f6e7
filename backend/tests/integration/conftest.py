"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against a real database: in-memory SQLite by default, or
    TEST_DATABASE_URL (e.g. a PostgreSQL warikan_test database) when set.
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Helper functions (not fixtures) are provided for common setup:
  - make_user(session, ...)             → committed User
  - make_group(session, owner, members) → committed Group with memberships
  - edges(session, group_id)            → {(user_from, user_to): amount}

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

import pytest

from backend.app import create_app
from backend.app.extensions import db as _db
from backend.app.models.group import Group
from backend.app.models.membership import Membership
from backend.app.models.user import User
from backend.app.services.balance_service import list_group_balances


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.
    Tables are created up front and dropped at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def session(app):
    """
    Yields db.session inside an application context, then deletes every row.

    Delete order is the reverse of the FK dependency order so that balances,
    settlements and expenses go before memberships, groups and users.
    """
    with app.app_context():
        yield _db.session

        _db.session.rollback()  # discard any uncommitted state from a failed test
        for table in reversed(_db.metadata.sorted_tables):
            _db.session.execute(table.delete())
        _db.session.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_user(session, name: str = "alice", display_name: str | None = None) -> User:
    user = User(
        name=name,
        display_name=display_name,
        email=f"{name}@example.com",
    )
    session.add(user)
    session.commit()
    return user


def make_group(
        session,
        owner: User,
        members: list[User] | None = None,
        name: str = "Test Group",
        icon: str | None = None,
) -> Group:
    """
    Creates a group owned by `owner`. The owner joins first, then `members`
    in the order given, so join order is deterministic for equal splits.
    """
    group = Group(name=name, icon=icon, owner_user_id=owner.id)
    session.add(group)
    session.flush()

    for user in [owner, *(members or [])]:
        session.add(Membership(user_id=user.id, group_id=group.id))
        session.flush()

    session.commit()
    return group


def edges(session, group_id: int) -> dict[tuple[int, int], int]:
    """The group's raw ledger as {(user_from, user_to): amount}."""
    return {
        (b.user_from, b.user_to): b.amount
        for b in list_group_balances(group_id, session)
    }
