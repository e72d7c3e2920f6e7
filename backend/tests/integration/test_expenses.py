"""
tests/integration/test_expenses.py — Expense create/edit/delete against a real database.

What this file proves:
  - Creating an expense applies one ledger edge per debtor (equal and manual)
  - Repeated expenses accumulate on the same directed edge
  - Deleting an expense replays its stored shares and removes zeroed edges
  - Deleting an expense whose share was settled, fully or in part, is refused and changes nothing
  - A failure halfway through applying deltas leaves no expense and no edges
  - Editing description/date never touches the ledger
"""

from __future__ import annotations

import pytest

from backend.app.errors import AppError, ErrorCode
from backend.app.models.expense import Expense, SplitType
from backend.app.models.membership import Membership
from backend.app.models.settlement import PaymentMethod
from backend.app.schemas.expense_schema import CreateExpenseSchema, PatchExpenseSchema
from backend.app.services import balance_service, expense_service, settlement_service
from backend.app.services.unit_of_work import atomic

from .conftest import edges, make_group, make_user


def _create(session, group, caller, payload: dict) -> Expense:
    data = CreateExpenseSchema().load(payload)
    with atomic(session):
        return expense_service.create_expense(group.id, caller.id, data, session)


@pytest.fixture
def trio(session):
    payer = make_user(session, "payer")
    d1 = make_user(session, "d1")
    d2 = make_user(session, "d2")
    group = make_group(session, payer, [d1, d2], name="Kyoto")
    return group, payer, d1, d2


def test_equal_split_writes_edges(session, trio):
    group, payer, d1, d2 = trio

    expense = _create(session, group, payer, {
        "paid_by_user_id": payer.id,
        "amount": 1000,
        "participants": [payer.id, d1.id, d2.id],
    })

    assert edges(session, group.id) == {(d1.id, payer.id): 334, (d2.id, payer.id): 333}
    stored = session.get(Expense, expense.id)
    assert stored.split_type == SplitType.EQUAL
    assert stored.participants == [
        {"user_id": d1.id, "amount": 334},
        {"user_id": d2.id, "amount": 333},
    ]


def test_manual_split_writes_exact_shares(session, trio):
    group, payer, d1, d2 = trio

    _create(session, group, d1, {
        "paid_by_user_id": payer.id,
        "amount": 1500,
        "split_type": "manual",
        "participants": [
            {"user_id": payer.id, "amount": 500},
            {"user_id": d1.id, "amount": 700},
            {"user_id": d2.id, "amount": 300},
        ],
    })

    assert edges(session, group.id) == {(d1.id, payer.id): 700, (d2.id, payer.id): 300}


def test_repeated_expenses_accumulate(session, trio):
    group, payer, d1, _ = trio
    payload = {"paid_by_user_id": payer.id, "amount": 600, "participants": [d1.id]}

    _create(session, group, payer, payload)
    _create(session, group, payer, payload)

    assert edges(session, group.id) == {(d1.id, payer.id): 600}


def test_opposite_expenses_keep_both_raw_edges(session, trio):
    group, payer, d1, _ = trio

    _create(session, group, payer, {"paid_by_user_id": payer.id, "amount": 300, "participants": [d1.id]})
    _create(session, group, d1, {"paid_by_user_id": d1.id, "amount": 200, "participants": [payer.id]})

    assert edges(session, group.id) == {(d1.id, payer.id): 150, (payer.id, d1.id): 100}


def test_payer_only_expense_leaves_ledger_empty(session, trio):
    group, payer, _, _ = trio

    _create(session, group, payer, {
        "paid_by_user_id": payer.id, "amount": 800, "participants": [payer.id],
    })

    assert edges(session, group.id) == {}
    assert len(expense_service.list_expenses(group.id, payer.id, session)) == 1


def test_non_member_participant_is_rejected(session, trio):
    group, payer, d1, _ = trio
    outsider = make_user(session, "outsider")

    with pytest.raises(AppError) as exc_info:
        _create(session, group, payer, {
            "paid_by_user_id": payer.id, "amount": 900, "participants": [d1.id, outsider.id],
        })

    assert exc_info.value.code == ErrorCode.PARTICIPANT_NOT_MEMBER
    assert edges(session, group.id) == {}
    assert expense_service.list_expenses(group.id, payer.id, session) == []


def test_failure_mid_apply_rolls_back_everything(session, trio, monkeypatch):
    group, payer, d1, d2 = trio
    real_apply = balance_service.apply_delta
    calls = []

    def flaky_apply(group_id, delta, sess):
        calls.append(delta)
        if len(calls) == 2:
            raise RuntimeError("database went away")
        return real_apply(group_id, delta, sess)

    monkeypatch.setattr(balance_service, "apply_delta", flaky_apply)

    with pytest.raises(RuntimeError):
        _create(session, group, payer, {
            "paid_by_user_id": payer.id,
            "amount": 1000,
            "participants": [payer.id, d1.id, d2.id],
        })

    assert len(calls) == 2
    assert edges(session, group.id) == {}
    assert expense_service.list_expenses(group.id, payer.id, session) == []


def test_delete_expense_restores_ledger(session, trio):
    group, payer, d1, d2 = trio
    keep = _create(session, group, payer, {
        "paid_by_user_id": payer.id, "amount": 200, "participants": [d1.id],
    })
    drop = _create(session, group, payer, {
        "paid_by_user_id": payer.id, "amount": 1000, "participants": [payer.id, d1.id, d2.id],
    })

    with atomic(session):
        expense_service.delete_expense(drop.id, payer.id, session)

    assert edges(session, group.id) == {(d1.id, payer.id): 100}
    assert [e.id for e in expense_service.list_expenses(group.id, payer.id, session)] == [keep.id]


def test_delete_replays_stored_shares_after_membership_changes(session, trio):
    group, payer, d1, d2 = trio
    expense = _create(session, group, payer, {
        "paid_by_user_id": payer.id, "amount": 1000, "participants": [payer.id, d1.id, d2.id],
    })
    late = make_user(session, "late")
    session.add(Membership(user_id=late.id, group_id=group.id))
    session.commit()

    with atomic(session):
        expense_service.delete_expense(expense.id, payer.id, session)

    assert edges(session, group.id) == {}


def test_delete_after_settlement_fails_without_changes(session, trio):
    group, payer, d1, d2 = trio
    expense = _create(session, group, payer, {
        "paid_by_user_id": payer.id, "amount": 1000, "participants": [payer.id, d1.id, d2.id],
    })
    with atomic(session):
        settlement_service.create_settlement(
            group.id, d2.id,
            {"paid_to_user_id": payer.id, "amount": 333, "method": PaymentMethod.CASH},
            session,
        )

    with pytest.raises(AppError) as exc_info:
        with atomic(session):
            expense_service.delete_expense(expense.id, payer.id, session)

    assert exc_info.value.code == ErrorCode.EXPENSE_ALREADY_SETTLED
    assert exc_info.value.http_status == 422
    assert edges(session, group.id) == {(d1.id, payer.id): 334}
    assert session.get(Expense, expense.id) is not None


def test_delete_after_partial_repayment_is_refused(session, trio):
    # 300 yen shared by payer and d1: d1 owes 150.
    group, payer, d1, _ = trio
    expense = _create(session, group, payer, {
        "paid_by_user_id": payer.id, "amount": 300, "participants": [d1.id],
    })
    assert edges(session, group.id) == {(d1.id, payer.id): 150}
    with atomic(session):
        settlement_service.create_settlement(
            group.id, d1.id,
            {"paid_to_user_id": payer.id, "amount": 50, "method": PaymentMethod.CASH},
            session,
        )

    with pytest.raises(AppError) as exc_info:
        with atomic(session):
            expense_service.delete_expense(expense.id, payer.id, session)

    assert exc_info.value.code == ErrorCode.EXPENSE_ALREADY_SETTLED
    assert exc_info.value.http_status == 422
    assert edges(session, group.id) == {(d1.id, payer.id): 100}
    stored = session.get(Expense, expense.id)
    assert stored is not None
    assert stored.participants == [{"user_id": d1.id, "amount": 150}]


def test_delete_succeeds_once_the_repayment_is_cancelled(session, trio):
    group, payer, d1, _ = trio
    expense = _create(session, group, payer, {
        "paid_by_user_id": payer.id, "amount": 300, "participants": [d1.id],
    })
    with atomic(session):
        settlement = settlement_service.create_settlement(
            group.id, d1.id,
            {"paid_to_user_id": payer.id, "amount": 50, "method": PaymentMethod.CASH},
            session,
        )
    with atomic(session):
        settlement_service.cancel_settlement(settlement.id, d1.id, session)

    with atomic(session):
        expense_service.delete_expense(expense.id, payer.id, session)

    assert edges(session, group.id) == {}


def test_single_debtor_expense_round_trip(session, trio):
    group, payer, d1, _ = trio
    expense = _create(session, group, payer, {
        "paid_by_user_id": payer.id, "amount": 300, "participants": [d1.id],
    })
    assert edges(session, group.id) == {(d1.id, payer.id): 150}

    with atomic(session):
        expense_service.delete_expense(expense.id, payer.id, session)

    assert edges(session, group.id) == {}


def test_only_payer_can_delete(session, trio):
    group, payer, d1, _ = trio
    expense = _create(session, group, payer, {
        "paid_by_user_id": payer.id, "amount": 500, "participants": [d1.id],
    })

    with pytest.raises(AppError) as exc_info:
        with atomic(session):
            expense_service.delete_expense(expense.id, d1.id, session)

    assert exc_info.value.code == ErrorCode.FORBIDDEN
    assert edges(session, group.id) == {(d1.id, payer.id): 250}


def test_edit_description_keeps_ledger(session, trio):
    group, payer, d1, _ = trio
    expense = _create(session, group, payer, {
        "paid_by_user_id": payer.id, "amount": 500, "description": "Ramen", "participants": [d1.id],
    })

    data = PatchExpenseSchema().load({"description": "Ramen and gyoza"})
    with atomic(session):
        expense_service.update_expense(expense.id, payer.id, data, session)

    stored = expense_service.get_expense(expense.id, d1.id, session)
    assert stored.description == "Ramen and gyoza"
    assert stored.updated_at is not None
    assert stored.amount == 500
    assert edges(session, group.id) == {(d1.id, payer.id): 250}
