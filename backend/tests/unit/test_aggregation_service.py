"""
Unit tests for aggregation_service.aggregate_balances_by_user.

Pure in-memory BalanceDetail lists; no session.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from backend.app.services.aggregation_service import (
    BalanceDetail,
    aggregate_balances_by_user,
    balance_details_from_rows,
    get_user_balance_summary,
)

ME, TARO, HANA, KEN = 1, 2, 3, 4
TRIP, FLAT = 10, 20

_NAMES = {ME: "Me", TARO: "Taro", HANA: "Hana", KEN: "Ken"}
_GROUPS = {TRIP: ("Okinawa trip", "🏝"), FLAT: ("Flat share", None)}


def _detail(group_id: int, user_from: int, user_to: int, amount: int) -> BalanceDetail:
    group_name, group_icon = _GROUPS[group_id]
    return BalanceDetail(
        group_id=group_id,
        group_name=group_name,
        group_icon=group_icon,
        user_from=user_from,
        from_name=_NAMES[user_from],
        from_image=None,
        user_to=user_to,
        to_name=_NAMES[user_to],
        to_image=f"https://img.example/{user_to}.png",
        amount=amount,
    )


def test_no_balances_gives_empty_summary():
    summary = aggregate_balances_by_user([], ME)

    assert summary.to_pay == []
    assert summary.to_receive == []
    assert summary.total_to_pay == 0
    assert summary.total_to_receive == 0


def test_same_counterparty_is_summed_across_groups():
    summary = aggregate_balances_by_user([
        _detail(TRIP, ME, TARO, 300),
        _detail(FLAT, ME, TARO, 200),
    ], ME)

    assert len(summary.to_pay) == 1
    taro = summary.to_pay[0]
    assert (taro.user_id, taro.user_name, taro.direction, taro.total_amount) == (
        TARO, "Taro", "pay", 500,
    )
    assert [(g.group_id, g.amount) for g in taro.group_balances] == [(TRIP, 300), (FLAT, 200)]
    assert taro.user_image == "https://img.example/2.png"
    assert summary.total_to_pay == 500


def test_netting_happens_inside_each_group():
    summary = aggregate_balances_by_user([
        _detail(TRIP, ME, TARO, 500),
        _detail(TRIP, TARO, ME, 200),
    ], ME)

    assert [(b.user_id, b.total_amount) for b in summary.to_pay] == [(TARO, 300)]
    assert summary.to_receive == []


def test_opposite_directions_in_different_groups_are_not_offset():
    """Me owes Taro 300 in TRIP, Taro owes me 100 in FLAT: both are reported."""
    summary = aggregate_balances_by_user([
        _detail(TRIP, ME, TARO, 300),
        _detail(FLAT, TARO, ME, 100),
    ], ME)

    assert [(b.user_id, b.total_amount) for b in summary.to_pay] == [(TARO, 300)]
    assert [(b.user_id, b.total_amount) for b in summary.to_receive] == [(TARO, 100)]
    assert summary.to_receive[0].direction == "receive"
    assert summary.to_receive[0].group_balances[0].group_name == "Flat share"


def test_edges_not_touching_the_user_are_ignored():
    summary = aggregate_balances_by_user([
        _detail(TRIP, HANA, TARO, 999),
        _detail(TRIP, KEN, ME, 50),
    ], ME)

    assert summary.to_pay == []
    assert [(b.user_id, b.total_amount) for b in summary.to_receive] == [(KEN, 50)]


def test_lists_are_sorted_largest_first():
    summary = aggregate_balances_by_user([
        _detail(TRIP, TARO, ME, 100),
        _detail(TRIP, HANA, ME, 700),
        _detail(FLAT, KEN, ME, 300),
    ], ME)

    assert [b.user_id for b in summary.to_receive] == [HANA, KEN, TARO]
    assert summary.total_to_receive == 1100


def test_ties_keep_first_seen_order():
    summary = aggregate_balances_by_user([
        _detail(TRIP, ME, HANA, 100),
        _detail(TRIP, ME, TARO, 100),
    ], ME)

    assert [b.user_id for b in summary.to_pay] == [HANA, TARO]


def test_balance_details_from_rows_reads_loaded_relationships():
    row = SimpleNamespace(
        group_id=TRIP,
        group=SimpleNamespace(name="Okinawa trip", icon=None),
        user_from=TARO,
        from_user=SimpleNamespace(shown_name="Taro", image=None),
        user_to=ME,
        to_user=SimpleNamespace(shown_name="Me", image="me.png"),
        amount=120,
    )

    [detail] = balance_details_from_rows([row])

    assert detail.group_name == "Okinawa trip"
    assert (detail.from_name, detail.to_name, detail.to_image) == ("Taro", "Me", "me.png")
    assert detail.amount == 120


@patch("backend.app.services.aggregation_service.list_user_balances")
def test_get_user_balance_summary_serializes(mock_list):
    mock_list.return_value = [
        SimpleNamespace(
            group_id=TRIP,
            group=SimpleNamespace(name="Okinawa trip", icon=None),
            user_from=ME,
            from_user=SimpleNamespace(shown_name="Me", image=None),
            user_to=TARO,
            to_user=SimpleNamespace(shown_name="Taro", image=None),
            amount=450,
        ),
    ]
    session = MagicMock()

    result = get_user_balance_summary(ME, session)

    mock_list.assert_called_once_with(ME, session)
    assert result["total_to_pay"] == 450
    assert result["total_to_receive"] == 0
    assert result["to_receive"] == []
    assert result["to_pay"][0]["user_id"] == TARO
    assert result["to_pay"][0]["total_amount"] == 450
    assert result["to_pay"][0]["group_balances"][0]["group_id"] == TRIP
