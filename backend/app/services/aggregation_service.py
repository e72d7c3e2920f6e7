"""
services/aggregation_service.py — Cross-group balance summary for one user.

Algorithm:
  1. Partition the user's ledger edges by group.
  2. Net each group's partition independently (never across groups).
  3. Every net edge touching the user goes into `to_pay` (keyed by the
     creditor) or `to_receive` (keyed by the debtor), accumulating a total and
     a per-group breakdown.
  4. Both lists are sorted by total, largest first.

The pay and receive buckets are separate maps. A counterparty can therefore
show up in both lists when two groups net in opposite directions: debts in
different groups are never offset against each other.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy.orm import Session

from backend.app.models.balance import Balance
from backend.app.schemas.balance_schema import BalanceSummarySchema
from backend.app.services.balance_service import list_user_balances
from backend.app.services.netting_service import net_balances


# ── Value types ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BalanceDetail:
    """A ledger edge together with the names and icons needed to display it."""
    group_id: int
    group_name: str
    group_icon: str | None
    user_from: int
    from_name: str
    from_image: str | None
    user_to: int
    to_name: str
    to_image: str | None
    amount: int


@dataclass
class GroupBalance:
    group_id: int
    group_name: str
    group_icon: str | None
    amount: int


@dataclass
class AggregatedBalance:
    user_id: int
    user_name: str
    user_image: str | None
    direction: str  # "pay" or "receive"
    total_amount: int = 0
    group_balances: list[GroupBalance] = field(default_factory=list)


@dataclass
class BalanceSummary:
    to_pay: list[AggregatedBalance]
    to_receive: list[AggregatedBalance]

    @property
    def total_to_pay(self) -> int:
        return sum(b.total_amount for b in self.to_pay)

    @property
    def total_to_receive(self) -> int:
        return sum(b.total_amount for b in self.to_receive)


def balance_details_from_rows(rows: Iterable[Balance]) -> list[BalanceDetail]:
    """Converts Balance rows (with group/from_user/to_user loaded) into BalanceDetail."""
    return [
        BalanceDetail(
            group_id=row.group_id,
            group_name=row.group.name,
            group_icon=row.group.icon,
            user_from=row.user_from,
            from_name=row.from_user.shown_name,
            from_image=row.from_user.image,
            user_to=row.user_to,
            to_name=row.to_user.shown_name,
            to_image=row.to_user.image,
            amount=row.amount,
        )
        for row in rows
    ]


# ── Core algorithm ─────────────────────────────────────────────────────────

def aggregate_balances_by_user(
        balances: Iterable[BalanceDetail],
        current_user_id: int,
) -> BalanceSummary:
    by_group: dict[int, list[BalanceDetail]] = defaultdict(list)
    groups: dict[int, tuple[str, str | None]] = {}
    users: dict[int, tuple[str, str | None]] = {}

    for b in balances:
        by_group[b.group_id].append(b)
        groups[b.group_id] = (b.group_name, b.group_icon)
        users[b.user_from] = (b.from_name, b.from_image)
        users[b.user_to] = (b.to_name, b.to_image)

    to_pay: dict[int, AggregatedBalance] = {}
    to_receive: dict[int, AggregatedBalance] = {}

    for group_id, partition in by_group.items():
        group_name, group_icon = groups[group_id]

        for edge in net_balances(partition):
            if edge.user_from == current_user_id:
                bucket, counterparty, direction = to_pay, edge.user_to, "pay"
            elif edge.user_to == current_user_id:
                bucket, counterparty, direction = to_receive, edge.user_from, "receive"
            else:
                continue

            entry = bucket.get(counterparty)
            if entry is None:
                name, image = users.get(counterparty, ("Unknown", None))
                entry = AggregatedBalance(
                    user_id=counterparty,
                    user_name=name,
                    user_image=image,
                    direction=direction,
                )
                bucket[counterparty] = entry

            entry.total_amount += edge.amount
            entry.group_balances.append(
                GroupBalance(group_id, group_name, group_icon, edge.amount)
            )

    # sorted() is stable, so ties keep first-seen order.
    return BalanceSummary(
        to_pay=sorted(to_pay.values(), key=lambda b: b.total_amount, reverse=True),
        to_receive=sorted(to_receive.values(), key=lambda b: b.total_amount, reverse=True),
    )


def get_user_balance_summary(user_id: int, session: Session) -> dict:
    """
    Loads every edge touching user_id and returns the serialized summary:
    {"to_pay": [...], "to_receive": [...], "total_to_pay": int,
     "total_to_receive": int}.
    """
    details = balance_details_from_rows(list_user_balances(user_id, session))
    summary = aggregate_balances_by_user(details, user_id)
    return BalanceSummarySchema().dump(summary)
