"""
services/netting_service.py — Read-time netting of bidirectional debts.

For each pair {A, B} inside one group, an A→B edge and a B→A edge collapse
into a single edge in the direction of the larger amount, carrying the
difference. Equal amounts cancel completely. A pair with one direction only
passes through unchanged.

Pairs are keyed by (group_id, {A, B}): edges from different groups are never
combined, even if a caller hands in a mixed list.

This is a view over the ledger. It never touches the session and never
rewrites Balance rows.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Protocol


class BalanceLike(Protocol):
    group_id: int
    user_from: int
    user_to: int
    amount: int


@dataclass(frozen=True)
class LedgerEdge:
    group_id: int
    user_from: int
    user_to: int
    amount: int


def net_balances(balances: Iterable[BalanceLike]) -> list[LedgerEdge]:
    """
    Nets opposite-direction edges per group pair.

    Args:
        balances: Balance rows or LedgerEdge values (anything exposing
                  group_id, user_from, user_to and amount).

    Returns:
        At most one LedgerEdge per (group, unordered pair), amount > 0,
        in order of each pair's first appearance. Idempotent.
    """
    # (group_id, low_id, high_id) -> signed amount; positive means low owes high.
    totals: dict[tuple[int, int, int], int] = defaultdict(int)
    order: list[tuple[int, int, int]] = []

    for balance in balances:
        low, high = sorted((balance.user_from, balance.user_to))
        key = (balance.group_id, low, high)
        if key not in totals:
            order.append(key)
        if balance.user_from == low:
            totals[key] += balance.amount
        else:
            totals[key] -= balance.amount

    netted: list[LedgerEdge] = []
    for key in order:
        group_id, low, high = key
        signed = totals[key]
        if signed > 0:
            netted.append(LedgerEdge(group_id, low, high, signed))
        elif signed < 0:
            netted.append(LedgerEdge(group_id, high, low, -signed))
    return netted
