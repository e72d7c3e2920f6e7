"""
services/split_service.py — Split computation (expense → debt deltas).

Pure functions. No Flask, no session, no I/O.

Equal split:
  - The payer counts as a sharer: the amount is divided by (debtors + 1).
  - per_person, remainder = divmod(amount, debtors + 1)
  - The first `remainder` debtors (in the order given) owe per_person + 1,
    the rest owe per_person. The payer's own share (per_person) is implicit
    and never emitted.
  - Guarantees: sum(deltas) + per_person == amount.
  - Callers must pass participants in a reproducible order (membership join
    order or request order); the remainder placement depends on it.

Manual split:
  - One delta per participant other than the payer, for exactly the stated
    amount. Checking that the amounts add up to the expense total is done
    by the schema before this is called.

Every delta is {user_from: debtor, user_to: payer, amount > 0} in yen.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from backend.app.errors import AppError, ErrorCode, InvalidDeltaError
from backend.app.models.expense import SplitType


# ── Value types ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DebtDelta:
    """`user_from` owes `user_to` an additional `amount` yen."""
    user_from: int
    user_to: int
    amount: int

    def to_dict(self) -> dict:
        return {"user_id": self.user_from, "amount": self.amount}


@dataclass(frozen=True)
class EqualParticipant:
    user_id: int


@dataclass(frozen=True)
class ManualParticipant:
    user_id: int
    amount: int


ParticipantSpec = Union[EqualParticipant, ManualParticipant]


# ── Helpers ────────────────────────────────────────────────────────────────

def _require_positive_int(value, what: str) -> None:
    # bool is an int subclass; True must not pass as 1 yen.
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidDeltaError(
            f"{what} must be a positive integer number of yen, got {value!r}.",
            field="amount",
        )


def _reject_duplicates(user_ids: list[int]) -> None:
    seen: set[int] = set()
    for uid in user_ids:
        if uid in seen:
            raise AppError(
                ErrorCode.DUPLICATE_PARTICIPANT,
                f"User {uid} appears more than once in participants.",
                400,
                field="participants",
            )
        seen.add(uid)


def _debtors(payer_id: int, participant_ids: list[int]) -> list[int]:
    return [uid for uid in participant_ids if uid != payer_id]


# ── Public API ─────────────────────────────────────────────────────────────

def compute_equal_split(
        amount: int,
        payer_id: int,
        participant_ids: list[int],
) -> list[DebtDelta]:
    """
    Splits `amount` equally between the payer and every other participant.

    Args:
        amount:          Expense total in yen. Positive int.
        payer_id:        The user who paid. May or may not be listed in
                         participant_ids; they are always counted once.
        participant_ids: Sharers in a stable order.

    Returns:
        One DebtDelta per debtor with a non-zero share. An expense shared by
        the payer alone yields [].
    """
    _require_positive_int(amount, "Expense amount")
    _reject_duplicates(participant_ids)

    debtors = _debtors(payer_id, participant_ids)
    if not debtors:
        return []

    per_person, remainder = divmod(amount, len(debtors) + 1)

    deltas: list[DebtDelta] = []
    for index, debtor_id in enumerate(debtors):
        share = per_person + 1 if index < remainder else per_person
        # Amounts smaller than the head count leave some debtors at 0.
        if share > 0:
            deltas.append(DebtDelta(debtor_id, payer_id, share))
    return deltas


def compute_manual_split(
        payer_id: int,
        participants: list[ManualParticipant],
) -> list[DebtDelta]:
    """
    One delta per non-payer participant, for exactly the amount they owe.

    The payer may appear in `participants` with their own share; that entry
    produces no delta.
    """
    _reject_duplicates([p.user_id for p in participants])

    deltas: list[DebtDelta] = []
    for participant in participants:
        if participant.user_id == payer_id:
            continue
        _require_positive_int(
            participant.amount,
            f"Share of user {participant.user_id}",
        )
        deltas.append(DebtDelta(participant.user_id, payer_id, participant.amount))
    return deltas


def compute_split(
        split_type: SplitType,
        amount: int,
        payer_id: int,
        participants: list[ParticipantSpec],
) -> list[DebtDelta]:
    """Dispatches to the equal or manual calculator for a resolved participant list."""
    if split_type == SplitType.EQUAL:
        return compute_equal_split(amount, payer_id, [p.user_id for p in participants])

    manual = [p for p in participants if isinstance(p, ManualParticipant)]
    if len(manual) != len(participants):
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "Every participant of a manual split needs an amount.",
            400,
            field="participants",
        )
    return compute_manual_split(payer_id, manual)


def payer_share(amount: int, deltas: list[DebtDelta]) -> int:
    """The payer's implicit share: what is left of `amount` after the debtors' deltas."""
    return amount - sum(d.amount for d in deltas)
