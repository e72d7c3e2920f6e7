"""
schemas/expense_schema.py — Marshmallow schemas for expense input.

Validation responsibility:
  - This file:
      - Field types, lengths, enum values, amount range (1..MAX_AMOUNT yen)
      - Resolving each `participants` entry into EqualParticipant or
        ManualParticipant, once, here at the boundary
      - DUPLICATE_PARTICIPANT (400)
      - Manual split: every entry has an amount and the amounts add up to the
        expense total (SPLIT_SUM_MISMATCH)
  - services/expense_service.py:
      - Payer and participants are group members (requires DB lookup)
      - Delete/edit permission (requires DB record lookup)

`participants` accepts both shapes seen from clients:
    [3, 5, 8]                                       plain user ids
    [{"user_id": 3}, {"user_id": 5, "amount": 400}] objects, amount optional

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the reason.
"""

from __future__ import annotations

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from backend.app.errors import ErrorCode
from backend.app.models.expense import SplitType
from backend.app.services.split_service import EqualParticipant, ManualParticipant

MAX_AMOUNT = 10_000_000

_amount_range = validate.Range(
    min=1,
    max=MAX_AMOUNT,
    error=f"Amount must be between 1 and {MAX_AMOUNT} yen.",
)


# ── Sub-schema: one object entry in `participants` ─────────────────────────

class ParticipantInputSchema(Schema):
    user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )
    amount = fields.Int(
        strict=True,
        load_default=None,
        validate=_amount_range,
    )


class ParticipantField(fields.Field):
    """Accepts a bare user id or a participant object; yields a plain dict."""

    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, int) and not isinstance(value, bool):
            value = {"user_id": value}
        if not isinstance(value, dict):
            raise ValidationError("Participant must be a user id or an object with user_id.")
        return ParticipantInputSchema().load(value)


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    Create-expense payload. The group id comes from the caller, not the body.

    After load, data["participants"] is a list of EqualParticipant (equal
    split) or ManualParticipant (manual split).
    """

    paid_by_user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="paid_by_user_id must be a positive integer."),
    )

    amount = fields.Int(
        required=True,
        strict=True,
        validate=_amount_range,
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=200, error="Description must be at most 200 characters."),
    )

    split_type = fields.Enum(
        SplitType,
        load_default=SplitType.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    date = fields.AwareDateTime(load_default=None, allow_none=True)

    participants = fields.List(
        ParticipantField(),
        required=True,
        validate=validate.Length(min=1, error="At least one participant is required."),
    )

    @validates_schema
    def validate_participants(self, data: dict, **kwargs) -> None:
        """
        1. DUPLICATE_PARTICIPANT: a user id listed twice.
        2. Equal split: entries must not carry an amount.
        3. Manual split: every entry must carry an amount, and the amounts
           must add up to the expense total (SPLIT_SUM_MISMATCH).
        """
        participants = data.get("participants") or []

        seen: set[int] = set()
        for p in participants:
            if p["user_id"] in seen:
                raise ValidationError(ErrorCode.DUPLICATE_PARTICIPANT, "participants")
            seen.add(p["user_id"])

        if data.get("split_type") == SplitType.EQUAL and any(
                p["amount"] is not None for p in participants):
            raise ValidationError(
                "Participant amounts are only allowed when split_type is 'manual'.",
                "participants",
            )

        if data.get("split_type") != SplitType.MANUAL or "amount" not in data:
            return

        if any(p["amount"] is None for p in participants):
            raise ValidationError(
                "Every participant of a manual split needs an amount.",
                "participants",
            )

        total = sum(p["amount"] for p in participants)
        if total != data["amount"]:
            raise ValidationError(ErrorCode.SPLIT_SUM_MISMATCH, "participants")

    @post_load
    def resolve_participants(self, data: dict, **kwargs) -> dict:
        if data["split_type"] == SplitType.MANUAL:
            data["participants"] = [
                ManualParticipant(p["user_id"], p["amount"]) for p in data["participants"]
            ]
        else:
            data["participants"] = [
                EqualParticipant(p["user_id"]) for p in data["participants"]
            ]
        return data


# ── Patch expense ──────────────────────────────────────────────────────────

class PatchExpenseSchema(Schema):
    """
    Partial update. Only descriptive fields can change: amount, payer and
    participants are locked once the ledger has been updated. Unknown keys
    (e.g. "amount") are rejected by marshmallow's default RAISE policy.
    """

    description = fields.Str(
        allow_none=True,
        validate=validate.Length(max=200, error="Description must be at most 200 characters."),
    )

    date = fields.AwareDateTime()

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("At least one of description or date must be provided.")
