"""
schemas/settlement_schema.py — Marshmallow schema for settlement input.

Validation responsibility:
  - This file: field types, amount range, payment method enum.
  - services/settlement_service.py:
      - SELF_SETTLEMENT (422)       — paid_by comes from the caller identity,
                                       not the body, so the schema cannot see it
      - RECIPIENT_NOT_MEMBER (422)  — requires DB membership lookup
      - INSUFFICIENT_BALANCE (400)  — requires the current ledger edge
      - BALANCE_NOT_FOUND (404)     — requires the current ledger edge

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from backend.app.errors import ErrorCode
from backend.app.models.settlement import PaymentMethod
from backend.app.schemas.expense_schema import MAX_AMOUNT


class CreateSettlementSchema(Schema):
    """
    Records a repayment from the authenticated user (paid_by) to
    `paid_to_user_id` against the edge paid_by → paid_to.
    """

    paid_to_user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="paid_to_user_id must be a positive integer."),
    )

    amount = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(
            min=1,
            max=MAX_AMOUNT,
            error=f"Amount must be between 1 and {MAX_AMOUNT} yen.",
        ),
    )

    method = fields.Enum(
        PaymentMethod,
        required=True,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_PAYMENT_METHOD},
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=200, error="Description must be at most 200 characters."),
    )
