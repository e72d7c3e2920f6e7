"""
schemas/balance_schema.py — Output schemas for the cross-group balance summary.

Dump-only. Inherits from marshmallow.Schema directly (never ma.Schema) so it
can be used without an application context.
"""

from __future__ import annotations

from marshmallow import Schema, fields


class GroupBalanceSchema(Schema):
    group_id = fields.Int()
    group_name = fields.Str()
    group_icon = fields.Str(allow_none=True)
    amount = fields.Int()


class AggregatedBalanceSchema(Schema):
    user_id = fields.Int()
    user_name = fields.Str()
    user_image = fields.Str(allow_none=True)
    direction = fields.Str()
    total_amount = fields.Int()
    group_balances = fields.List(fields.Nested(GroupBalanceSchema))


class BalanceSummarySchema(Schema):
    to_pay = fields.List(fields.Nested(AggregatedBalanceSchema))
    to_receive = fields.List(fields.Nested(AggregatedBalanceSchema))
    total_to_pay = fields.Int()
    total_to_receive = fields.Int()
