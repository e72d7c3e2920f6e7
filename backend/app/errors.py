"""
errors.py — AppError base class, ledger error taxonomy and error code registry.

Every error returned by the API must use a code defined here.
Do not raise strings or generic exceptions from service code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Ledger errors (InvalidDeltaError, InsufficientBalanceError, NotFoundError,
    InvariantViolation) abort the enclosing transaction. The core never retries.
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# These are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_SPLIT_TYPE         = "INVALID_SPLIT_TYPE"
    INVALID_PAYMENT_METHOD     = "INVALID_PAYMENT_METHOD"
    DUPLICATE_PARTICIPANT      = "DUPLICATE_PARTICIPANT"
    SPLIT_SUM_MISMATCH         = "SPLIT_SUM_MISMATCH"

    # ── Ledger Errors ──────────────────────────────────────────────────────
    INVALID_DELTA              = "INVALID_DELTA"               # 400
    INSUFFICIENT_BALANCE       = "INSUFFICIENT_BALANCE"        # 400
    BALANCE_NOT_FOUND          = "BALANCE_NOT_FOUND"           # 404
    LEDGER_INVARIANT_VIOLATION = "LEDGER_INVARIANT_VIOLATION"  # 500

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    SETTLEMENT_NOT_FOUND       = "SETTLEMENT_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    PARTICIPANT_NOT_MEMBER     = "PARTICIPANT_NOT_MEMBER"
    RECIPIENT_NOT_MEMBER       = "RECIPIENT_NOT_MEMBER"
    SELF_SETTLEMENT            = "SELF_SETTLEMENT"
    EXPENSE_ALREADY_SETTLED    = "EXPENSE_ALREADY_SETTLED"

    # ── Authorization (403) ────────────────────────────────────────────────
    FORBIDDEN                  = "FORBIDDEN"

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Ledger error taxonomy ──────────────────────────────────────────────────

class InvalidDeltaError(AppError):
    """Malformed debt delta: non-positive amount or debtor == creditor."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(ErrorCode.INVALID_DELTA, message, 400, field=field)


class InsufficientBalanceError(AppError):
    """Settlement amount exceeds the directed edge it is paid against."""

    def __init__(self, message: str, available: int, requested: int) -> None:
        super().__init__(ErrorCode.INSUFFICIENT_BALANCE, message, 400, field="amount")
        self.available = available
        self.requested = requested


class NotFoundError(AppError):
    """A referenced record (by default a ledger edge) does not exist."""

    def __init__(
            self,
            message: str,
            code: str = ErrorCode.BALANCE_NOT_FOUND,
    ) -> None:
        super().__init__(code, message, 404)


class InvariantViolation(AppError):
    """
    Internal ledger inconsistency, e.g. a reversal that would drive an edge
    negative. Indicates a bug in the calling sequence; never clamped.
    """

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.LEDGER_INVARIANT_VIOLATION, message, 500)
