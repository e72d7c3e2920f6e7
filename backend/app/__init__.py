"""
app/__init__.py — Flask application factory for the ledger core.

create_app(config_name) builds a fresh app each call; nothing is bound at
import time, so tests can create as many isolated apps as they need.

Steps:
  1. config_by_name[config_name] → app.config (production is validated)
  2. LOG_LEVEL → app.logger and the backend.app.* loggers
  3. db / ma init_app()
  4. model imports, so db.metadata knows every table
  5. JSON error handlers (AppError, marshmallow ValidationError, anything else)

Request handlers belong to the embedding web layer.
"""

from __future__ import annotations

import logging
import traceback

from flask import Flask, jsonify
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from backend.config import config_by_name, validate_production_config


def create_app(config_name: str = "development") -> Flask:
    """
    Args:
        config_name: "development", "testing" or "production". Unknown names
                     fall back to development.
    """
    app = Flask(__name__)

    app.config.from_object(config_by_name.get(config_name, config_by_name["development"]))
    if config_name == "production":
        validate_production_config(app)

    _configure_logging(app)

    # Deferred: models import `db` from extensions.
    from backend.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    with app.app_context():
        from backend.app.models import (  # noqa: F401
            balance,
            expense,
            group,
            membership,
            settlement,
            user,
        )

    _register_error_handlers(app)
    return app


def _configure_logging(app: Flask) -> None:
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    app.logger.setLevel(level)
    logging.getLogger("backend.app").setLevel(level)


def _register_error_handlers(app: Flask) -> None:
    """
    AppError        → {"error": {...}} with the error's own status; 5xx are logged
    ValidationError → 400 envelope built from the first field error
    Exception       → INTERNAL_ERROR 500, traceback to the log only
    """
    from backend.app.errors import AppError, ErrorCode

    known_codes = {
        value for name, value in vars(ErrorCode).items() if not name.startswith("_")
    }

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        if error.http_status >= 500:
            app.logger.error("Ledger error surfaced to client: %r", error)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        field, message = _first_validation_message(error.messages)

        if message in known_codes:
            code, message = message, _code_to_message(message)
        elif message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
        else:
            code = ErrorCode.INVALID_FIELD

        body = {"code": code, "message": message}
        if field is not None:
            body["field"] = field
        return jsonify({"error": body}), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        if isinstance(error, HTTPException):
            return error
        app.logger.error("Unhandled exception: %s\n%s", error, traceback.format_exc())
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _first_validation_message(messages) -> tuple[str | None, str]:
    """(field, message) of the first error in a marshmallow messages structure."""
    if isinstance(messages, dict):
        for field_name, field_errors in messages.items():
            field = None if field_name == "_schema" else field_name
            if isinstance(field_errors, list):
                return field, str(field_errors[0]) if field_errors else "Invalid value."
            return field, str(field_errors)
    if isinstance(messages, list) and messages:
        return None, str(messages[0])
    return None, "Invalid input."


def _code_to_message(code: str) -> str:
    return {
        "INVALID_SPLIT_TYPE": "split_type must be 'equal' or 'manual'.",
        "INVALID_PAYMENT_METHOD": "The payment method is not supported.",
        "DUPLICATE_PARTICIPANT": "The same user appears more than once in participants.",
        "SPLIT_SUM_MISMATCH": "Participant amounts do not add up to the expense amount.",
    }.get(code, "Invalid input.")
