"""
extensions.py — Flask extension singletons.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

    from backend.app.extensions import db, ma

Do not pass the app object directly to SQLAlchemy() or Marshmallow() at
import time; tests create their own app instance.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Schema classes in app/schemas/ inherit from marshmallow.Schema directly,
# NOT from ma.Schema: ma.Schema requires an application context and the unit
# tests in tests/unit/ run without one.
ma = Marshmallow()
