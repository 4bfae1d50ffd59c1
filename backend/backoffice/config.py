# backend/backoffice/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Slow-moving report defaults (trailing window and sold-quantity threshold)
    SLOW_MOVING_PERIOD_DAYS = int(os.environ.get("SLOW_MOVING_PERIOD_DAYS", "90"))
    SLOW_MOVING_MAX_QTY = int(os.environ.get("SLOW_MOVING_MAX_QTY", "5"))
