# backend/cyclestock/config.py
from __future__ import annotations
import os

from flask import current_app, has_app_context


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cyclestock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cyclestock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Products without an explicit reorder level fall back to this threshold
    DEFAULT_REORDER_LEVEL = int(os.environ.get("DEFAULT_REORDER_LEVEL", "3"))
    LOW_STOCK_ALERT_LIMIT = int(os.environ.get("LOW_STOCK_ALERT_LIMIT", "10"))

    HISTORY_PAGE_SIZE = int(os.environ.get("HISTORY_PAGE_SIZE", "5"))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "100"))

    # When False, adjustments that would drive projected QOH below zero are rejected
    ALLOW_NEGATIVE_STOCK = _env_bool("ALLOW_NEGATIVE_STOCK", False)
    FUTURE_TOLERANCE_MINUTES = int(os.environ.get("FUTURE_TOLERANCE_MINUTES", "2"))


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "DEBUG"


def setting(name: str, default=None):
    """Read a config value from the bound app, or the Config default outside one."""
    if has_app_context():
        return current_app.config.get(name, getattr(Config, name, default))
    return getattr(Config, name, default)
