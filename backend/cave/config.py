# backend/cave/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cave.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cave.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Bearer token lifetimes for the identity layer
    AUTH_TOKEN_ABSOLUTE_HOURS = int(os.environ.get("AUTH_TOKEN_ABSOLUTE_HOURS", "24"))
    AUTH_TOKEN_IDLE_HOURS = int(os.environ.get("AUTH_TOKEN_IDLE_HOURS", "2"))

    # bcrypt cost factor; tests lower it to keep fixtures fast
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
