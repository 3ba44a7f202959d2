# backend/dealer/config.py
from __future__ import annotations
import os


# 10 GiB of encoded media across all live stock items
DEFAULT_STORAGE_BUDGET_BYTES = 10 * 1024 * 1024 * 1024


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/dealer.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///dealer.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    STORAGE_BUDGET_BYTES = int(os.environ.get("STORAGE_BUDGET_BYTES", DEFAULT_STORAGE_BUDGET_BYTES))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
