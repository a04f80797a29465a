# backend/ledgerdesk/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/ledgerdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///ledgerdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Products at or below this quantity are reported as low stock
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))

    # Default cap for the unfiltered movement list
    MOVEMENT_LIST_LIMIT = int(os.environ.get("MOVEMENT_LIST_LIMIT", "100"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
