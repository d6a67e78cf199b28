# backend/bookstock/config.py
from __future__ import annotations
import os


class Config:
    # SQLite DB stored in backend/instance/bookstock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///bookstock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Movement numbers look like "MOV-003-000042"
    MOVEMENT_NUMBER_PREFIX = os.environ.get("MOVEMENT_NUMBER_PREFIX", "MOV")

    MOVEMENTS_PAGE_SIZE = int(os.environ.get("MOVEMENTS_PAGE_SIZE", "25"))
    MOVEMENTS_MAX_PAGE_SIZE = int(os.environ.get("MOVEMENTS_MAX_PAGE_SIZE", "100"))

    # Recompute item sums on every movement read and flag mismatches
    RECONCILE_ON_READ = os.environ.get("RECONCILE_ON_READ", "true").lower() == "true"
