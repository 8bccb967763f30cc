# backend/pharmapos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pharmapos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Sales tax applied to every checkout, in basis points (1700 = 17%)
    TAX_RATE_BPS = int(os.environ.get("TAX_RATE_BPS", "1700"))

    # One loyalty point per this many cents of sale total
    LOYALTY_POINTS_DIVISOR_CENTS = int(os.environ.get("LOYALTY_POINTS_DIVISOR_CENTS", "10000"))

    RECEIPT_PREFIX = os.environ.get("RECEIPT_PREFIX", "RCP")
    RECEIPT_SUFFIX_DIGITS = int(os.environ.get("RECEIPT_SUFFIX_DIGITS", "6"))
    RECEIPT_NUMBER_ATTEMPTS = int(os.environ.get("RECEIPT_NUMBER_ATTEMPTS", "5"))

    # Extra attempts after a lost race (receipt collision, stale stock version)
    CHECKOUT_CONFLICT_RETRIES = int(os.environ.get("CHECKOUT_CONFLICT_RETRIES", "1"))

    # SQLite only: take the write lock up front so concurrent checkouts serialize
    SQLITE_IMMEDIATE_TRANSACTIONS = True

    DEMO_SEED_ENABLED = os.environ.get("DEMO_SEED_ENABLED", "false").lower() == "true"
