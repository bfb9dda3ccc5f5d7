# backend/kasir/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/kasir.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///kasir.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Grand totals are rounded up to a multiple of this when donation rounding is on
    KASIR_DONATION_UNIT = int(os.environ.get("KASIR_DONATION_UNIT", "1000"))

    # Ledger debit entries due within this many days are reported as "due soon"
    KASIR_DUE_SOON_DAYS = int(os.environ.get("KASIR_DUE_SOON_DAYS", "3"))
