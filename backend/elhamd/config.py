# backend/elhamd/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


DEV_SECRET_KEY = "dev-secret-key-change-me"


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", DEV_SECRET_KEY)

    # SQLite DB stored in backend/instance/elhamd.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///elhamd.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "EGP")

    # Line items without a recognised itemType but carrying an inventoryItemId /
    # vehicleId are treated as PART / VEHICLE lines when enabled.
    INVOICE_LINK_REFERENCE_FALLBACK = _env_flag("INVOICE_LINK_REFERENCE_FALLBACK", True)

    # Leave the SALE-<invoice> ledger rows out of reported revenue, so paid
    # invoices are counted once through their invoice totals only.
    REPORT_EXCLUDE_INVOICE_LEDGER_INCOME = _env_flag("REPORT_EXCLUDE_INVOICE_LEDGER_INCOME", False)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    )
