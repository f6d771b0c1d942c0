# backend/stocksnap/config.py
from __future__ import annotations
import os


SALE_COMMIT_MODES = ("atomic", "stepwise")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stocksnap.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Flat sales tax applied to the subtotal of every sale
    SALES_TAX_RATE = float(os.environ.get("STOCKSNAP_TAX_RATE", "0.10"))

    # "atomic": sale + stock decrements in one transaction
    # "stepwise": sale committed first, each line committed on its own
    SALE_COMMIT_MODE = os.environ.get("STOCKSNAP_SALE_COMMIT_MODE", "atomic")

    # Number of most recent sales scanned for the top-sellers ranking
    TOP_SELLERS_SAMPLE_SIZE = int(os.environ.get("STOCKSNAP_TOP_SELLERS_SAMPLE", "100"))

    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get("STOCKSNAP_LOW_STOCK_THRESHOLD", "10"))

    # Reference zone for calendar-day revenue buckets
    STATS_TIMEZONE = os.environ.get("STOCKSNAP_STATS_TIMEZONE", "UTC")

    # bcrypt cost factor for password hashes
    BCRYPT_ROUNDS = int(os.environ.get("STOCKSNAP_BCRYPT_ROUNDS", "12"))

    LOG_LEVEL = os.environ.get("STOCKSNAP_LOG_LEVEL", "INFO")


def check_config(config) -> None:
    """Fail fast on settings the services cannot work with."""
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

    rate = config["SALES_TAX_RATE"]
    if not 0 <= rate < 1:
        raise ValueError(f"SALES_TAX_RATE must be in [0, 1), got {rate!r}")

    if config["SALE_COMMIT_MODE"] not in SALE_COMMIT_MODES:
        raise ValueError(
            f"SALE_COMMIT_MODE must be one of {', '.join(SALE_COMMIT_MODES)}"
        )

    if config["TOP_SELLERS_SAMPLE_SIZE"] <= 0:
        raise ValueError("TOP_SELLERS_SAMPLE_SIZE must be positive")

    try:
        ZoneInfo(config["STATS_TIMEZONE"])
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown STATS_TIMEZONE {config['STATS_TIMEZONE']!r}")
