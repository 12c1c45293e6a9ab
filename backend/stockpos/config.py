# backend/stockpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockpos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stock items without their own threshold warn below this quantity
    LOW_STOCK_DEFAULT_THRESHOLD = int(os.environ.get("LOW_STOCK_DEFAULT_THRESHOLD", "5"))

    # Conflict retry budgets for compare-and-set batches
    SALE_MAX_ATTEMPTS = int(os.environ.get("SALE_MAX_ATTEMPTS", "3"))
    ZREPORT_MAX_ATTEMPTS = int(os.environ.get("ZREPORT_MAX_ATTEMPTS", "3"))
    STOCK_WRITE_MAX_ATTEMPTS = int(os.environ.get("STOCK_WRITE_MAX_ATTEMPTS", "3"))
    RETRY_BACKOFF_BASE = float(os.environ.get("RETRY_BACKOFF_BASE", "0.05"))

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if o.strip()
    )
