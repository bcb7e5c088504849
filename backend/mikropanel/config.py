# backend/mikropanel/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Signs session tokens; override in every deployed environment
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///mikropanel.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    COMMIT_RETRY_ATTEMPTS = _env_int("COMMIT_RETRY_ATTEMPTS", 3)

    # Session cookie ("auth") and token lifetime
    SESSION_HOURS = _env_int("SESSION_HOURS", 8)
    SESSION_COOKIE_NAME_AUTH = "auth"
    SESSION_COOKIE_SECURE = os.environ.get("SESSION_COOKIE_SECURE", "0") == "1"
    MIN_PASSWORD_LENGTH = 4
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    CORS_ALLOWED_ORIGINS = {
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if o.strip()
    }

    # Billing constants, all money in cents
    ROUTER_PAID_FEE_CENTS = _env_int("ROUTER_PAID_FEE_CENTS", 1500)
    NANO_AC_BONUS_CENTS = _env_int("NANO_AC_BONUS_CENTS", 14000)
    FIXED_COST_CENTS = _env_int("FIXED_COST_CENTS", 13000)
    MARGIN_STD_CENTS = _env_int("MARGIN_STD_CENTS", 375)
    MARGIN_PREMIUM_CENTS = _env_int("MARGIN_PREMIUM_CENTS", 525)
    PREMIUM_TARIFF_CENTS = _env_int("PREMIUM_TARIFF_CENTS", 700)
    BILLING_CYCLE_DAY = _env_int("BILLING_CYCLE_DAY", 5)
    BONUS_RESET_DAY = _env_int("BONUS_RESET_DAY", 7)


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"
    BCRYPT_ROUNDS = 4
