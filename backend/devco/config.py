# backend/devco/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/devco.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///devco.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Identity token (HS256 JWT carried in a cookie or bearer header)
    JWT_SECRET = os.environ.get("JWT_SECRET", SECRET_KEY)
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRES_DAYS = _env_int("JWT_EXPIRES_DAYS", 30)
    AUTH_COOKIE_NAME = os.environ.get("AUTH_COOKIE_NAME", "devco_auth_token")
    AUTH_COOKIE_SECURE = os.environ.get("AUTH_COOKIE_SECURE", "false").lower() == "true"

    # QuickBooks Online
    QBO_CLIENT_ID = os.environ.get("QBO_CLIENT_ID", "")
    QBO_CLIENT_SECRET = os.environ.get("QBO_CLIENT_SECRET", "")
    QBO_REALM_ID = os.environ.get("QBO_REALM_ID", "")
    QBO_ENVIRONMENT = os.environ.get("QBO_ENVIRONMENT", "sandbox")  # or "production"
    QBO_REDIRECT_URI = os.environ.get(
        "QBO_REDIRECT_URI", "http://localhost:5000/api/auth/quickbooks/callback"
    )
    QBO_WEBHOOK_VERIFIER_TOKEN = os.environ.get("QBO_WEBHOOK_VERIFIER_TOKEN", "")
    QBO_HTTP_TIMEOUT_SECONDS = _env_int("QBO_HTTP_TIMEOUT_SECONDS", 30)

    # Newly created QBO entities are not always queryable right away
    QBO_CREATE_RESOLVE_DELAY_SECONDS = _env_float("QBO_CREATE_RESOLVE_DELAY_SECONDS", 5.0)
    QBO_CREATE_RESOLVE_RETRIES = _env_int("QBO_CREATE_RESOLVE_RETRIES", 2)

    # Intuit expects an acknowledgement within a few seconds
    QBO_WEBHOOK_ACK_BUDGET_SECONDS = _env_float("QBO_WEBHOOK_ACK_BUDGET_SECONDS", 2.5)
    QBO_WEBHOOK_WORKERS = _env_int("QBO_WEBHOOK_WORKERS", 4)

    WEBHOOK_LOG_RETENTION_DAYS = _env_int("WEBHOOK_LOG_RETENTION_DAYS", 30)

    # Post-login landing for the QuickBooks connect flow
    APP_URL = os.environ.get("APP_URL", "")
