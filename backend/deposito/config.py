# backend/deposito/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/deposito.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///deposito.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound for waiting on locks / pooled connections
    PERSISTENCE_TIMEOUT_SECONDS = float(os.environ.get("PERSISTENCE_TIMEOUT_SECONDS", "5"))

    # Optimistic-lock conflicts are retried this many times before surfacing
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF_SECONDS = float(os.environ.get("LEDGER_RETRY_BACKOFF_SECONDS", "0.05"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "R$")


def engine_options(database_uri: str, timeout_seconds: float) -> dict:
    """
    Build SQLALCHEMY_ENGINE_OPTIONS so no persistence call can block forever.

    - sqlite: busy timeout on the driver connection
    - postgresql: lock/statement timeouts plus pool checkout timeout
    - others: pool checkout timeout only
    """
    if database_uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout_seconds}}

    options: dict = {"pool_timeout": timeout_seconds}
    if database_uri.startswith("postgresql"):
        millis = int(timeout_seconds * 1000)
        options["connect_args"] = {
            "options": f"-c lock_timeout={millis} -c statement_timeout={millis}",
        }
    return options
