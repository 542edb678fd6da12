"""
Configuration helpers for the clientdesk backend.

Settings are read from environment variables once and cached; tests call
``get_settings.cache_clear()`` after changing the environment.
"""

from dataclasses import dataclass
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    log_level: str
    store_backend: str
    database_url: str
    table_prefix: str
    store_timeout_seconds: float
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_from: str
    verification_code_ttl_seconds: int
    min_password_length: int


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _int(value: str, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _float(value: str, default: float = 0.0) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    backend = (os.getenv("STORE_BACKEND") or "sql").strip().lower()
    if backend not in {"sql", "memory"}:
        backend = "sql"

    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        store_backend=backend,
        database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./clientdesk.db").strip(),
        table_prefix=os.getenv("TABLE_PREFIX", "exceptionz-"),
        store_timeout_seconds=max(0.0, _float(os.getenv("STORE_TIMEOUT_SECONDS", "0"), 0.0)),
        smtp_host=os.getenv("SMTP_HOST", ""),
        smtp_port=_int(os.getenv("SMTP_PORT", "465"), 465),
        smtp_user=os.getenv("SMTP_USER", ""),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        smtp_from=os.getenv("SMTP_FROM", os.getenv("SMTP_USER", "")),
        verification_code_ttl_seconds=_int(os.getenv("VERIFICATION_CODE_TTL_SECONDS", "600"), 600),
        min_password_length=_int(os.getenv("MIN_PASSWORD_LENGTH", "6"), 6),
    )
