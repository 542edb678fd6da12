"""Shared fixtures: in-memory and temporary SQLite gateways with fresh settings."""
from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Make the clientdesk package importable when running the tests from a checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from clientdesk.core import config as core_config  # noqa: E402
from clientdesk.db import session as db_session  # noqa: E402
from clientdesk.repositories.entities import Tables  # noqa: E402
from clientdesk.repositories.gateway import DocumentGateway  # noqa: E402
from clientdesk.repositories.memory_storage import MemoryBackend  # noqa: E402


class FakeClock:
    """Controllable replacement for ``datetime.now(timezone.utc)``."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def _clear_caches() -> None:
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    """Memory backend, no SMTP and default TTLs for every test."""
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("TABLE_PREFIX", "test-")
    for name in ("SMTP_HOST", "SMTP_USER", "SMTP_PASSWORD", "SMTP_FROM", "STORE_TIMEOUT_SECONDS"):
        monkeypatch.delenv(name, raising=False)
    _clear_caches()
    yield
    _clear_caches()


@pytest.fixture()
def tables() -> Tables:
    return Tables.with_prefix("test-")


@pytest.fixture()
def gateway() -> DocumentGateway:
    return DocumentGateway(MemoryBackend())


@pytest.fixture()
async def sql_gateway(tmp_path, monkeypatch):
    """Gateway over a temporary SQLite file through aiosqlite."""
    from clientdesk.repositories.sql_storage import SQLBackend

    db_file = tmp_path / "test.db"
    monkeypatch.setenv("STORE_BACKEND", "sql")
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{db_file}")
    _clear_caches()

    engine = db_session.get_engine()
    await db_session.create_tables(engine)
    gw = DocumentGateway(SQLBackend(engine))

    yield gw

    await engine.dispose()
    _clear_caches()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
