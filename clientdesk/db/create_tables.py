"""Utility script to create the initial database schema."""
from __future__ import annotations

import asyncio

from sqlalchemy.exc import SQLAlchemyError

from clientdesk.core.config import get_settings
from clientdesk.core.logging_config import setup_logging

from .session import create_tables, get_engine


async def create_all() -> None:
    engine = get_engine()
    try:
        await create_tables(engine)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging(get_settings().log_level)
    try:
        asyncio.run(create_all())
        print("Database tables created successfully.")
    except SQLAlchemyError as exc:
        raise SystemExit(f"Failed to create tables: {exc}") from exc
