"""Database helpers (engine/session export)."""

from .session import Base, create_tables, get_engine, make_sessionmaker

__all__ = ["Base", "create_tables", "get_engine", "make_sessionmaker"]
