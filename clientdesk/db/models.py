"""SQLAlchemy model holding every logical table as schemaless JSON documents."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, JSON, String, func

from .session import Base


class Document(Base):
    __tablename__ = "documents"

    table_name = Column(String(128), primary_key=True)
    id = Column(String(255), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
