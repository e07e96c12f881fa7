"""Database package: shared engine, session factory, and upsert helpers."""

from app.db.base import Base, close_db, dialect_insert, get_session_factory, init_db

__all__ = [
    "Base",
    "close_db",
    "dialect_insert",
    "get_session_factory",
    "init_db",
]
