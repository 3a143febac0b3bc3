"""Database layer - engine, declarative base, and column types."""

from expense_kernel.db.base import UUID, Base, TimestampedBase, UUIDString
from expense_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
)

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "create_tables",
    "reset_engine",
    "Base",
    "TimestampedBase",
    "UUIDString",
    "UUID",
]
