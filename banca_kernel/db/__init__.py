"""Database layer - engine, base classes and column types."""

from banca_kernel.db.base import SQLITE_MONEY_SCALE, UUID, Base, MoneyType, TrackedBase, UUIDString
from banca_kernel.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from banca_kernel.db.types import minor_unit, to_money, truncate_money

__all__ = [
    "Base",
    "MoneyType",
    "SQLITE_MONEY_SCALE",
    "TrackedBase",
    "UUID",
    "UUIDString",
    "build_engine",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "minor_unit",
    "reset_engine",
    "session_scope",
    "to_money",
    "truncate_money",
]
