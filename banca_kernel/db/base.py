"""
Module: banca_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, type annotation map for consistent column
    types, and the TrackedBase mixin for row timestamps.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/, selectors/ or domain/.
Invariants enforced:
    - UUID primary keys: every model inherits a uuid4-generated primary key.
    - Decimal precision: Python Decimal maps to MoneyType, NUMERIC(38, 9) on
      PostgreSQL and a scaled integer on SQLite.  NEVER use float for
      monetary amounts, in Python or in SQL.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36) for cross-database portability."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


# Fixed-point scale of money columns on SQLite (units of 10**-4)
SQLITE_MONEY_SCALE = 4


class MoneyType(TypeDecorator):
    """
    Exact money column.

    PostgreSQL stores NUMERIC(38, 9).  SQLite has no exact decimal type, so
    there amounts are stored as integers in units of 10**-SQLITE_MONEY_SCALE;
    comparisons and SUM() in SQL stay exact on both.
    """

    impl = Numeric(38, 9)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(BigInteger())
        return dialect.type_descriptor(Numeric(38, 9))

    def process_bind_param(self, value, dialect):
        if isinstance(value, float):
            raise ValueError("Monetary amounts must not be floats")
        if value is None or dialect.name != "sqlite":
            return value
        scaled = Decimal(value).scaleb(SQLITE_MONEY_SCALE)
        if scaled != scaled.to_integral_value():
            raise ValueError(
                f"{value} has more than {SQLITE_MONEY_SCALE} decimal places",
            )
        return int(scaled)

    def process_result_value(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return Decimal(int(value)).scaleb(-SQLITE_MONEY_SCALE)


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is always a uuid4-generated UUID stored as String(36).
        - Decimal maps to MoneyType (NUMERIC(38, 9), scaled integer on SQLite).
        - datetime maps to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: MoneyType(),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with row timestamps.

    created_at defaults to the database clock but services that need
    clock-consistent timestamps (transactions, schedules) set it explicitly
    from the injected Clock.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# Re-export UUID for convenience
UUID = PyUUID
