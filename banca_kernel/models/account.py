"""
Module: banca_kernel.models.account
Responsibility: ORM persistence for client bank accounts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - balance >= 0 (DB check constraint; BalanceLedger re-validates in the
      conditional UPDATE that moves money).
    - balance changes only through BalanceLedger.apply_movement, which bumps
      ``version`` on every write.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from banca_kernel.db.base import TrackedBase, UUIDString


class AccountStatus(str, Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"
    CLOSED = "closed"


class AccountType(str, Enum):
    SAVINGS = "savings"
    CHECKING = "checking"
    INVESTMENT = "investment"
    FIXED_TERM = "fixed_term"


class Account(TrackedBase):
    """A client's account.  Opened and blocked/closed by external services."""

    __tablename__ = "accounts"

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_non_negative_balance"),
        CheckConstraint(
            "status IN ('active', 'blocked', 'closed')",
            name="ck_accounts_valid_status",
        ),
        Index("ix_accounts_client", "client_id"),
    )

    account_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    client_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    account_type: Mapped[str] = mapped_column(
        String(30), nullable=False, default=AccountType.SAVINGS.value,
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AccountStatus.ACTIVE.value,
    )
    tier: Mapped[str] = mapped_column(String(30), nullable=False, default="standard")
    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    version: Mapped[int] = mapped_column(nullable=False, default=0)

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE.value

    def __repr__(self) -> str:
        return f"<Account {self.account_number} {self.currency} {self.status}>"
