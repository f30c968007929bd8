"""
Value objects produced by BalanceLedger.

``PrecheckResult`` is the structured outcome of a precheck: balances,
commission, limits and the list of business-rule errors.  ``Receipt`` is the
outcome of an applied movement.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID


@dataclass(frozen=True)
class PrecheckError:
    """One business-rule failure; ``code`` matches the exception class code."""

    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PrecheckError:
        return cls(code=data["code"], message=data.get("message", ""))


@dataclass(frozen=True)
class PrecheckResult:
    account_id: UUID
    currency: str
    balance_before: Decimal
    amount: Decimal
    commission: Decimal
    total_debit: Decimal
    balance_after: Decimal
    available_limit: Decimal
    approval_threshold: Decimal
    requires_approval: bool
    errors: tuple[PrecheckError, ...] = field(default_factory=tuple)

    @property
    def can_execute(self) -> bool:
        return not self.errors

    @property
    def error_codes(self) -> tuple[str, ...]:
        return tuple(e.code for e in self.errors)

    def with_errors(self, extra: Iterable[PrecheckError]) -> PrecheckResult:
        """Copy with additional errors appended (destination-level issues)."""
        extra = tuple(extra)
        if not extra:
            return self
        return replace(self, errors=self.errors + extra)


@dataclass(frozen=True)
class Receipt:
    reference: str
    executed_at: datetime
    source_account_id: UUID
    source_balance_before: Decimal
    source_balance_after: Decimal
    amount: Decimal
    commission: Decimal
    destination_account_id: UUID | None = None
    destination_balance_after: Decimal | None = None
