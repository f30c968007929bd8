"""
Frozen read models returned across the engine boundary.

Engines and selectors hand these out instead of ORM instances, so callers
never hold a live row they could mutate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from banca_kernel.domain.transaction_state import (
    TERMINAL_STATUSES,
    ScheduleStatus,
    TransactionKind,
    TransactionStatus,
)
from banca_kernel.domain.values import PrecheckError


@dataclass(frozen=True)
class ScheduleRecord:
    schedule_id: UUID
    transaction_id: UUID
    due_at: datetime
    cancel_deadline: datetime
    status: ScheduleStatus
    attempts: int = 0
    last_error: str | None = None


@dataclass(frozen=True)
class TransactionRecord:
    transaction_id: UUID
    kind: TransactionKind
    status: TransactionStatus
    idempotency_key: str
    client_id: UUID
    source_account_id: UUID
    amount: Decimal
    commission: Decimal | None
    currency: str
    created_at: datetime
    destination: dict[str, Any] = field(default_factory=dict)
    description: str | None = None
    executed_at: datetime | None = None
    receipt_reference: str | None = None
    balance_before: Decimal | None = None
    balance_after: Decimal | None = None
    errors: tuple[PrecheckError, ...] = ()
    approver_id: UUID | None = None
    rejection_reason: str | None = None
    schedule: ScheduleRecord | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def total_debit(self) -> Decimal:
        return self.amount + (self.commission or Decimal("0"))

    @property
    def error_codes(self) -> tuple[str, ...]:
        return tuple(e.code for e in self.errors)
