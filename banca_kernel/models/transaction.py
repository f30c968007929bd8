"""
Module: banca_kernel.models.transaction
Responsibility: ORM persistence for banking transactions (transfers and
    service payments) and their 1:1 execution schedules.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types.

Invariants enforced:
    - idempotency_key is globally unique (UNIQUE constraint); it is the sole
      deduplication mechanism, there is no separate idempotency table.
    - amount > 0, commission >= 0 (check constraints).
    - A transaction whose persisted status is terminal is immutable: the
      before_update listener raises ImmutabilityViolationError.
    - A Schedule exists only while its transaction is or was Scheduled; the
      Schedule is the authoritative due-date holder and Transaction.status
      the execution state.

Failure modes:
    - IntegrityError on duplicate idempotency_key (caught by IdempotencyGuard).
    - ImmutabilityViolationError on UPDATE of a terminal transaction.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from banca_kernel.db.base import TrackedBase, UUIDString
from banca_kernel.domain.destination import (
    Destination,
    ExternalBeneficiary,
    InternalAccount,
    ServiceProvider,
)
from banca_kernel.domain.records import ScheduleRecord, TransactionRecord
from banca_kernel.domain.transaction_state import (
    TERMINAL_STATUSES,
    ScheduleStatus,
    TransactionKind,
    TransactionStatus,
)
from banca_kernel.domain.values import PrecheckError
from banca_kernel.exceptions import ImmutabilityViolationError


class Transaction(TrackedBase):
    """A money movement requested by a client."""

    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_positive_amount"),
        CheckConstraint("commission >= 0", name="ck_transactions_non_negative_commission"),
        CheckConstraint(
            "kind IN ('transfer', 'service_payment')",
            name="ck_transactions_valid_kind",
        ),
        CheckConstraint(
            "status IN ('received', 'pending_approval', 'scheduled', 'successful', "
            "'failed', 'cancelled', 'rejected')",
            name="ck_transactions_valid_status",
        ),
        Index("ix_transactions_client_created", "client_id", "created_at"),
        Index("ix_transactions_source_status", "source_account_id", "status"),
        Index("ix_transactions_status", "status"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.RECEIVED.value,
    )
    idempotency_key: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    request_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    client_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    source_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    # None until priced; a Scheduled transaction is priced at maturity
    commission: Mapped[Decimal | None] = mapped_column(nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    tier: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Destination: exactly one of the three shapes is populated
    destination_scope: Mapped[str] = mapped_column(String(20), nullable=False)
    destination_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True,
    )
    beneficiary_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("beneficiaries.id"), nullable=True,
    )
    provider_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("providers.id"), nullable=True,
    )
    contract_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    receipt_reference: Mapped[str | None] = mapped_column(
        String(40), nullable=True, unique=True,
    )
    balance_before: Mapped[Decimal | None] = mapped_column(nullable=True)
    balance_after: Mapped[Decimal | None] = mapped_column(nullable=True)
    errors: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)

    approver_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    schedule: Mapped[Schedule | None] = relationship(
        "Schedule",
        back_populates="transaction",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def destination(self) -> Destination:
        """Rebuild the destination variant from the stored columns."""
        if self.provider_id is not None:
            return ServiceProvider(self.provider_id, self.contract_number or "")
        if self.beneficiary_id is not None:
            return ExternalBeneficiary(self.beneficiary_id)
        return InternalAccount(self.destination_account_id)

    @property
    def is_terminal(self) -> bool:
        return TransactionStatus(self.status) in TERMINAL_STATUSES

    def record_errors(self, errors: tuple[PrecheckError, ...] | list[PrecheckError]) -> None:
        self.errors = [e.to_dict() for e in errors]

    def _destination_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"scope": self.destination_scope}
        if self.provider_id is not None:
            detail.update(
                type="provider",
                provider_id=str(self.provider_id),
                contract_number=self.contract_number,
            )
        elif self.beneficiary_id is not None:
            detail.update(type="beneficiary", beneficiary_id=str(self.beneficiary_id))
        else:
            detail.update(
                type="internal_account",
                account_id=str(self.destination_account_id),
            )
        return detail

    def to_dto(self) -> TransactionRecord:
        """Convert ORM model to frozen record."""
        return TransactionRecord(
            transaction_id=self.id,
            kind=TransactionKind(self.kind),
            status=TransactionStatus(self.status),
            idempotency_key=self.idempotency_key,
            client_id=self.client_id,
            source_account_id=self.source_account_id,
            amount=self.amount,
            commission=self.commission,
            currency=self.currency,
            created_at=self.created_at,
            destination=self._destination_detail(),
            description=self.description,
            executed_at=self.executed_at,
            receipt_reference=self.receipt_reference,
            balance_before=self.balance_before,
            balance_after=self.balance_after,
            errors=tuple(PrecheckError.from_dict(e) for e in (self.errors or [])),
            approver_id=self.approver_id,
            rejection_reason=self.rejection_reason,
            schedule=self.schedule.to_dto() if self.schedule is not None else None,
        )

    def __repr__(self) -> str:
        return f"<Transaction {self.id} {self.kind} {self.status} {self.amount} {self.currency}>"


class Schedule(TrackedBase):
    """Due date of a scheduled transaction (1:1)."""

    __tablename__ = "schedules"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'executed', 'failed')",
            name="ck_schedules_valid_status",
        ),
        Index("ix_schedules_status_due", "status", "due_at"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("transactions.id"), nullable=False, unique=True,
    )
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    cancel_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ScheduleStatus.PENDING.value,
    )
    attempts: Mapped[int] = mapped_column(nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    transaction: Mapped[Transaction] = relationship("Transaction", back_populates="schedule")

    def to_dto(self) -> ScheduleRecord:
        return ScheduleRecord(
            schedule_id=self.id,
            transaction_id=self.transaction_id,
            due_at=self.due_at,
            cancel_deadline=self.cancel_deadline,
            status=ScheduleStatus(self.status),
            attempts=self.attempts,
            last_error=self.last_error,
        )


@event.listens_for(Transaction, "before_update")
def prevent_terminal_transaction_update(mapper, connection, target):
    """Refuse to write to a transaction already persisted in a terminal state."""
    history = inspect(target).attrs.status.history
    persisted = history.deleted[0] if history.deleted else target.status
    if TransactionStatus(persisted) in TERMINAL_STATUSES:
        raise ImmutabilityViolationError(
            entity_type="Transaction",
            entity_id=str(target.id),
            reason=f"status {persisted} is terminal",
        )
