"""
Module: banca_kernel.models.audit_event
Responsibility: ORM persistence for the operational audit trail written by
    AuditorService.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; UPDATE and DELETE raise
      ImmutabilityViolationError.
    - payload_hash = SHA-256 of the canonical JSON payload.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from banca_kernel.db.base import Base, UUIDString
from banca_kernel.exceptions import ImmutabilityViolationError


class AuditAction(str, Enum):
    """Types of auditable operations."""

    TRANSACTION_EXECUTED = "transaction_executed"
    TRANSACTION_FAILED = "transaction_failed"
    TRANSACTION_PENDING_APPROVAL = "transaction_pending_approval"
    TRANSACTION_SCHEDULED = "transaction_scheduled"
    TRANSACTION_APPROVED = "transaction_approved"
    TRANSACTION_REJECTED = "transaction_rejected"
    SCHEDULE_CANCELLED = "schedule_cancelled"
    BENEFICIARY_REGISTERED = "beneficiary_registered"
    BENEFICIARY_CONFIRMED = "beneficiary_confirmed"
    PROVIDER_REGISTERED = "provider_registered"


class AuditEvent(Base):
    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"


@event.listens_for(AuditEvent, "before_update")
def prevent_audit_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are append-only -- cannot modify",
    )


@event.listens_for(AuditEvent, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="AuditEvent",
        entity_id=str(target.id),
        reason="Audit events are append-only -- cannot delete",
    )
