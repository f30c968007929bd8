"""
AuditorService -- operational audit trail for money movements.

Responsibility:
    ``record`` is fire-and-forget from the caller's perspective: the audit
    row is written inside a SAVEPOINT and any failure is rolled back to that
    savepoint and logged as ``audit_record_failed``.  An audit failure never
    blocks or rolls back the financial operation that triggered it.

Architecture position:
    Kernel > Services.  Called by the engines, ApprovalWorkflow,
    BeneficiaryService and ProviderService after their own flush.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from banca_kernel.domain.clock import Clock, SystemClock
from banca_kernel.logging_config import get_logger
from banca_kernel.models.audit_event import AuditAction, AuditEvent
from banca_kernel.services.base import BaseService
from banca_kernel.utils.hashing import hash_payload, to_json_safe

logger = get_logger("services.auditor")


class AuditorService(BaseService):
    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        actor_id: UUID,
        operation_type: AuditAction,
        description: str,
        detail: dict[str, Any] | None = None,
        *,
        entity_type: str = "Transaction",
        entity_id: UUID | None = None,
    ) -> AuditEvent | None:
        """
        Record an audit event without ever failing the caller.

        Returns the event, or None when writing it failed.
        """
        try:
            with self._session.begin_nested():
                return self._create_audit_event(
                    actor_id, operation_type, description, detail,
                    entity_type=entity_type, entity_id=entity_id,
                )
        except Exception:
            logger.warning(
                "audit_record_failed",
                extra={
                    "operation_type": AuditAction(operation_type).value,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id) if entity_id else None,
                },
                exc_info=True,
            )
            return None

    def _create_audit_event(
        self,
        actor_id: UUID,
        operation_type: AuditAction,
        description: str,
        detail: dict[str, Any] | None = None,
        *,
        entity_type: str = "Transaction",
        entity_id: UUID | None = None,
    ) -> AuditEvent:
        payload = to_json_safe(detail or {})
        event = AuditEvent(
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction(operation_type).value,
            actor_id=actor_id,
            description=description[:1000],
            occurred_at=self._clock.now(),
            payload=payload,
            payload_hash=hash_payload(payload),
        )
        self._session.add(event)
        self._session.flush()
        return event
