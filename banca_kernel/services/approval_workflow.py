"""
ApprovalWorkflow -- decides whether a transaction executes now, waits for a
manager, or fails, and carries out manager decisions.

Responsibility:
    - ``decide``: pure routing from a precheck (errors -> Failed,
      requires_approval -> PendingApproval, otherwise Successful).
    - ``settle``: applies that routing to a reserved or matured transaction.
    - ``approve`` / ``reject``: manager decisions on PendingApproval.

Architecture position:
    Kernel > Services.  Used by both engines and, through them, by the
    scheduler.  Only this service moves a transaction into Successful,
    Failed or Rejected.

Invariants enforced:
    - Every status change passes ``require_transition``; an illegal move
      raises InvalidStateError instead of overwriting the status.
    - Money moves only through BalanceLedger.apply_movement, using the
      commission stored on the transaction.
    - ``reject`` never touches balances.
    - The approver may not be the owning client.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from banca_kernel.domain.clock import Clock, SystemClock
from banca_kernel.domain.destination import DestinationScope
from banca_kernel.domain.records import TransactionRecord
from banca_kernel.domain.transaction_state import (
    TransactionKind,
    TransactionStatus,
    require_transition,
)
from banca_kernel.domain.values import PrecheckError, PrecheckResult
from banca_kernel.exceptions import (
    AccountError,
    ConcurrentBalanceViolationError,
    ForbiddenError,
    InvalidStateError,
    TransactionNotFoundError,
    ValidationError,
)
from banca_kernel.logging_config import LogContext, get_logger
from banca_kernel.models.audit_event import AuditAction
from banca_kernel.models.transaction import Transaction
from banca_kernel.services.auditor_service import AuditorService
from banca_kernel.services.balance_ledger import BalanceLedger
from banca_kernel.services.base import BaseService, storage_guard

logger = get_logger("services.approval_workflow")

REJECTION_REASON_MAX_LENGTH = 500


class ApprovalWorkflow(BaseService):
    def __init__(
        self,
        session: Session,
        ledger: BalanceLedger,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._ledger = ledger
        self._auditor = auditor
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    @staticmethod
    def decide(precheck: PrecheckResult) -> TransactionStatus:
        if not precheck.can_execute:
            return TransactionStatus.FAILED
        if precheck.requires_approval:
            return TransactionStatus.PENDING_APPROVAL
        return TransactionStatus.SUCCESSFUL

    def settle(
        self,
        transaction: Transaction,
        precheck: PrecheckResult,
        actor_id: UUID,
    ) -> Transaction:
        """Move a RECEIVED or matured SCHEDULED transaction to its next state."""
        target = self.decide(precheck)
        if target is TransactionStatus.FAILED:
            return self.fail(transaction, precheck.errors, actor_id, precheck)

        if transaction.commission is None:
            transaction.commission = precheck.commission

        if target is TransactionStatus.PENDING_APPROVAL:
            require_transition(transaction.id, transaction.status, target, "hold for approval")
            transaction.status = target.value
            transaction.balance_before = precheck.balance_before
            self._session.flush()
            self._auditor.record(
                actor_id,
                AuditAction.TRANSACTION_PENDING_APPROVAL,
                f"{transaction.kind} of {transaction.amount} {transaction.currency} awaits approval",
                {
                    "total_debit": precheck.total_debit,
                    "approval_threshold": precheck.approval_threshold,
                },
                entity_id=transaction.id,
            )
            logger.info(
                "transaction_pending_approval",
                extra={
                    "transaction_id": str(transaction.id),
                    "total_debit": str(precheck.total_debit),
                    "approval_threshold": str(precheck.approval_threshold),
                },
            )
            return transaction

        return self._execute(transaction, actor_id)

    def fail(
        self,
        transaction: Transaction,
        errors: tuple[PrecheckError, ...],
        actor_id: UUID,
        precheck: PrecheckResult | None = None,
    ) -> Transaction:
        """Record a definitive business-rule failure."""
        require_transition(transaction.id, transaction.status, TransactionStatus.FAILED, "fail")
        transaction.status = TransactionStatus.FAILED.value
        transaction.executed_at = self._clock.now()
        transaction.record_errors(errors)
        if precheck is not None:
            if transaction.commission is None:
                transaction.commission = precheck.commission
            transaction.balance_before = precheck.balance_before
        self._session.flush()

        codes = [e.code for e in errors]
        self._auditor.record(
            actor_id,
            AuditAction.TRANSACTION_FAILED,
            f"{transaction.kind} failed: {', '.join(codes)}",
            {"errors": [e.to_dict() for e in errors]},
            entity_id=transaction.id,
        )
        logger.info(
            "transaction_failed",
            extra={"transaction_id": str(transaction.id), "error_codes": codes},
        )
        return transaction

    def _execute(self, transaction: Transaction, actor_id: UUID) -> Transaction:
        require_transition(
            transaction.id, transaction.status, TransactionStatus.SUCCESSFUL, "execute",
        )
        try:
            receipt = self._ledger.apply_movement(
                transaction.source_account_id,
                transaction.destination_account_id,
                transaction.amount,
                transaction.commission,
                kind=TransactionKind(transaction.kind),
            )
        except (ConcurrentBalanceViolationError, AccountError) as exc:
            return self.fail(transaction, (PrecheckError(exc.code, str(exc)),), actor_id)

        transaction.status = TransactionStatus.SUCCESSFUL.value
        transaction.executed_at = receipt.executed_at
        transaction.receipt_reference = receipt.reference
        transaction.balance_before = receipt.source_balance_before
        transaction.balance_after = receipt.source_balance_after
        self._session.flush()

        self._auditor.record(
            actor_id,
            AuditAction.TRANSACTION_EXECUTED,
            f"{transaction.kind} of {transaction.amount} {transaction.currency} executed",
            {
                "reference": receipt.reference,
                "commission": receipt.commission,
                "destination_account_id": receipt.destination_account_id,
            },
            entity_id=transaction.id,
        )
        logger.info(
            "transaction_executed",
            extra={
                "transaction_id": str(transaction.id),
                "kind": transaction.kind,
                "reference": receipt.reference,
                "amount": str(transaction.amount),
                "commission": str(transaction.commission),
            },
        )
        return transaction

    # ------------------------------------------------------------------
    # Manager decisions
    # ------------------------------------------------------------------

    def approve(self, transaction_id: UUID, approver_id: UUID) -> TransactionRecord:
        """
        Approve a PendingApproval transaction.

        Re-runs the precheck with the stored commission; executes when it
        still passes, otherwise records Failed with the precheck errors.

        Raises:
            TransactionNotFoundError, ForbiddenError, InvalidStateError.
        """
        with LogContext.bind(actor_id=approver_id, transaction_id=transaction_id), \
                storage_guard("approve"):
            transaction = self._load_pending(transaction_id, approver_id, "approve")
            precheck = self.precheck_stored(transaction)

            transaction.approver_id = approver_id
            transaction.decided_at = self._clock.now()
            if precheck.can_execute:
                self._execute(transaction, approver_id)
            else:
                self.fail(transaction, precheck.errors, approver_id, precheck)

            self._auditor.record(
                approver_id,
                AuditAction.TRANSACTION_APPROVED,
                f"Approval recorded, outcome {transaction.status}",
                {"outcome": transaction.status},
                entity_id=transaction.id,
            )
            logger.info(
                "approval_decision_recorded",
                extra={
                    "transaction_id": str(transaction.id),
                    "decision": "approve",
                    "new_status": transaction.status,
                },
            )
            return transaction.to_dto()

    def reject(self, transaction_id: UUID, approver_id: UUID, reason: str) -> TransactionRecord:
        """
        Reject a PendingApproval transaction.  Balances are never touched.

        Raises:
            ValidationError: Empty or oversized reason.
            TransactionNotFoundError, ForbiddenError, InvalidStateError.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("reason", "is required")
        if len(reason) > REJECTION_REASON_MAX_LENGTH:
            raise ValidationError(
                "reason", f"must be at most {REJECTION_REASON_MAX_LENGTH} characters",
            )

        with LogContext.bind(actor_id=approver_id, transaction_id=transaction_id), \
                storage_guard("reject"):
            transaction = self._load_pending(transaction_id, approver_id, "reject")
            require_transition(
                transaction.id, transaction.status, TransactionStatus.REJECTED, "reject",
            )
            transaction.status = TransactionStatus.REJECTED.value
            transaction.approver_id = approver_id
            transaction.decided_at = self._clock.now()
            transaction.rejection_reason = reason
            prefix = f"{transaction.description} | " if transaction.description else ""
            transaction.description = f"{prefix}Rejected: {reason}"[:4000]
            self._session.flush()

            self._auditor.record(
                approver_id,
                AuditAction.TRANSACTION_REJECTED,
                f"{transaction.kind} rejected",
                {"reason": reason},
                entity_id=transaction.id,
            )
            logger.info(
                "approval_decision_recorded",
                extra={
                    "transaction_id": str(transaction.id),
                    "decision": "reject",
                    "new_status": transaction.status,
                },
            )
            return transaction.to_dto()

    def precheck_stored(self, transaction: Transaction) -> PrecheckResult:
        """Precheck a persisted transaction against current balances."""
        return self._ledger.precheck(
            transaction.source_account_id,
            transaction.amount,
            TransactionKind(transaction.kind),
            transaction.tier,
            currency=transaction.currency,
            scope=DestinationScope(transaction.destination_scope),
            commission=transaction.commission,
            credit_account_id=transaction.destination_account_id,
        )

    def load_for_update(self, transaction_id: UUID) -> Transaction:
        """Lock the transaction row for the rest of the unit of work."""
        transaction = self._session.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    def _load_pending(self, transaction_id: UUID, approver_id: UUID, action: str) -> Transaction:
        transaction = self.load_for_update(transaction_id)
        if transaction.client_id == approver_id:
            raise ForbiddenError(
                approver_id, "Transaction", transaction_id,
                "clients cannot decide on their own transactions",
            )
        if transaction.status != TransactionStatus.PENDING_APPROVAL.value:
            raise InvalidStateError(transaction.id, transaction.status, action)
        return transaction
