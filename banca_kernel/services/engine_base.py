"""
MovementEngine -- orchestration shared by transfers and service payments.

Responsibility:
    The request path for one money movement: validate the request, replay a
    known idempotency key, resolve the destination into a MovementPlan,
    reserve the Transaction, then schedule it or precheck and settle it
    through ApprovalWorkflow.  Also the matured-schedule path used by the
    scheduler, cancellation, and approve/reject delegation.

Architecture position:
    Kernel > Services.  TransferenciaEngine and PagoServicioEngine subclass
    this and supply destination resolution.  The scheduler calls
    ``execute_scheduled`` through the same engine instance requests use.

Invariants enforced:
    - One Transaction per idempotency key; a replay returns the stored
      outcome and never moves money.
    - A future-dated request is stored Scheduled with a Schedule and no
      balance check.
    - Commission is priced once: at submission for immediate requests, at
      maturity for scheduled ones, and reused on approval.
    - Every public operation returns a TransactionRecord or raises a typed
      BancaError; SQLAlchemy errors surface as StorageError.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from banca_kernel.domain.clock import Clock, SystemClock
from banca_kernel.domain.destination import (
    Destination,
    ExternalBeneficiary,
    MovementPlan,
    ServiceProvider,
)
from banca_kernel.domain.policy import SchedulingPolicy, TransactionPolicy
from banca_kernel.domain.records import TransactionRecord
from banca_kernel.domain.transaction_state import (
    ScheduleStatus,
    TransactionKind,
    TransactionStatus,
    require_transition,
)
from banca_kernel.domain.values import PrecheckError, PrecheckResult
from banca_kernel.exceptions import (
    BancaError,
    ConfigurationError,
    ForbiddenError,
    InvalidStateError,
    StorageError,
    ValidationError,
)
from banca_kernel.logging_config import LogContext, get_logger
from banca_kernel.models.account import Account
from banca_kernel.models.audit_event import AuditAction
from banca_kernel.models.transaction import Schedule, Transaction
from banca_kernel.services.approval_workflow import ApprovalWorkflow
from banca_kernel.services.auditor_service import AuditorService
from banca_kernel.services.balance_ledger import BalanceLedger
from banca_kernel.services.base import BaseService, storage_guard
from banca_kernel.services.idempotency_guard import IdempotencyGuard
from banca_kernel.utils.hashing import hash_payload
from banca_kernel.utils.idempotency import validate_idempotency_key

logger = get_logger("services.engine")

DESCRIPTION_MAX_LENGTH = 500


def align_to(value: datetime, reference: datetime) -> datetime:
    """Give ``value`` the same naive/aware flavour as ``reference`` (UTC)."""
    if reference.tzinfo is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    if reference.tzinfo is None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class MovementEngine(BaseService):
    """Base class for the transfer and service-payment engines."""

    kind: TransactionKind

    def __init__(
        self,
        session: Session,
        policy: TransactionPolicy,
        scheduling: SchedulingPolicy | None = None,
        clock: Clock | None = None,
        *,
        ledger: BalanceLedger | None = None,
        guard: IdempotencyGuard | None = None,
        auditor: AuditorService | None = None,
        workflow: ApprovalWorkflow | None = None,
    ):
        super().__init__(session)
        self._policy = policy
        self._scheduling = scheduling or SchedulingPolicy()
        self._clock = clock or SystemClock()
        self._ledger = ledger or BalanceLedger(session, policy, self._clock)
        self._guard = guard or IdempotencyGuard(session)
        self._auditor = auditor or AuditorService(session, self._clock)
        self._workflow = workflow or ApprovalWorkflow(
            session, self._ledger, self._auditor, self._clock,
        )

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _resolve(
        self,
        client_id: UUID,
        source: Account,
        destination: Destination,
        currency: str,
    ) -> MovementPlan:
        """Turn a destination into a MovementPlan or raise a typed failure."""

    def _blocking_issues(self, plan: MovementPlan) -> tuple[PrecheckError, ...]:
        """Destination issues that fail a request even before scheduling."""
        return ()

    # ------------------------------------------------------------------
    # Request path
    # ------------------------------------------------------------------

    def _precheck_request(self, request: Any) -> PrecheckResult:
        with LogContext.bind(actor_id=request.client_id), \
                storage_guard(f"precheck_{self.kind.value}"):
            amount = self._validate(request)
            source = self._load_source(request)
            plan = self._resolve(
                request.client_id, source, request.destination, request.currency,
            )
            return self._precheck_plan(plan, amount, request.currency)

    def _execute(self, request: Any) -> TransactionRecord:
        key = validate_idempotency_key(request.idempotency_key)
        with LogContext.bind(actor_id=request.client_id, idempotency_key=key), \
                storage_guard(f"execute_{self.kind.value}"):
            existing = self._guard.find(key)
            if existing is not None:
                return self._replay(existing, request)

            amount = self._validate(request)
            source = self._load_source(request)
            plan = self._resolve(
                request.client_id, source, request.destination, request.currency,
            )
            request_hash = hash_payload(request.fingerprint())

            transaction, is_new = self._guard.reserve(
                key, lambda: self._build(request, amount, plan, source, request_hash),
            )
            if not is_new:
                return self._replay(transaction, request)

            with LogContext.bind(transaction_id=transaction.id):
                due_at = self._future_date(request.scheduled_for)
                blocking = self._blocking_issues(plan)
                if due_at is None:
                    precheck = self._precheck_plan(plan, amount, request.currency)
                    self._workflow.settle(transaction, precheck, request.client_id)
                elif blocking:
                    self._workflow.fail(transaction, blocking, request.client_id)
                else:
                    self._schedule(transaction, due_at, request.client_id)
                return transaction.to_dto()

    def _replay(self, transaction: Transaction, request: Any) -> TransactionRecord:
        if transaction.client_id != request.client_id:
            raise ForbiddenError(
                request.client_id, "Transaction", transaction.id,
                "idempotency key belongs to another client",
            )
        if transaction.request_hash != hash_payload(request.fingerprint()):
            logger.warning(
                "idempotency_payload_mismatch",
                extra={
                    "idempotency_key": transaction.idempotency_key,
                    "transaction_id": str(transaction.id),
                },
            )
        return transaction.to_dto()

    def _validate(self, request: Any) -> Decimal:
        """Check amount, currency, description and date; return the amount."""
        rule = self._policy.currency(request.currency)
        if rule is None:
            raise ValidationError("currency", f"{request.currency} is not supported")

        amount = request.amount
        if not isinstance(amount, Decimal) or not amount.is_finite():
            raise ValidationError("amount", "must be a finite Decimal")
        if amount <= 0:
            raise ValidationError("amount", "must be greater than zero")
        if amount != amount.quantize(rule.minor_unit):
            raise ValidationError(
                "amount", f"has more than {rule.decimal_places} decimal places",
            )
        if amount < rule.minimum_amount:
            raise ValidationError(
                "amount", f"minimum is {rule.minimum_amount} {rule.code}",
            )

        if request.description and len(request.description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                "description", f"must be at most {DESCRIPTION_MAX_LENGTH} characters",
            )

        if request.scheduled_for is not None:
            due_at = self._future_date(request.scheduled_for)
            lead = timedelta(minutes=self._scheduling.min_lead_minutes)
            if due_at is not None and due_at < self._clock.now() + lead:
                raise ValidationError(
                    "scheduled_for",
                    f"must be at least {self._scheduling.min_lead_minutes} minutes ahead",
                )
        return amount.quantize(rule.minor_unit)

    def _load_source(self, request: Any) -> Account:
        source = self._ledger.get_account(request.source_account_id)
        if source.client_id != request.client_id:
            raise ForbiddenError(request.client_id, "Account", source.id)
        return source

    def _future_date(self, scheduled_for: datetime | None) -> datetime | None:
        """The due date when it lies in the future, else None (run now)."""
        if scheduled_for is None:
            return None
        now = self._clock.now()
        scheduled_for = align_to(scheduled_for, now)
        return scheduled_for if scheduled_for > now else None

    def _build(
        self,
        request: Any,
        amount: Decimal,
        plan: MovementPlan,
        source: Account,
        request_hash: str,
    ) -> Transaction:
        destination = plan.destination
        transaction = Transaction(
            kind=self.kind.value,
            status=TransactionStatus.RECEIVED.value,
            idempotency_key=request.idempotency_key,
            request_hash=request_hash,
            client_id=request.client_id,
            source_account_id=source.id,
            amount=amount,
            currency=request.currency,
            tier=source.tier,
            destination_scope=plan.scope.value,
            destination_account_id=plan.credit_account_id,
            description=request.description,
            created_at=self._clock.now(),
        )
        if isinstance(destination, ExternalBeneficiary):
            transaction.beneficiary_id = destination.beneficiary_id
        elif isinstance(destination, ServiceProvider):
            transaction.provider_id = destination.provider_id
            transaction.contract_number = destination.contract_number
        return transaction

    def _precheck_plan(
        self,
        plan: MovementPlan,
        amount: Decimal,
        currency: str,
        tier: str | None = None,
        commission: Decimal | None = None,
    ) -> PrecheckResult:
        result = self._ledger.precheck(
            plan.source_account_id,
            amount,
            self.kind,
            tier,
            currency=currency,
            scope=plan.scope,
            commission=commission,
            credit_account_id=plan.credit_account_id,
        )
        return result.with_errors(plan.issues)

    def _schedule(self, transaction: Transaction, due_at: datetime, actor_id: UUID) -> None:
        require_transition(
            transaction.id, transaction.status, TransactionStatus.SCHEDULED, "schedule",
        )
        cutoff = timedelta(hours=self._scheduling.cancellation_cutoff_hours)
        transaction.status = TransactionStatus.SCHEDULED.value
        transaction.schedule = Schedule(
            due_at=due_at,
            cancel_deadline=due_at - cutoff,
            status=ScheduleStatus.PENDING.value,
            created_at=self._clock.now(),
        )
        self._session.flush()

        self._auditor.record(
            actor_id,
            AuditAction.TRANSACTION_SCHEDULED,
            f"{transaction.kind} scheduled for {due_at.isoformat()}",
            {"due_at": due_at},
            entity_id=transaction.id,
        )
        logger.info(
            "transaction_scheduled",
            extra={"transaction_id": str(transaction.id), "due_at": due_at.isoformat()},
        )

    # ------------------------------------------------------------------
    # Scheduled path
    # ------------------------------------------------------------------

    def execute_scheduled(
        self,
        transaction_id: UUID,
        actor_id: UUID | None = None,
    ) -> TransactionRecord:
        """
        Run a matured Scheduled transaction through precheck and settlement.

        The destination is resolved again at maturity; a destination that
        has since become unusable fails the transaction.  The row is locked
        for the rest of the unit of work, so a concurrent cancel and a
        second scheduler serialize behind it.

        Raises:
            TransactionNotFoundError: Unknown id.
            InvalidStateError: Not Scheduled any more, or not yet due.
        """
        with LogContext.bind(transaction_id=transaction_id), \
                storage_guard("execute_scheduled"):
            transaction = self._workflow.load_for_update(transaction_id)
            if transaction.status != TransactionStatus.SCHEDULED.value:
                raise InvalidStateError(transaction.id, transaction.status, "execute scheduled")
            schedule = transaction.schedule
            now = self._clock.now()
            if schedule is not None and align_to(schedule.due_at, now) > now:
                raise InvalidStateError(transaction.id, transaction.status, "execute before due date")

            actor_id = actor_id or transaction.client_id
            try:
                source = self._ledger.get_account(transaction.source_account_id)
                plan = self._resolve(
                    transaction.client_id, source, transaction.destination, transaction.currency,
                )
            except (StorageError, ConfigurationError):
                raise
            except BancaError as exc:
                self._workflow.fail(
                    transaction, (PrecheckError(exc.code, str(exc)),), actor_id,
                )
            else:
                precheck = self._precheck_plan(
                    plan,
                    transaction.amount,
                    transaction.currency,
                    tier=transaction.tier,
                    commission=transaction.commission,
                )
                self._workflow.settle(transaction, precheck, actor_id)

            if schedule is not None:
                schedule.status = (
                    ScheduleStatus.FAILED.value
                    if transaction.status == TransactionStatus.FAILED.value
                    else ScheduleStatus.EXECUTED.value
                )
                schedule.attempts += 1
                schedule.processed_at = now
                self._session.flush()

            logger.info(
                "scheduled_transaction_processed",
                extra={"transaction_id": str(transaction.id), "outcome": transaction.status},
            )
            return transaction.to_dto()

    def cancel_scheduled(self, transaction_id: UUID, client_id: UUID) -> TransactionRecord:
        """
        Cancel a Scheduled transaction owned by ``client_id``.

        Raises:
            TransactionNotFoundError: Unknown id.
            ForbiddenError: Another client's transaction.
            InvalidStateError: Not Scheduled, or past the cancellation deadline.
        """
        with LogContext.bind(actor_id=client_id, transaction_id=transaction_id), \
                storage_guard("cancel_scheduled"):
            transaction = self._workflow.load_for_update(transaction_id)
            if transaction.client_id != client_id:
                raise ForbiddenError(client_id, "Transaction", transaction_id)
            if transaction.status != TransactionStatus.SCHEDULED.value:
                raise InvalidStateError(transaction.id, transaction.status, "cancel")

            schedule = transaction.schedule
            now = self._clock.now()
            if schedule is not None and now > align_to(schedule.cancel_deadline, now):
                raise InvalidStateError(
                    transaction.id, transaction.status, "cancel after the cancellation deadline",
                )

            require_transition(
                transaction.id, transaction.status, TransactionStatus.CANCELLED, "cancel",
            )
            transaction.status = TransactionStatus.CANCELLED.value
            transaction.schedule = None
            self._session.flush()

            self._auditor.record(
                client_id,
                AuditAction.SCHEDULE_CANCELLED,
                f"Scheduled {transaction.kind} cancelled",
                entity_id=transaction.id,
            )
            logger.info("schedule_cancelled", extra={"transaction_id": str(transaction.id)})
            return transaction.to_dto()

    # ------------------------------------------------------------------
    # Manager decisions
    # ------------------------------------------------------------------

    def approve(self, transaction_id: UUID, approver_id: UUID) -> TransactionRecord:
        return self._workflow.approve(transaction_id, approver_id)

    def reject(self, transaction_id: UUID, approver_id: UUID, reason: str) -> TransactionRecord:
        return self._workflow.reject(transaction_id, approver_id, reason)
