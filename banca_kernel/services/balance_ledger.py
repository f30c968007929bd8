"""
BalanceLedger -- the sole authority permitted to change an account balance.

Responsibility:
    Balance reads, prechecks (commission, limits, resulting balance and the
    list of business-rule errors) and the atomic debit/credit of a movement.

Architecture position:
    Kernel > Services.  Leaf dependency of every money-moving component.
    Engines and ApprovalWorkflow call ``apply_movement``; nothing else writes
    ``accounts.balance``.

Invariants enforced:
    - Non-negative balance: both rows are locked (FOR UPDATE, id order),
      the new balances are computed in Decimal and written with an UPDATE
      guarded by the row ``version``; a rowcount other than 1 aborts the
      movement, so two debits never both observe the same balance.
    - All-or-nothing: debit and credit legs run inside one SAVEPOINT; a
      failed leg rolls back both.
    - Commission is computed once by ``precheck`` and passed back in by
      callers settling an already-priced transaction.
    - ``precheck`` performs reads only.

Failure modes:
    - AccountNotFoundError from ``get_balance`` / ``precheck`` on a missing
      source account.
    - ConcurrentBalanceViolationError from ``apply_movement`` when the
      balance no longer covers the debit (nothing is applied).
    - AccountBlockedError / AccountClosedError from ``apply_movement`` when
      an account changed status after precheck.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from banca_kernel.domain.clock import Clock, SystemClock
from banca_kernel.domain.destination import DestinationScope
from banca_kernel.domain.policy import TransactionPolicy
from banca_kernel.domain.references import make_receipt_reference
from banca_kernel.domain.transaction_state import TransactionKind, TransactionStatus
from banca_kernel.domain.values import PrecheckError, PrecheckResult, Receipt
from banca_kernel.exceptions import (
    AccountBlockedError,
    AccountClosedError,
    AccountNotFoundError,
    ConcurrentBalanceViolationError,
    CurrencyMismatchError,
    InsufficientFundsError,
    LimitExceededError,
)
from banca_kernel.logging_config import get_logger
from banca_kernel.models.account import Account, AccountStatus
from banca_kernel.models.transaction import Transaction
from banca_kernel.services.base import BaseService

logger = get_logger("services.balance_ledger")


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class BalanceLedger(BaseService):
    def __init__(
        self,
        session: Session,
        policy: TransactionPolicy,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._policy = policy
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_account(self, account_id: UUID) -> Account:
        """Load an account with its current committed state."""
        account = self._session.get(Account, account_id, populate_existing=True)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def get_balance(self, account_id: UUID) -> Decimal:
        return self.get_account(account_id).balance

    def debited_today(self, account_id: UUID) -> Decimal:
        """Sum of amount + commission of today's successful debits."""
        now = self._clock.now()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        amounts, commissions = self._session.execute(
            select(func.sum(Transaction.amount), func.sum(Transaction.commission))
            .where(
                Transaction.source_account_id == account_id,
                Transaction.status == TransactionStatus.SUCCESSFUL.value,
                Transaction.executed_at >= start_of_day,
            )
        ).one()
        return _as_decimal(amounts) + _as_decimal(commissions)

    # ------------------------------------------------------------------
    # Precheck
    # ------------------------------------------------------------------

    def precheck(
        self,
        account_id: UUID,
        amount: Decimal,
        kind: TransactionKind,
        client_tier: str | None = None,
        *,
        currency: str | None = None,
        scope: DestinationScope = DestinationScope.THIRD_PARTY,
        commission: Decimal | None = None,
        credit_account_id: UUID | None = None,
    ) -> PrecheckResult:
        """
        Compute commission, resulting balance, available limit and errors.

        Args:
            account_id: Source account.
            amount: Movement amount, already validated > 0.
            kind: Transfer or service payment (commission rule key).
            client_tier: Overrides the account tier for limits and commission.
            currency: Requested currency; defaults to the account currency.
            scope: Destination scope (commission rule key).
            commission: Already-computed commission of a priced transaction;
                used as is instead of re-deriving it.
            credit_account_id: Internal destination whose status is checked.
        """
        account = self.get_account(account_id)
        tier = client_tier or account.tier
        limits = self._policy.tier(tier)
        requested_currency = currency or account.currency

        if commission is None:
            commission = self._policy.commission(
                TransactionKind(kind), scope, tier, requested_currency, amount,
            )

        total_debit = amount + commission
        balance_before = account.balance
        balance_after = balance_before - total_debit
        daily_remaining = limits.daily_limit - self.debited_today(account.id)
        available_limit = max(
            min(limits.single_operation_limit, daily_remaining), Decimal("0"),
        )

        errors: list[PrecheckError] = []
        errors.extend(self._status_errors(account, "Source"))

        if requested_currency != account.currency:
            exc = CurrencyMismatchError(account.currency, requested_currency)
            errors.append(PrecheckError(exc.code, str(exc)))

        if balance_after < 0:
            exc = InsufficientFundsError(account.id, balance_before, total_debit)
            errors.append(PrecheckError(exc.code, str(exc)))

        if total_debit > available_limit:
            exc = LimitExceededError(account.id, available_limit, total_debit)
            errors.append(PrecheckError(exc.code, str(exc)))

        if credit_account_id is not None:
            destination = self._session.get(
                Account, credit_account_id, populate_existing=True,
            )
            if destination is None:
                exc = AccountNotFoundError(credit_account_id)
                errors.append(PrecheckError(exc.code, str(exc)))
            else:
                errors.extend(self._status_errors(destination, "Destination"))

        return PrecheckResult(
            account_id=account.id,
            currency=requested_currency,
            balance_before=balance_before,
            amount=amount,
            commission=commission,
            total_debit=total_debit,
            balance_after=balance_after,
            available_limit=available_limit,
            approval_threshold=limits.approval_threshold,
            requires_approval=total_debit > limits.approval_threshold,
            errors=tuple(errors),
        )

    @staticmethod
    def _status_errors(account: Account, label: str) -> list[PrecheckError]:
        if account.status == AccountStatus.BLOCKED.value:
            exc = AccountBlockedError(account.id)
            return [PrecheckError(exc.code, f"{label}: {exc}")]
        if account.status == AccountStatus.CLOSED.value:
            exc = AccountClosedError(account.id)
            return [PrecheckError(exc.code, f"{label}: {exc}")]
        return []

    # ------------------------------------------------------------------
    # Movement
    # ------------------------------------------------------------------

    def apply_movement(
        self,
        source_account_id: UUID,
        destination_account_id: UUID | None,
        amount: Decimal,
        commission: Decimal,
        *,
        kind: TransactionKind = TransactionKind.TRANSFER,
    ) -> Receipt:
        """
        Debit amount + commission from the source and credit amount to an
        internal destination, atomically.

        A None destination (beneficiary at another bank, service provider)
        means debit only.  The commission is never credited to anyone here.

        Both account rows are locked in id order before either is written,
        so opposite-direction movements between the same pair queue up
        instead of deadlocking.

        Raises:
            ConcurrentBalanceViolationError: Balance no longer covers the debit.
            AccountNotFoundError / AccountBlockedError / AccountClosedError:
                An account vanished or changed status since precheck.
        """
        if destination_account_id == source_account_id:
            raise ValueError("Source and destination accounts must differ")

        total_debit = amount + commission
        executed_at: datetime = self._clock.now()

        with self._session.begin_nested():
            accounts = self._lock_accounts(source_account_id, destination_account_id)

            source = accounts.get(source_account_id)
            if source is None or not source.is_active or source.balance < total_debit:
                raise self._refusal(source_account_id, total_debit)
            source_before = source.balance
            source_after = source_before - total_debit
            self._write_balance(source, source_after, total_debit)

            destination_after = None
            if destination_account_id is not None:
                destination = accounts.get(destination_account_id)
                if destination is None or not destination.is_active:
                    raise self._refusal(destination_account_id, None)
                destination_after = destination.balance + amount
                self._write_balance(destination, destination_after, None)

        receipt = Receipt(
            reference=make_receipt_reference(kind, executed_at),
            executed_at=executed_at,
            source_account_id=source_account_id,
            source_balance_before=source_before,
            source_balance_after=source_after,
            amount=amount,
            commission=commission,
            destination_account_id=destination_account_id,
            destination_balance_after=destination_after,
        )

        logger.info(
            "movement_applied",
            extra={
                "reference": receipt.reference,
                "source_account_id": str(source_account_id),
                "destination_account_id": (
                    str(destination_account_id) if destination_account_id else None
                ),
                "amount": str(amount),
                "commission": str(commission),
                "currency": source.currency,
            },
        )
        return receipt

    def _lock_accounts(self, *account_ids: UUID | None) -> dict[UUID, Account]:
        """SELECT ... FOR UPDATE the given accounts, always in id order."""
        ids = sorted({a for a in account_ids if a is not None}, key=str)
        rows = self._session.execute(
            select(Account)
            .where(Account.id.in_(ids))
            .order_by(Account.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars()
        return {account.id: account for account in rows}

    def _write_balance(
        self,
        account: Account,
        new_balance: Decimal,
        required: Decimal | None,
    ) -> None:
        """Store a balance computed in Decimal, guarded by the row version."""
        written = self._session.execute(
            update(Account)
            .where(
                Account.id == account.id,
                Account.version == account.version,
                Account.status == AccountStatus.ACTIVE.value,
            )
            .values(balance=new_balance, version=account.version + 1)
        )
        if written.rowcount != 1:
            raise self._refusal(account.id, required)

    def _refusal(self, account_id: UUID, required: Decimal | None) -> Exception:
        """Explain why a conditional UPDATE matched no row."""
        account = self._session.get(Account, account_id, populate_existing=True)
        if account is None:
            return AccountNotFoundError(account_id)
        if account.status == AccountStatus.BLOCKED.value:
            return AccountBlockedError(account_id)
        if account.status == AccountStatus.CLOSED.value:
            return AccountClosedError(account_id)
        logger.warning(
            "concurrent_balance_violation",
            extra={
                "account_id": str(account_id),
                "balance": str(account.balance),
                "required": str(required),
            },
        )
        return ConcurrentBalanceViolationError(account_id, required)
