"""
Module: banca_kernel.selectors.transaction_selector
Responsibility: Read-only listings and statistics over transactions, for
    clients (their own history), accounts, and managers (their portfolio of
    client ids, which the caller supplies).

Invariants enforced:
    - Read-only.  Every method returns TransactionRecord instances or a
      TransactionStatistics value.
    - Listings are newest first (created_at, then id for ties).

Failure modes:
    - TransactionNotFoundError from ``get`` only; empty filters return empty
      lists.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import Select, func, or_, select

from banca_kernel.domain.records import TransactionRecord
from banca_kernel.domain.transaction_state import TransactionKind, TransactionStatus
from banca_kernel.exceptions import TransactionNotFoundError
from banca_kernel.models.transaction import Transaction
from banca_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class TransactionStatistics:
    total: int = 0
    successful: int = 0
    pending_approval: int = 0
    scheduled: int = 0
    failed: int = 0
    rejected: int = 0
    cancelled: int = 0
    total_transferred: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    total_commissions: Decimal = Decimal("0")


def _date_range(stmt: Select, start: datetime | None, end: datetime | None) -> Select:
    if start is not None:
        stmt = stmt.where(Transaction.created_at >= start)
    if end is not None:
        stmt = stmt.where(Transaction.created_at <= end)
    return stmt


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


class TransactionSelector(BaseSelector[Transaction]):
    """Queries over the transactions table."""

    def get(self, transaction_id: UUID) -> TransactionRecord:
        transaction = self.session.get(Transaction, transaction_id, populate_existing=True)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction.to_dto()

    def _fetch(self, stmt: Select, limit: int | None) -> list[TransactionRecord]:
        stmt = stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = self.session.execute(stmt.execution_options(populate_existing=True))
        return [t.to_dto() for t in rows.scalars().all()]

    def list_for_client(
        self,
        client_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
        kind: TransactionKind | None = None,
        status: TransactionStatus | None = None,
        limit: int | None = None,
    ) -> list[TransactionRecord]:
        stmt = select(Transaction).where(Transaction.client_id == client_id)
        if kind is not None:
            stmt = stmt.where(Transaction.kind == TransactionKind(kind).value)
        if status is not None:
            stmt = stmt.where(Transaction.status == TransactionStatus(status).value)
        return self._fetch(_date_range(stmt, start, end), limit)

    def list_for_account(
        self,
        account_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[TransactionRecord]:
        """Transactions debiting or crediting ``account_id``."""
        stmt = select(Transaction).where(
            or_(
                Transaction.source_account_id == account_id,
                Transaction.destination_account_id == account_id,
            )
        )
        return self._fetch(_date_range(stmt, start, end), limit)

    def list_for_clients(
        self,
        client_ids: Iterable[UUID],
        start: datetime | None = None,
        end: datetime | None = None,
        status: TransactionStatus | None = None,
        limit: int | None = None,
    ) -> list[TransactionRecord]:
        """A manager's portfolio view."""
        ids = list(client_ids)
        if not ids:
            return []
        stmt = select(Transaction).where(Transaction.client_id.in_(ids))
        if status is not None:
            stmt = stmt.where(Transaction.status == TransactionStatus(status).value)
        return self._fetch(_date_range(stmt, start, end), limit)

    def list_pending_approval(
        self,
        client_ids: Iterable[UUID] | None = None,
    ) -> list[TransactionRecord]:
        stmt = select(Transaction).where(
            Transaction.status == TransactionStatus.PENDING_APPROVAL.value,
        )
        if client_ids is not None:
            ids = list(client_ids)
            if not ids:
                return []
            stmt = stmt.where(Transaction.client_id.in_(ids))
        return self._fetch(stmt, None)

    def statistics(
        self,
        client_ids: Iterable[UUID] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> TransactionStatistics:
        """Counts per status plus the money moved by Successful transactions."""
        ids = list(client_ids) if client_ids is not None else None
        if ids is not None and not ids:
            return TransactionStatistics()

        counts_stmt = select(Transaction.status, func.count(Transaction.id)).group_by(
            Transaction.status,
        )
        sums_stmt = (
            select(
                Transaction.kind,
                func.sum(Transaction.amount),
                func.sum(Transaction.commission),
            )
            .where(Transaction.status == TransactionStatus.SUCCESSFUL.value)
            .group_by(Transaction.kind)
        )
        if ids is not None:
            counts_stmt = counts_stmt.where(Transaction.client_id.in_(ids))
            sums_stmt = sums_stmt.where(Transaction.client_id.in_(ids))
        counts_stmt = _date_range(counts_stmt, start, end)
        sums_stmt = _date_range(sums_stmt, start, end)

        counts = {status: count for status, count in self.session.execute(counts_stmt)}
        amounts: dict[str, Decimal] = {}
        commissions = Decimal("0")
        for kind, amount, commission in self.session.execute(sums_stmt):
            amounts[kind] = _as_decimal(amount)
            commissions += _as_decimal(commission)

        return TransactionStatistics(
            total=sum(counts.values()),
            successful=counts.get(TransactionStatus.SUCCESSFUL.value, 0),
            pending_approval=counts.get(TransactionStatus.PENDING_APPROVAL.value, 0),
            scheduled=counts.get(TransactionStatus.SCHEDULED.value, 0),
            failed=counts.get(TransactionStatus.FAILED.value, 0),
            rejected=counts.get(TransactionStatus.REJECTED.value, 0),
            cancelled=counts.get(TransactionStatus.CANCELLED.value, 0),
            total_transferred=amounts.get(TransactionKind.TRANSFER.value, Decimal("0")),
            total_paid=amounts.get(TransactionKind.SERVICE_PAYMENT.value, Decimal("0")),
            total_commissions=commissions,
        )
