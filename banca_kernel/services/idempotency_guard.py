"""
IdempotencyGuard -- deduplicates client operations by idempotency key.

Responsibility:
    ``reserve(key, build)`` returns the existing Transaction for ``key`` or
    inserts the one produced by ``build``.  The UNIQUE constraint on
    ``transactions.idempotency_key`` is the only deduplication mechanism.

Invariants enforced:
    - At most one Transaction row per key.
    - A caller that loses an insert race gets the winner's row back with
      ``is_new=False`` and must return it verbatim without side effects.

Failure modes:
    - IntegrityError other than the key collision (no row found after the
      violation) propagates.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from banca_kernel.logging_config import get_logger
from banca_kernel.models.transaction import Transaction
from banca_kernel.services.base import BaseService

logger = get_logger("services.idempotency_guard")


class IdempotencyGuard(BaseService):
    def find(self, key: str) -> Transaction | None:
        """Look up a transaction by key, refreshing any cached copy."""
        return self._session.execute(
            select(Transaction)
            .where(Transaction.idempotency_key == key)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def reserve(
        self,
        key: str,
        build: Callable[[], Transaction],
    ) -> tuple[Transaction, bool]:
        """
        Return ``(transaction, is_new)``.

        ``build`` is only called when no row exists yet; its transaction is
        inserted inside a SAVEPOINT so a lost race leaves the caller's unit
        of work usable.
        """
        existing = self.find(key)
        if existing is not None:
            logger.info("idempotency_key_replayed", extra={"idempotency_key": key})
            return existing, False

        transaction = build()
        try:
            with self._session.begin_nested():
                self._session.add(transaction)
                self._session.flush()
        except IntegrityError:
            winner = self.find(key)
            if winner is None:
                raise
            logger.info("idempotency_race_lost", extra={"idempotency_key": key})
            return winner, False

        logger.info(
            "transaction_reserved",
            extra={
                "idempotency_key": key,
                "transaction_id": str(transaction.id),
            },
        )
        return transaction, True
