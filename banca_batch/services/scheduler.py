"""
ProgramacionScheduler -- In-process polling loop for scheduled transactions.

Contract:
    Every ``tick_interval_seconds`` it selects up to ``batch_size``
    transactions whose Schedule is pending and due, oldest due date first,
    and runs each through ``MovementEngine.execute_scheduled`` -- the same
    engine operation and invariants the request path uses.

Architecture: banca_batch/services.  Depends on banca_kernel services and
    the engine factory handed in by the caller.

Invariants enforced:
    - Each due transaction is processed in its own session and committed
      on its own; one failure never blocks the rest of the batch.
    - An unexpected error rolls that item back completely (no partial
      balance movement), is logged, and leaves the transaction Scheduled
      for the next tick.  Only precheck business-rule failures mark it
      Failed.
    - The engine locks the transaction row and re-checks its status, so an
      item cancelled or already executed meanwhile is skipped.
    - All timestamps come from the injected Clock.
    - Graceful shutdown: the stop signal is honoured between ticks; a tick in
      progress finishes its whole batch.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from banca_batch.domain.types import ItemOutcome, TickResult
from banca_config import get_active_config
from banca_kernel.db.engine import get_session_factory
from banca_kernel.domain.clock import Clock, SystemClock
from banca_kernel.domain.transaction_state import (
    ScheduleStatus,
    TransactionKind,
    TransactionStatus,
)
from banca_kernel.exceptions import InvalidStateError
from banca_kernel.logging_config import LogContext, get_logger
from banca_kernel.models.transaction import Schedule, Transaction
from banca_kernel.services.factory import BankingEngines, build_engines

logger = get_logger("batch.scheduler")

_OUTCOMES = {
    TransactionStatus.SUCCESSFUL: ItemOutcome.EXECUTED,
    TransactionStatus.PENDING_APPROVAL: ItemOutcome.PENDING_APPROVAL,
    TransactionStatus.FAILED: ItemOutcome.FAILED,
}


class ProgramacionScheduler:
    """Background driver for matured Scheduled transactions.

    Non-goals:
        - NOT a distributed scheduler; several instances are safe because
          of the row lock, but nothing coordinates them.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        engine_factory: Callable[[Session], BankingEngines],
        clock: Clock | None = None,
        tick_interval_seconds: int = 60,
        batch_size: int = 100,
        actor_id: UUID | None = None,
    ):
        self._session_factory = session_factory
        self._engine_factory = engine_factory
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._batch_size = batch_size
        self._actor_id = actor_id
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> TickResult:
        """Process the transactions due now (public for testing)."""
        try:
            due = self._due_transactions()
        except Exception:
            logger.exception("scheduler_tick_failed")
            return TickResult()

        outcomes: list[ItemOutcome] = []
        for transaction_id, kind in due:
            outcomes.append(self._process(transaction_id, kind))

        result = TickResult.from_outcomes(len(due), outcomes)
        logger.info(
            "scheduler_tick_completed",
            extra={
                "due": result.due,
                "executed": result.executed,
                "pending_approval": result.pending_approval,
                "failed": result.failed,
                "skipped": result.skipped,
                "errors": result.errors,
            },
        )
        return result

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="programacion-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _due_transactions(self) -> list[tuple[UUID, str]]:
        now = self._clock.now()
        session = self._session_factory()
        try:
            rows = session.execute(
                select(Transaction.id, Transaction.kind)
                .join(Schedule, Schedule.transaction_id == Transaction.id)
                .where(
                    Transaction.status == TransactionStatus.SCHEDULED.value,
                    Schedule.status == ScheduleStatus.PENDING.value,
                    Schedule.due_at <= now,
                )
                .order_by(Schedule.due_at, Transaction.id)
                .limit(self._batch_size)
            ).all()
            session.rollback()
            return [(row.id, row.kind) for row in rows]
        finally:
            session.close()

    def _process(self, transaction_id: UUID, kind: str) -> ItemOutcome:
        session = self._session_factory()
        try:
            with LogContext.bind(transaction_id=transaction_id):
                engines = self._engine_factory(session)
                record = engines.for_kind(TransactionKind(kind)).execute_scheduled(
                    transaction_id, self._actor_id,
                )
                session.commit()
            return _OUTCOMES.get(record.status, ItemOutcome.SKIPPED)
        except InvalidStateError as exc:
            session.rollback()
            logger.info(
                "scheduled_transaction_skipped",
                extra={"transaction_id": str(transaction_id), "current_status": exc.current_status},
            )
            return ItemOutcome.SKIPPED
        except Exception as exc:
            session.rollback()
            logger.exception(
                "scheduled_transaction_failed",
                extra={"transaction_id": str(transaction_id)},
            )
            self._record_attempt(transaction_id, exc)
            return ItemOutcome.ERROR
        finally:
            session.close()

    def _record_attempt(self, transaction_id: UUID, error: Exception) -> None:
        """Count a failed attempt on the Schedule; the status stays pending."""
        session = self._session_factory()
        try:
            schedule = session.execute(
                select(Schedule).where(Schedule.transaction_id == transaction_id)
            ).scalar_one_or_none()
            if schedule is not None:
                schedule.attempts += 1
                schedule.last_error = f"{type(error).__name__}: {error}"[:1000]
                session.commit()
        except Exception:
            session.rollback()
            logger.exception(
                "schedule_attempt_not_recorded",
                extra={"transaction_id": str(transaction_id)},
            )
        finally:
            session.close()


def build_scheduler(
    config_path: Path | None = None,
    clock: Clock | None = None,
) -> ProgramacionScheduler:
    """Build a ProgramacionScheduler from configuration (production entrypoint).

    Expects the database engine to be initialized (``init_engine_from_url``).
    """
    config = get_active_config(config_path)
    clock = clock or SystemClock()

    def engine_factory(session: Session) -> BankingEngines:
        return build_engines(session, config.policy, config.scheduling, clock)

    return ProgramacionScheduler(
        session_factory=get_session_factory(),
        engine_factory=engine_factory,
        clock=clock,
        tick_interval_seconds=config.scheduling.tick_interval_seconds,
        batch_size=config.scheduling.batch_size,
    )
