"""
Concurrent submissions through independent sessions.

Each worker owns its session and commits its own unit of work; the barrier
releases them together so the requests overlap.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from banca_batch.domain.types import TickResult
from banca_batch.services.scheduler import ProgramacionScheduler
from banca_kernel.domain.destination import InternalAccount
from banca_kernel.domain.transaction_state import TransactionStatus
from banca_kernel.exceptions import ConcurrencyError, InvalidStateError
from banca_kernel.models.account import Account
from banca_kernel.models.transaction import Transaction

WORKERS = 5
TOMORROW = datetime(2024, 6, 4, 9, 0, 0)


def _run_concurrently(session_factory, engine_factory, build_request, workers=WORKERS):
    barrier = threading.Barrier(workers)

    def _worker(index):
        session = session_factory()
        try:
            engines = engine_factory(session)
            request = build_request(index)
            barrier.wait(timeout=10)
            try:
                record = engines.transfers.execute_transfer(request)
            except ConcurrencyError:
                session.rollback()
                return None
            session.commit()
            return record
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(_worker, range(workers)))


def test_same_key_executes_once(session_factory, engine_factory, make_transfer, bank, balance_of):
    results = _run_concurrently(
        session_factory, engine_factory, lambda _: make_transfer("400", key="rent-june"),
    )

    records = [r for r in results if r is not None]
    assert len({r.transaction_id for r in records}) == 1
    assert all(r.status is TransactionStatus.SUCCESSFUL for r in records)
    assert balance_of(bank.alice_main) == Decimal("19100")
    assert balance_of(bank.bob_main) == Decimal("5400")

    session = session_factory()
    try:
        count = session.execute(
            select(func.count(Transaction.id)).where(Transaction.idempotency_key == "rent-june")
        ).scalar_one()
        assert count == 1
    finally:
        session.close()


def test_balance_never_goes_negative(session_factory, engine_factory, make_transfer, bank, balance_of):
    session = session_factory()
    try:
        session.get(Account, bank.alice_main).balance = Decimal("1000")
        session.commit()
    finally:
        session.close()

    results = _run_concurrently(
        session_factory, engine_factory, lambda i: make_transfer("400", key=f"drain-{i}"),
    )

    successful = [r for r in results if r is not None and r.status is TransactionStatus.SUCCESSFUL]
    assert len(successful) == 1
    assert balance_of(bank.alice_main) == Decimal("100")
    assert balance_of(bank.bob_main) == Decimal("5400")
    for record in results:
        if record is not None and record.status is TransactionStatus.FAILED:
            assert "INSUFFICIENT_FUNDS" in record.error_codes


def _race(*tasks):
    """Run each task on its own thread, released together; returns results or exceptions."""
    barrier = threading.Barrier(len(tasks))

    def _run(task):
        barrier.wait(timeout=10)
        try:
            return task()
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(tasks)) as pool:
        return list(pool.map(_run, tasks))


def _unit_of_work(session_factory, engine_factory, action):
    """A task that runs ``action(engines)`` in its own session and commits it."""

    def _task():
        session = session_factory()
        try:
            result = action(engine_factory(session))
            session.commit()
            return result
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _task


def test_opposite_transfers_both_complete(
    session_factory, engine_factory, make_transfer, bank, balance_of,
):
    def outgoing():
        return make_transfer("300")

    def incoming():
        return make_transfer(
            "200", destination=InternalAccount(bank.alice_main),
            client_id=bank.bob, source_account_id=bank.bob_main,
        )

    requests = [outgoing(), incoming(), outgoing(), incoming()]
    results = _race(*(
        _unit_of_work(session_factory, engine_factory,
                      lambda engines, request=request: engines.transfers.execute_transfer(request))
        for request in requests
    ))

    assert all(not isinstance(r, Exception) for r in results)
    assert all(r.status is TransactionStatus.SUCCESSFUL for r in results)
    assert balance_of(bank.alice_main) == Decimal("18800")
    assert balance_of(bank.bob_main) == Decimal("4200")


class TestScheduledRaces:
    @pytest.fixture
    def scheduled(self, engines, session, make_transfer):
        def _schedule(amount="400"):
            record = engines.transfers.execute_transfer(
                make_transfer(amount, scheduled_for=TOMORROW),
            )
            session.commit()
            return record

        return _schedule

    @pytest.fixture
    def scheduler(self, session_factory, engine_factory, clock):
        return ProgramacionScheduler(session_factory, engine_factory, clock=clock)

    def test_cancel_racing_execution_has_one_outcome(
        self, scheduled, scheduler, session_factory, engine_factory, clock, bank, balance_of,
    ):
        record = scheduled()
        clock.set_time(TOMORROW)

        tick, cancel = _race(
            scheduler.tick,
            _unit_of_work(
                session_factory, engine_factory,
                lambda engines: engines.transfers.cancel_scheduled(record.transaction_id, bank.alice),
            ),
        )

        session = session_factory()
        try:
            status = session.get(Transaction, record.transaction_id).status
        finally:
            session.close()

        if isinstance(cancel, InvalidStateError):
            assert tick == TickResult(due=1, executed=1)
            assert status == TransactionStatus.SUCCESSFUL.value
            assert balance_of(bank.alice_main) == Decimal("19100")
        else:
            assert cancel.status is TransactionStatus.CANCELLED
            assert tick.executed == 0
            assert tick in (TickResult(), TickResult(due=1, skipped=1))
            assert status == TransactionStatus.CANCELLED.value
            assert balance_of(bank.alice_main) == Decimal("20000")

    def test_scheduled_debits_alongside_live_transfers(
        self, scheduled, scheduler, session_factory, engine_factory, clock, make_transfer,
        bank, balance_of,
    ):
        for _ in range(3):
            scheduled()
        clock.set_time(TOMORROW)

        live = [
            _unit_of_work(
                session_factory, engine_factory,
                lambda engines, i=i: engines.transfers.execute_transfer(
                    make_transfer("400", key=f"live-{i}"),
                ),
            )
            for i in range(4)
        ]
        tick, *records = _race(scheduler.tick, *live)

        assert tick == TickResult(due=3, executed=3)
        assert all(r.status is TransactionStatus.SUCCESSFUL for r in records)
        assert balance_of(bank.alice_main) == Decimal("20000") - 7 * Decimal("900")
        assert balance_of(bank.bob_main) == Decimal("5000") + 7 * Decimal("400")
