"""TransactionSelector listings and statistics."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from banca_kernel.domain.destination import InternalAccount
from banca_kernel.domain.transaction_state import TransactionKind, TransactionStatus
from banca_kernel.exceptions import TransactionNotFoundError
from banca_kernel.selectors.transaction_selector import TransactionStatistics


@dataclass
class History:
    transfer: UUID
    payment: UUID
    pending: UUID
    failed: UUID
    scheduled: UUID
    incoming: UUID


@pytest.fixture
def history(engines, session, clock, bank, make_transfer, make_payment) -> History:
    """Six transactions one minute apart, starting 09:00."""
    ids = []
    requests = [
        lambda: engines.transfers.execute_transfer(make_transfer("400")),
        lambda: engines.payments.execute_payment(make_payment("500")),
        lambda: engines.transfers.execute_transfer(make_transfer("1000")),
        lambda: engines.transfers.execute_transfer(make_transfer("25000")),
        lambda: engines.transfers.execute_transfer(
            make_transfer("400", scheduled_for=datetime(2024, 6, 10, 9, 0)),
        ),
        lambda: engines.transfers.execute_transfer(
            make_transfer(
                "300", client_id=bank.bob, source_account_id=bank.bob_main,
                destination=InternalAccount(bank.alice_main),
            ),
        ),
    ]
    for submit in requests:
        ids.append(submit().transaction_id)
        clock.advance(60)
    session.commit()
    return History(*ids)


class TestListings:
    def test_client_history_newest_first(self, engines, bank, history):
        records = engines.transactions.list_for_client(bank.alice)
        assert [r.transaction_id for r in records] == [
            history.scheduled, history.failed, history.pending, history.payment, history.transfer,
        ]

    def test_filter_by_kind(self, engines, bank, history):
        records = engines.transactions.list_for_client(
            bank.alice, kind=TransactionKind.SERVICE_PAYMENT,
        )
        assert [r.transaction_id for r in records] == [history.payment]

    def test_filter_by_status(self, engines, bank, history):
        records = engines.transactions.list_for_client(bank.alice, status="failed")
        assert [r.transaction_id for r in records] == [history.failed]
        assert records[0].error_codes == ("INSUFFICIENT_FUNDS",)

    def test_date_range_and_limit(self, engines, bank, history):
        start = datetime(2024, 6, 3, 9, 1)
        end = datetime(2024, 6, 3, 9, 3)
        records = engines.transactions.list_for_client(bank.alice, start=start, end=end)
        assert [r.transaction_id for r in records] == [history.failed, history.pending, history.payment]

        limited = engines.transactions.list_for_client(bank.alice, limit=2)
        assert len(limited) == 2

    def test_account_history_includes_incoming(self, engines, bank, history):
        records = engines.transactions.list_for_account(bank.alice_main)
        assert records[0].transaction_id == history.incoming
        assert len(records) == 6

    def test_manager_portfolio(self, engines, bank, history):
        both = engines.transactions.list_for_clients([bank.alice, bank.bob])
        assert len(both) == 6
        assert engines.transactions.list_for_clients([]) == []
        only_bob = engines.transactions.list_for_clients([bank.bob], status=TransactionStatus.SUCCESSFUL)
        assert [r.transaction_id for r in only_bob] == [history.incoming]

    def test_pending_approval(self, engines, bank, history):
        assert [r.transaction_id for r in engines.transactions.list_pending_approval()] == [
            history.pending,
        ]
        assert engines.transactions.list_pending_approval([bank.bob]) == []
        assert engines.transactions.list_pending_approval([]) == []

    def test_get(self, engines, history):
        record = engines.transactions.get(history.payment)
        assert record.kind is TransactionKind.SERVICE_PAYMENT
        assert record.commission == Decimal("250")

    def test_get_unknown(self, engines):
        with pytest.raises(TransactionNotFoundError):
            engines.transactions.get(uuid4())


class TestStatistics:
    def test_all_clients(self, engines, history):
        stats = engines.transactions.statistics()
        assert stats.total == 6
        assert stats.successful == 3
        assert stats.pending_approval == 1
        assert stats.failed == 1
        assert stats.scheduled == 1
        assert stats.rejected == 0
        assert stats.total_transferred == Decimal("700")
        assert stats.total_paid == Decimal("500")
        assert stats.total_commissions == Decimal("1250")

    def test_portfolio_and_range(self, engines, bank, history):
        stats = engines.transactions.statistics(
            [bank.alice], start=datetime(2024, 6, 3, 9, 0), end=datetime(2024, 6, 3, 9, 0),
        )
        assert stats.total == 1
        assert stats.total_transferred == Decimal("400")

    def test_empty_portfolio(self, engines, history):
        assert engines.transactions.statistics([]) == TransactionStatistics()

    def test_after_last_submission(self, engines, history):
        later = datetime(2024, 6, 3, 9, 0) + timedelta(hours=1)
        assert engines.transactions.statistics(start=later).total == 0
