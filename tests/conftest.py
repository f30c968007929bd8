"""
Pytest fixtures for the banking core test suite.

Provides:
- A SQLite file database per test (tmp_path) with all tables created
- Session factory and a caller-owned session
- A deterministic clock (naive datetimes; SQLite strips tzinfo)
- A small transaction policy with an approval threshold of 1000
- Seeded clients, accounts, a beneficiary and a provider
- Structured log capture

SQLite runs every transaction under BEGIN IMMEDIATE, so sessions used from
different threads serialize on the database write lock.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from banca_kernel.db.engine import build_engine, create_tables
from banca_kernel.domain.clock import DeterministicClock
from banca_kernel.domain.destination import DestinationScope, ExternalBeneficiary, InternalAccount
from banca_kernel.domain.policy import (
    CommissionRule,
    CurrencyRule,
    SchedulingPolicy,
    TierLimits,
    TransactionPolicy,
)
from banca_kernel.domain.requests import ServicePaymentRequest, TransferRequest
from banca_kernel.domain.transaction_state import TransactionKind
from banca_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from banca_kernel.models.account import Account, AccountStatus, AccountType
from banca_kernel.models.beneficiary import Beneficiary, BeneficiaryStatus
from banca_kernel.models.provider import Provider
from banca_kernel.services.factory import build_engines

TEST_MANAGER_ID = uuid4()

START_TIME = datetime(2024, 6, 3, 9, 0, 0)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture banca_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engines):
            engines.transfers.execute_transfer(request)
            logs = captured_logs()
            assert any(r["message"] == "transaction_executed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("banca_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'banca.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock():
    return DeterministicClock(fixed_time=START_TIME)


# =============================================================================
# Policy
# =============================================================================


@pytest.fixture
def policy() -> TransactionPolicy:
    return TransactionPolicy(
        currencies=(
            CurrencyRule("CRC", 2, Decimal("100")),
            CurrencyRule("USD", 2, Decimal("1")),
        ),
        tiers=(
            TierLimits("standard", Decimal("50000"), Decimal("100000"), Decimal("1000")),
            TierLimits("premium", Decimal("1000000"), Decimal("2000000"), Decimal("500000")),
        ),
        commission_rules=(
            CommissionRule(
                "own-account", TransactionKind.TRANSFER, scope=DestinationScope.OWN_ACCOUNT,
            ),
            CommissionRule("transfer-usd", TransactionKind.TRANSFER, currency="USD", fixed=Decimal("1")),
            CommissionRule("transfer-crc", TransactionKind.TRANSFER, currency="CRC", fixed=Decimal("500")),
            CommissionRule(
                "payment-usd", TransactionKind.SERVICE_PAYMENT, currency="USD", fixed=Decimal("2"),
            ),
            CommissionRule(
                "payment-crc", TransactionKind.SERVICE_PAYMENT, currency="CRC", fixed=Decimal("250"),
            ),
        ),
    )


@pytest.fixture
def scheduling() -> SchedulingPolicy:
    return SchedulingPolicy(tick_interval_seconds=1, batch_size=10)


# =============================================================================
# Seed data
# =============================================================================


@dataclass
class Bank:
    alice: UUID
    bob: UUID
    alice_main: UUID
    alice_savings: UUID
    alice_usd: UUID
    bob_main: UUID
    blocked: UUID
    closed: UUID
    beneficiary: UUID
    unconfirmed_beneficiary: UUID
    provider: UUID


def _account(client_id, number, balance, currency="CRC", status=AccountStatus.ACTIVE, tier="standard"):
    return Account(
        account_number=number,
        client_id=client_id,
        account_type=AccountType.SAVINGS.value,
        currency=currency,
        status=status.value,
        tier=tier,
        balance=Decimal(balance),
    )


@pytest.fixture
def bank(session_factory) -> Bank:
    """Two clients with accounts, beneficiaries and one provider, committed."""
    alice, bob = uuid4(), uuid4()
    session = session_factory()
    try:
        accounts = {
            "alice_main": _account(alice, "100000000001", "20000"),
            "alice_savings": _account(alice, "100000000002", "0"),
            "alice_usd": _account(alice, "100000000003", "100", currency="USD"),
            "bob_main": _account(bob, "200000000001", "5000"),
            "blocked": _account(bob, "200000000002", "5000", status=AccountStatus.BLOCKED),
            "closed": _account(bob, "200000000003", "0", status=AccountStatus.CLOSED),
        }
        beneficiary = Beneficiary(
            client_id=alice, alias="Mom", bank="Banco Nacional", currency="CRC",
            account_number="15100010012345678", country="CR",
            status=BeneficiaryStatus.CONFIRMED.value,
        )
        unconfirmed = Beneficiary(
            client_id=alice, alias="Landlord", bank="BAC", currency="CRC",
            account_number="10200009876543210", country="CR",
            status=BeneficiaryStatus.INACTIVE.value,
        )
        provider = Provider(
            name="Electric Company", contract_pattern=r"\d{8}",
            min_contract_length=8, max_contract_length=8,
        )
        session.add_all([*accounts.values(), beneficiary, unconfirmed, provider])
        session.commit()
        return Bank(
            alice=alice,
            bob=bob,
            beneficiary=beneficiary.id,
            unconfirmed_beneficiary=unconfirmed.id,
            provider=provider.id,
            **{name: account.id for name, account in accounts.items()},
        )
    finally:
        session.close()


# =============================================================================
# Engines and helpers
# =============================================================================


@pytest.fixture
def engine_factory(policy, scheduling, clock):
    """Build the engine set for any session (what the scheduler receives)."""

    def _build(session):
        return build_engines(session, policy, scheduling, clock)

    return _build


@pytest.fixture
def engines(session, engine_factory):
    return engine_factory(session)


@pytest.fixture
def balance_of(session_factory):
    """Read a committed balance through a fresh session."""

    def _balance(account_id) -> Decimal:
        session = session_factory()
        try:
            return session.get(Account, account_id).balance
        finally:
            session.rollback()
            session.close()

    return _balance


@pytest.fixture
def make_transfer(bank):
    def _make(amount, destination=None, key=None, **kwargs) -> TransferRequest:
        fields = {
            "client_id": bank.alice,
            "source_account_id": bank.alice_main,
            "currency": "CRC",
        }
        fields.update(kwargs)
        return TransferRequest(
            idempotency_key=key or f"trf-{uuid4().hex[:12]}",
            destination=destination or InternalAccount(bank.bob_main),
            amount=Decimal(amount),
            **fields,
        )

    return _make


@pytest.fixture
def make_payment(bank):
    def _make(amount, contract_number="12345678", key=None, **kwargs) -> ServicePaymentRequest:
        fields = {
            "client_id": bank.alice,
            "source_account_id": bank.alice_main,
            "provider_id": bank.provider,
            "currency": "CRC",
        }
        fields.update(kwargs)
        return ServicePaymentRequest(
            idempotency_key=key or f"pag-{uuid4().hex[:12]}",
            contract_number=contract_number,
            amount=Decimal(amount),
            **fields,
        )

    return _make


@pytest.fixture
def beneficiary_destination(bank):
    return ExternalBeneficiary(bank.beneficiary)
