"""
TransferenciaEngine: own-account, third-party and beneficiary transfers.

Commission in the fixture policy: own account 0, any other CRC transfer
500.  Approval threshold 1000.
"""

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from banca_kernel.domain.destination import ExternalBeneficiary, InternalAccount, ServiceProvider
from banca_kernel.domain.transaction_state import TransactionKind, TransactionStatus
from banca_kernel.exceptions import (
    AccountNotFoundError,
    BeneficiaryNotFoundError,
    CurrencyMismatchError,
    ForbiddenError,
    ValidationError,
)
from banca_kernel.models.audit_event import AuditEvent


class TestImmediateTransfers:
    def test_own_account_transfer_is_free(self, engines, session, bank, make_transfer, balance_of):
        record = engines.transfers.execute_transfer(
            make_transfer("1000", destination=InternalAccount(bank.alice_savings)),
        )
        session.commit()

        assert record.status is TransactionStatus.SUCCESSFUL
        assert record.kind is TransactionKind.TRANSFER
        assert record.commission == Decimal("0")
        assert record.destination["scope"] == "own_account"
        assert balance_of(bank.alice_main) == Decimal("19000")
        assert balance_of(bank.alice_savings) == Decimal("1000")

    def test_third_party_transfer(self, engines, session, bank, make_transfer, balance_of):
        record = engines.transfers.execute_transfer(make_transfer("400", description="Dinner"))
        session.commit()

        assert record.status is TransactionStatus.SUCCESSFUL
        assert record.commission == Decimal("500")
        assert record.balance_before == Decimal("20000")
        assert record.balance_after == Decimal("19100")
        assert record.receipt_reference.startswith("TRF-20240603-")
        assert record.executed_at is not None
        assert record.description == "Dinner"
        assert balance_of(bank.alice_main) == Decimal("19100")
        assert balance_of(bank.bob_main) == Decimal("5400")

    def test_money_is_conserved_except_commission(
        self, engines, session, bank, make_transfer, balance_of,
    ):
        before = balance_of(bank.alice_main) + balance_of(bank.bob_main)
        record = engines.transfers.execute_transfer(make_transfer("350"))
        session.commit()
        after = balance_of(bank.alice_main) + balance_of(bank.bob_main)
        assert before - after == record.commission

    def test_beneficiary_transfer_is_debit_only(
        self, engines, session, bank, make_transfer, beneficiary_destination, balance_of,
    ):
        record = engines.transfers.execute_transfer(
            make_transfer("300", destination=beneficiary_destination),
        )
        session.commit()

        assert record.status is TransactionStatus.SUCCESSFUL
        assert record.destination["type"] == "beneficiary"
        assert balance_of(bank.alice_main) == Decimal("19200")

    def test_writes_audit_events(self, engines, session, make_transfer):
        record = engines.transfers.execute_transfer(make_transfer("400"))
        actions = session.execute(
            select(AuditEvent.action).where(AuditEvent.entity_id == record.transaction_id)
        ).scalars().all()
        assert actions == ["transaction_executed"]


class TestBusinessRuleFailures:
    def test_insufficient_funds_records_failed(
        self, engines, session, bank, make_transfer, balance_of,
    ):
        record = engines.transfers.execute_transfer(make_transfer("25000"))
        session.commit()

        assert record.status is TransactionStatus.FAILED
        assert record.error_codes == ("INSUFFICIENT_FUNDS",)
        assert record.commission == Decimal("500")
        assert record.receipt_reference is None
        assert balance_of(bank.alice_main) == Decimal("20000")

    def test_unconfirmed_beneficiary(self, engines, session, bank, make_transfer, balance_of):
        record = engines.transfers.execute_transfer(
            make_transfer("300", destination=ExternalBeneficiary(bank.unconfirmed_beneficiary)),
        )
        session.commit()

        assert record.status is TransactionStatus.FAILED
        assert "BENEFICIARY_NOT_CONFIRMED" in record.error_codes
        assert balance_of(bank.alice_main) == Decimal("20000")

    def test_closed_destination_account(self, engines, session, bank, make_transfer):
        record = engines.transfers.execute_transfer(
            make_transfer("300", destination=InternalAccount(bank.closed)),
        )
        assert record.status is TransactionStatus.FAILED
        assert record.error_codes == ("ACCOUNT_CLOSED",)

    def test_blocked_source_account(self, engines, bank, make_transfer):
        record = engines.transfers.execute_transfer(
            make_transfer("300", client_id=bank.bob, source_account_id=bank.blocked),
        )
        assert record.status is TransactionStatus.FAILED
        assert "ACCOUNT_BLOCKED" in record.error_codes


class TestTypedFailures:
    def test_source_of_another_client(self, engines, bank, make_transfer):
        with pytest.raises(ForbiddenError):
            engines.transfers.execute_transfer(make_transfer("300", source_account_id=bank.bob_main))

    def test_unknown_source(self, engines, make_transfer):
        with pytest.raises(AccountNotFoundError):
            engines.transfers.execute_transfer(make_transfer("300", source_account_id=uuid4()))

    def test_unknown_destination(self, engines, make_transfer):
        with pytest.raises(AccountNotFoundError):
            engines.transfers.execute_transfer(
                make_transfer("300", destination=InternalAccount(uuid4())),
            )

    def test_destination_equals_source(self, engines, bank, make_transfer):
        with pytest.raises(ValidationError):
            engines.transfers.execute_transfer(
                make_transfer("300", destination=InternalAccount(bank.alice_main)),
            )

    def test_destination_currency_mismatch(self, engines, bank, make_transfer):
        with pytest.raises(CurrencyMismatchError):
            engines.transfers.execute_transfer(
                make_transfer("300", destination=InternalAccount(bank.alice_usd)),
            )

    def test_unknown_beneficiary(self, engines, make_transfer):
        with pytest.raises(BeneficiaryNotFoundError):
            engines.transfers.execute_transfer(
                make_transfer("300", destination=ExternalBeneficiary(uuid4())),
            )

    def test_beneficiary_of_another_client(self, engines, bank, make_transfer):
        with pytest.raises(ForbiddenError):
            engines.transfers.execute_transfer(
                make_transfer(
                    "300", client_id=bank.bob, source_account_id=bank.bob_main,
                    destination=ExternalBeneficiary(bank.beneficiary),
                ),
            )

    def test_provider_is_not_a_transfer_destination(self, engines, bank, make_transfer):
        with pytest.raises(ValidationError):
            engines.transfers.execute_transfer(
                make_transfer("300", destination=ServiceProvider(bank.provider, "12345678")),
            )

    def test_typed_failure_stores_nothing(self, engines, session, bank, make_transfer):
        with pytest.raises(ForbiddenError):
            engines.transfers.execute_transfer(
                make_transfer("300", key="never-stored", source_account_id=bank.bob_main),
            )
        assert engines.transactions.list_for_client(bank.alice) == []


class TestValidation:
    @pytest.mark.parametrize("amount", ["0", "-5", "99.99", "100.001"])
    def test_bad_amounts(self, engines, make_transfer, amount):
        with pytest.raises(ValidationError) as exc_info:
            engines.transfers.execute_transfer(make_transfer(amount))
        assert exc_info.value.field == "amount"

    def test_nan_amount(self, engines, make_transfer):
        request = replace(make_transfer("100"), amount=Decimal("NaN"))
        with pytest.raises(ValidationError):
            engines.transfers.execute_transfer(request)

    def test_float_amount(self, engines, make_transfer):
        request = replace(make_transfer("100"), amount=150.0)
        with pytest.raises(ValidationError):
            engines.transfers.execute_transfer(request)

    def test_unsupported_currency(self, engines, make_transfer):
        with pytest.raises(ValidationError) as exc_info:
            engines.transfers.execute_transfer(make_transfer("300", currency="EUR"))
        assert exc_info.value.field == "currency"

    def test_description_too_long(self, engines, make_transfer):
        with pytest.raises(ValidationError):
            engines.transfers.execute_transfer(make_transfer("300", description="x" * 501))

    def test_trailing_zeros_are_quantized(self, engines, make_transfer):
        record = engines.transfers.execute_transfer(make_transfer("300.0"))
        assert record.amount == Decimal("300.00")


class TestPrecheckPreview:
    def test_preview_persists_nothing(self, engines, session, bank, make_transfer):
        preview = engines.transfers.precheck_transfer(make_transfer("600"))
        assert preview.commission == Decimal("500")
        assert preview.total_debit == Decimal("1100")
        assert preview.requires_approval
        assert preview.can_execute
        assert engines.transactions.list_for_client(bank.alice) == []

    def test_preview_reports_destination_issues(self, engines, bank, make_transfer):
        preview = engines.transfers.precheck_transfer(
            make_transfer("300", destination=ExternalBeneficiary(bank.unconfirmed_beneficiary)),
        )
        assert preview.error_codes == ("BENEFICIARY_NOT_CONFIRMED",)
