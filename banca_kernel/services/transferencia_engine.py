"""
TransferenciaEngine -- account-to-account and account-to-beneficiary transfers.

Destinations:
    InternalAccount      -> debit source, credit destination (own_account or
                            third_party commission scope).
    ExternalBeneficiary  -> debit source only; the beneficiary's account is
                            at another bank (beneficiary scope).

Typed failures raised during resolution: AccountNotFoundError,
BeneficiaryNotFoundError, ForbiddenError (another client's beneficiary),
ValidationError (destination equals source), CurrencyMismatchError.  An
unconfirmed beneficiary is a business-rule outcome recorded on the
transaction as BENEFICIARY_NOT_CONFIRMED.
"""

from __future__ import annotations

from uuid import UUID

from banca_kernel.domain.destination import (
    Destination,
    DestinationScope,
    ExternalBeneficiary,
    InternalAccount,
    MovementPlan,
)
from banca_kernel.domain.records import TransactionRecord
from banca_kernel.domain.requests import TransferRequest
from banca_kernel.domain.transaction_state import TransactionKind
from banca_kernel.domain.values import PrecheckError, PrecheckResult
from banca_kernel.exceptions import (
    AccountNotFoundError,
    BeneficiaryNotConfirmedError,
    BeneficiaryNotFoundError,
    CurrencyMismatchError,
    ForbiddenError,
    ValidationError,
)
from banca_kernel.logging_config import get_logger
from banca_kernel.models.account import Account
from banca_kernel.models.beneficiary import Beneficiary
from banca_kernel.services.engine_base import MovementEngine

logger = get_logger("services.transferencia")


class TransferenciaEngine(MovementEngine):
    kind = TransactionKind.TRANSFER

    def precheck_transfer(self, request: TransferRequest) -> PrecheckResult:
        """Preview a transfer without persisting anything."""
        return self._precheck_request(request)

    def execute_transfer(self, request: TransferRequest) -> TransactionRecord:
        """
        Submit a transfer.

        Returns the Transaction as Successful, Failed, PendingApproval or
        Scheduled; a replayed idempotency key returns the stored one.
        """
        record = self._execute(request)
        logger.info(
            "transfer_submitted",
            extra={"transaction_id": str(record.transaction_id), "status": record.status.value},
        )
        return record

    def _resolve(
        self,
        client_id: UUID,
        source: Account,
        destination: Destination,
        currency: str,
    ) -> MovementPlan:
        if isinstance(destination, InternalAccount):
            return self._resolve_account(client_id, source, destination, currency)
        if isinstance(destination, ExternalBeneficiary):
            return self._resolve_beneficiary(client_id, source, destination, currency)
        raise ValidationError("destination", f"{type(destination).__name__} is not a transfer destination")

    def _resolve_account(
        self,
        client_id: UUID,
        source: Account,
        destination: InternalAccount,
        currency: str,
    ) -> MovementPlan:
        if destination.account_id == source.id:
            raise ValidationError("destination", "must differ from the source account")
        target = self._session.get(Account, destination.account_id, populate_existing=True)
        if target is None:
            raise AccountNotFoundError(destination.account_id)
        if target.currency != currency:
            raise CurrencyMismatchError(currency, target.currency)

        scope = (
            DestinationScope.OWN_ACCOUNT
            if target.client_id == client_id
            else DestinationScope.THIRD_PARTY
        )
        return MovementPlan(
            source_account_id=source.id,
            scope=scope,
            destination=destination,
            credit_account_id=target.id,
        )

    def _resolve_beneficiary(
        self,
        client_id: UUID,
        source: Account,
        destination: ExternalBeneficiary,
        currency: str,
    ) -> MovementPlan:
        beneficiary = self._session.get(
            Beneficiary, destination.beneficiary_id, populate_existing=True,
        )
        if beneficiary is None:
            raise BeneficiaryNotFoundError(destination.beneficiary_id)
        if beneficiary.client_id != client_id:
            raise ForbiddenError(client_id, "Beneficiary", beneficiary.id)
        if beneficiary.currency != currency:
            raise CurrencyMismatchError(currency, beneficiary.currency)

        issues: tuple[PrecheckError, ...] = ()
        if not beneficiary.is_confirmed:
            exc = BeneficiaryNotConfirmedError(beneficiary.id)
            issues = (PrecheckError(exc.code, str(exc)),)
        return MovementPlan(
            source_account_id=source.id,
            scope=DestinationScope.BENEFICIARY,
            destination=destination,
            issues=issues,
        )
