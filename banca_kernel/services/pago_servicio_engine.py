"""
PagoServicioEngine -- bill payments to registered service providers.

Same orchestration as transfers; the destination is always external
(provider plus contract number) so the movement is debit-only.  The contract
number is checked against the provider's rule before anything else happens:
a mismatch records INVALID_CONTRACT_NUMBER and the payment fails at once,
also when it was submitted for a future date.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from banca_kernel.domain.clock import Clock
from banca_kernel.domain.destination import (
    Destination,
    DestinationScope,
    MovementPlan,
    ServiceProvider,
)
from banca_kernel.domain.policy import SchedulingPolicy, TransactionPolicy
from banca_kernel.domain.records import TransactionRecord
from banca_kernel.domain.requests import ServicePaymentRequest
from banca_kernel.domain.transaction_state import TransactionKind
from banca_kernel.domain.values import PrecheckError, PrecheckResult
from banca_kernel.exceptions import InvalidContractNumberError, ValidationError
from banca_kernel.logging_config import get_logger
from banca_kernel.models.account import Account
from banca_kernel.services.engine_base import MovementEngine
from banca_kernel.services.provider_service import CONTRACT_MAX_LENGTH, ProviderService

logger = get_logger("services.pago_servicio")


class PagoServicioEngine(MovementEngine):
    kind = TransactionKind.SERVICE_PAYMENT

    def __init__(
        self,
        session: Session,
        policy: TransactionPolicy,
        scheduling: SchedulingPolicy | None = None,
        clock: Clock | None = None,
        *,
        providers: ProviderService | None = None,
        **services: Any,
    ):
        super().__init__(session, policy, scheduling, clock, **services)
        self._providers = providers or ProviderService(session, self._auditor, self._clock)

    def precheck_payment(self, request: ServicePaymentRequest) -> PrecheckResult:
        """Preview a payment; an invalid contract shows up in ``errors``."""
        return self._precheck_request(request)

    def execute_payment(self, request: ServicePaymentRequest) -> TransactionRecord:
        record = self._execute(request)
        logger.info(
            "payment_submitted",
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
        if not isinstance(destination, ServiceProvider):
            raise ValidationError("destination", "a service payment needs a provider")
        if len(destination.contract_number or "") > CONTRACT_MAX_LENGTH:
            raise ValidationError(
                "contract_number", f"must be at most {CONTRACT_MAX_LENGTH} characters",
            )
        provider = self._providers.get(destination.provider_id)

        issues: tuple[PrecheckError, ...] = ()
        if not self._providers.validate_contract(provider, destination.contract_number):
            exc = InvalidContractNumberError(provider.id, destination.contract_number)
            issues = (PrecheckError(exc.code, str(exc)),)
            logger.info(
                "contract_number_rejected",
                extra={"provider_id": str(provider.id)},
            )
        return MovementPlan(
            source_account_id=source.id,
            scope=DestinationScope.PROVIDER,
            destination=destination,
            issues=issues,
        )

    def _blocking_issues(self, plan: MovementPlan) -> tuple[PrecheckError, ...]:
        return tuple(
            issue for issue in plan.issues
            if issue.code == InvalidContractNumberError.code
        )
