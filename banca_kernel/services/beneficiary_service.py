"""
BeneficiaryService -- a client's registered transfer beneficiaries.

Responsibility:
    Register beneficiaries (accounts at other banks) and confirm them.  A
    beneficiary starts Inactive; transfers to it fail with
    BENEFICIARY_NOT_CONFIRMED until the owning client confirms it.

Invariants enforced:
    - alias unique per client (checked here and by a UNIQUE constraint).
    - Inactive -> Confirmed is the only status change.
"""

from __future__ import annotations

import re
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from banca_kernel.domain.clock import Clock, SystemClock
from banca_kernel.domain.policy import TransactionPolicy
from banca_kernel.exceptions import (
    BeneficiaryNotFoundError,
    ForbiddenError,
    InvalidStateError,
    ValidationError,
)
from banca_kernel.logging_config import LogContext, get_logger
from banca_kernel.models.audit_event import AuditAction
from banca_kernel.models.beneficiary import Beneficiary, BeneficiaryStatus
from banca_kernel.services.auditor_service import AuditorService
from banca_kernel.services.base import BaseService, storage_guard

logger = get_logger("services.beneficiary")

ALIAS_MIN_LENGTH = 3
ALIAS_MAX_LENGTH = 30
_ACCOUNT_NUMBER = re.compile(r"[0-9]{12,20}")


class BeneficiaryService(BaseService):
    def __init__(
        self,
        session: Session,
        policy: TransactionPolicy,
        auditor: AuditorService | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._policy = policy
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)

    def register(
        self,
        client_id: UUID,
        alias: str,
        bank: str,
        currency: str,
        account_number: str,
        country: str,
    ) -> Beneficiary:
        """
        Register an Inactive beneficiary for ``client_id``.

        Raises:
            ValidationError: Alias length or duplicate alias, account number
                not 12-20 digits, unsupported currency, missing bank/country.
        """
        alias = (alias or "").strip()
        account_number = (account_number or "").strip()
        if not ALIAS_MIN_LENGTH <= len(alias) <= ALIAS_MAX_LENGTH:
            raise ValidationError(
                "alias", f"must be {ALIAS_MIN_LENGTH}-{ALIAS_MAX_LENGTH} characters",
            )
        if not _ACCOUNT_NUMBER.fullmatch(account_number):
            raise ValidationError("account_number", "must be 12-20 digits")
        if self._policy.currency(currency) is None:
            raise ValidationError("currency", f"{currency} is not supported")
        if not (bank or "").strip():
            raise ValidationError("bank", "is required")
        if not (country or "").strip():
            raise ValidationError("country", "is required")

        with LogContext.bind(actor_id=client_id), storage_guard("register_beneficiary"):
            duplicate = self._session.execute(
                select(Beneficiary.id).where(
                    Beneficiary.client_id == client_id,
                    Beneficiary.alias == alias,
                )
            ).scalar_one_or_none()
            if duplicate is not None:
                raise ValidationError("alias", f"{alias!r} is already registered")

            beneficiary = Beneficiary(
                client_id=client_id,
                alias=alias,
                bank=bank.strip(),
                currency=currency,
                account_number=account_number,
                country=country.strip(),
                status=BeneficiaryStatus.INACTIVE.value,
                created_at=self._clock.now(),
            )
            self._session.add(beneficiary)
            self._session.flush()

            self._auditor.record(
                client_id,
                AuditAction.BENEFICIARY_REGISTERED,
                f"Beneficiary {alias} registered",
                {"bank": beneficiary.bank, "currency": currency},
                entity_type="Beneficiary",
                entity_id=beneficiary.id,
            )
            logger.info(
                "beneficiary_registered",
                extra={"beneficiary_id": str(beneficiary.id), "alias": alias},
            )
            return beneficiary

    def get(self, beneficiary_id: UUID) -> Beneficiary:
        beneficiary = self._session.get(Beneficiary, beneficiary_id, populate_existing=True)
        if beneficiary is None:
            raise BeneficiaryNotFoundError(beneficiary_id)
        return beneficiary

    def confirm(self, beneficiary_id: UUID, client_id: UUID) -> Beneficiary:
        """
        Confirm an Inactive beneficiary.

        Raises:
            BeneficiaryNotFoundError, ForbiddenError (another client's),
            InvalidStateError (already confirmed).
        """
        with LogContext.bind(actor_id=client_id), storage_guard("confirm_beneficiary"):
            beneficiary = self.get(beneficiary_id)
            if beneficiary.client_id != client_id:
                raise ForbiddenError(client_id, "Beneficiary", beneficiary_id)
            if beneficiary.status != BeneficiaryStatus.INACTIVE.value:
                raise InvalidStateError(beneficiary_id, beneficiary.status, "confirm")

            beneficiary.status = BeneficiaryStatus.CONFIRMED.value
            self._session.flush()

            self._auditor.record(
                client_id,
                AuditAction.BENEFICIARY_CONFIRMED,
                f"Beneficiary {beneficiary.alias} confirmed",
                entity_type="Beneficiary",
                entity_id=beneficiary.id,
            )
            logger.info("beneficiary_confirmed", extra={"beneficiary_id": str(beneficiary.id)})
            return beneficiary
