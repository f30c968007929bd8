"""
ProviderService -- registry of service-payment providers.

Responsibility:
    Register providers with their contract-number rule, look them up, and
    validate a contract number against a provider's rule.  The rule is a
    length range plus a regular expression that must match the whole
    contract number.
"""

from __future__ import annotations

import re
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from banca_kernel.domain.clock import Clock, SystemClock
from banca_kernel.exceptions import ProviderNotFoundError, ValidationError
from banca_kernel.logging_config import get_logger
from banca_kernel.models.audit_event import AuditAction
from banca_kernel.models.provider import Provider
from banca_kernel.services.auditor_service import AuditorService
from banca_kernel.services.base import BaseService, storage_guard

logger = get_logger("services.provider")

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 200
CONTRACT_MIN_LENGTH = 5
CONTRACT_MAX_LENGTH = 50


class ProviderService(BaseService):
    def __init__(
        self,
        session: Session,
        auditor: AuditorService | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)

    def register(
        self,
        name: str,
        contract_pattern: str,
        min_length: int = CONTRACT_MIN_LENGTH,
        max_length: int = CONTRACT_MAX_LENGTH,
        *,
        actor_id: UUID | None = None,
    ) -> Provider:
        """
        Register a provider.

        Raises:
            ValidationError: Name length, duplicate name, bad length range or
                a pattern that does not compile.
        """
        name = (name or "").strip()
        if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
            raise ValidationError(
                "name", f"must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters",
            )
        if not contract_pattern:
            raise ValidationError("contract_pattern", "is required")
        try:
            re.compile(contract_pattern)
        except re.error as exc:
            raise ValidationError("contract_pattern", f"does not compile: {exc}") from exc
        if not CONTRACT_MIN_LENGTH <= min_length <= max_length <= CONTRACT_MAX_LENGTH:
            raise ValidationError(
                "contract_length",
                f"range must lie within {CONTRACT_MIN_LENGTH}-{CONTRACT_MAX_LENGTH}",
            )

        with storage_guard("register_provider"):
            taken = self._session.execute(
                select(Provider.id).where(Provider.name == name)
            ).scalar_one_or_none()
            if taken is not None:
                raise ValidationError("name", f"provider {name!r} already exists")

            provider = Provider(
                name=name,
                contract_pattern=contract_pattern,
                min_contract_length=min_length,
                max_contract_length=max_length,
                created_at=self._clock.now(),
            )
            self._session.add(provider)
            self._session.flush()

        if actor_id is not None:
            self._auditor.record(
                actor_id,
                AuditAction.PROVIDER_REGISTERED,
                f"Provider {name} registered",
                {"contract_pattern": contract_pattern},
                entity_type="Provider",
                entity_id=provider.id,
            )
        logger.info(
            "provider_registered",
            extra={"provider_id": str(provider.id), "provider_name": name},
        )
        return provider

    def get(self, provider_id: UUID) -> Provider:
        provider = self._session.get(Provider, provider_id)
        if provider is None:
            raise ProviderNotFoundError(provider_id)
        return provider

    @staticmethod
    def validate_contract(provider: Provider, contract_number: str | None) -> bool:
        return provider.accepts((contract_number or "").strip())
