"""Inbound operation requests, as handed over by the API layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from banca_kernel.domain.destination import (
    ExternalBeneficiary,
    InternalAccount,
    ServiceProvider,
)


@dataclass(frozen=True)
class TransferRequest:
    client_id: UUID
    idempotency_key: str
    source_account_id: UUID
    destination: InternalAccount | ExternalBeneficiary
    amount: Decimal
    currency: str
    description: str | None = None
    scheduled_for: datetime | None = None

    def fingerprint(self) -> dict[str, Any]:
        """Payload hashed to detect key reuse with a different request."""
        return {
            "client_id": self.client_id,
            "source_account_id": self.source_account_id,
            "destination": repr(self.destination),
            "amount": self.amount,
            "currency": self.currency,
            "scheduled_for": self.scheduled_for,
        }


@dataclass(frozen=True)
class ServicePaymentRequest:
    client_id: UUID
    idempotency_key: str
    source_account_id: UUID
    provider_id: UUID
    contract_number: str
    amount: Decimal
    currency: str
    description: str | None = None
    scheduled_for: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "contract_number", (self.contract_number or "").strip())

    @property
    def destination(self) -> ServiceProvider:
        return ServiceProvider(self.provider_id, self.contract_number)

    def fingerprint(self) -> dict[str, Any]:
        return {
            "client_id": self.client_id,
            "source_account_id": self.source_account_id,
            "provider_id": self.provider_id,
            "contract_number": self.contract_number,
            "amount": self.amount,
            "currency": self.currency,
            "scheduled_for": self.scheduled_for,
        }
