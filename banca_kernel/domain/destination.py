"""
Destination variant and movement plan.

A transfer or payment goes to exactly one of three destination shapes.  The
engines resolve it once, at submission, into a ``MovementPlan`` which is what
BalanceLedger and the scheduler work from afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union
from uuid import UUID

from banca_kernel.domain.values import PrecheckError


class DestinationScope(str, Enum):
    """Commission scope of a destination."""

    OWN_ACCOUNT = "own_account"
    THIRD_PARTY = "third_party"
    BENEFICIARY = "beneficiary"
    PROVIDER = "provider"


@dataclass(frozen=True)
class InternalAccount:
    """An account held at this bank; receives a credit leg."""

    account_id: UUID


@dataclass(frozen=True)
class ExternalBeneficiary:
    """A registered beneficiary at another bank; debit only."""

    beneficiary_id: UUID


@dataclass(frozen=True)
class ServiceProvider:
    """A service provider plus the client's contract number; debit only."""

    provider_id: UUID
    contract_number: str


Destination = Union[InternalAccount, ExternalBeneficiary, ServiceProvider]


@dataclass(frozen=True)
class MovementPlan:
    """
    Resolved destination.

    ``issues`` carries destination-level business-rule failures (unconfirmed
    beneficiary, contract number mismatch, unusable destination account).
    They are merged into the precheck result, never raised.
    """

    source_account_id: UUID
    scope: DestinationScope
    destination: Destination
    credit_account_id: UUID | None = None
    issues: tuple[PrecheckError, ...] = ()
