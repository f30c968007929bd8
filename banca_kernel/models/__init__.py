"""ORM models for the banking kernel."""

from banca_kernel.models.account import Account, AccountStatus, AccountType
from banca_kernel.models.audit_event import AuditAction, AuditEvent
from banca_kernel.models.beneficiary import Beneficiary, BeneficiaryStatus
from banca_kernel.models.provider import Provider
from banca_kernel.models.transaction import Schedule, Transaction

__all__ = [
    "Account",
    "AccountStatus",
    "AccountType",
    "AuditAction",
    "AuditEvent",
    "Beneficiary",
    "BeneficiaryStatus",
    "Provider",
    "Schedule",
    "Transaction",
]
