"""
Module: banca_kernel.models.beneficiary
Responsibility: ORM persistence for registered transfer beneficiaries
    (accounts at other banks).

Invariants enforced:
    - alias unique per client.
    - status moves Inactive -> Confirmed only, via BeneficiaryService.confirm.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from banca_kernel.db.base import TrackedBase, UUIDString


class BeneficiaryStatus(str, Enum):
    INACTIVE = "inactive"
    CONFIRMED = "confirmed"


class Beneficiary(TrackedBase):
    __tablename__ = "beneficiaries"

    __table_args__ = (
        UniqueConstraint("client_id", "alias", name="uq_beneficiaries_client_alias"),
        CheckConstraint(
            "status IN ('inactive', 'confirmed')",
            name="ck_beneficiaries_valid_status",
        ),
    )

    client_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)
    alias: Mapped[str] = mapped_column(String(30), nullable=False)
    bank: Mapped[str] = mapped_column(String(100), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    account_number: Mapped[str] = mapped_column(String(20), nullable=False)
    country: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BeneficiaryStatus.INACTIVE.value,
    )

    @property
    def is_confirmed(self) -> bool:
        return self.status == BeneficiaryStatus.CONFIRMED.value

    def __repr__(self) -> str:
        return f"<Beneficiary {self.alias} {self.status}>"
