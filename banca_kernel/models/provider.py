"""
Module: banca_kernel.models.provider
Responsibility: ORM persistence for service-payment providers and their
    contract-number validation rule.
"""

import re

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from banca_kernel.db.base import TrackedBase


class Provider(TrackedBase):
    __tablename__ = "providers"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    contract_pattern: Mapped[str] = mapped_column(String(500), nullable=False)
    min_contract_length: Mapped[int] = mapped_column(nullable=False, default=5)
    max_contract_length: Mapped[int] = mapped_column(nullable=False, default=50)

    def accepts(self, contract_number: str | None) -> bool:
        """True when the contract number satisfies this provider's rule.

        A pattern that does not compile never matches.
        """
        if not contract_number:
            return False
        if not self.min_contract_length <= len(contract_number) <= self.max_contract_length:
            return False
        try:
            return re.fullmatch(self.contract_pattern, contract_number) is not None
        except re.error:
            return False

    def __repr__(self) -> str:
        return f"<Provider {self.name}>"
