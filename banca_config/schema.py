"""
BankingConfig schema.

The human-authored configuration artifact.  YAML files are parsed into these
types by the loader; the rule values themselves are kernel domain types
(``banca_kernel.domain.policy``) so services consume them without any
translation step.
"""

from __future__ import annotations

from dataclasses import dataclass

from banca_kernel.domain.policy import SchedulingPolicy, TransactionPolicy


@dataclass(frozen=True)
class BankingConfig:
    """A loaded, validated configuration set."""

    config_id: str
    version: int
    checksum: str
    policy: TransactionPolicy
    scheduling: SchedulingPolicy
