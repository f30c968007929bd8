"""
banca_batch.domain.types -- Frozen results of a scheduler tick.

ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ItemOutcome(str, Enum):
    """What one tick did with one due transaction."""

    EXECUTED = "executed"  # Reached Successful
    PENDING_APPROVAL = "pending_approval"  # Above threshold, waits for a manager
    FAILED = "failed"  # Definitive business-rule failure
    SKIPPED = "skipped"  # Cancelled or handled by someone else meanwhile
    ERROR = "error"  # Unexpected error, left Scheduled for the next tick


@dataclass(frozen=True)
class TickResult:
    due: int = 0
    executed: int = 0
    pending_approval: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0

    @property
    def processed(self) -> int:
        return self.executed + self.pending_approval + self.failed

    @classmethod
    def from_outcomes(cls, due: int, outcomes: list[ItemOutcome]) -> TickResult:
        return cls(
            due=due,
            executed=outcomes.count(ItemOutcome.EXECUTED),
            pending_approval=outcomes.count(ItemOutcome.PENDING_APPROVAL),
            failed=outcomes.count(ItemOutcome.FAILED),
            skipped=outcomes.count(ItemOutcome.SKIPPED),
            errors=outcomes.count(ItemOutcome.ERROR),
        )
