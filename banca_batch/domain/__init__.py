"""
banca_batch.domain -- Pure types for the scheduler.

ZERO I/O.
"""

from banca_batch.domain.types import ItemOutcome, TickResult

__all__ = [
    "ItemOutcome",
    "TickResult",
]
