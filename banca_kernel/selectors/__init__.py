"""Read-only selectors for the banking kernel."""

from banca_kernel.selectors.base import BaseSelector
from banca_kernel.selectors.transaction_selector import (
    TransactionSelector,
    TransactionStatistics,
)

__all__ = [
    "BaseSelector",
    "TransactionSelector",
    "TransactionStatistics",
]
