"""Receipt reference numbers: ``TRF-20240101-1A2B3C4D`` / ``PAG-...``."""

from datetime import datetime
from uuid import uuid4

from banca_kernel.domain.transaction_state import TransactionKind

_PREFIXES = {
    TransactionKind.TRANSFER: "TRF",
    TransactionKind.SERVICE_PAYMENT: "PAG",
}


def make_receipt_reference(kind: TransactionKind, executed_at: datetime) -> str:
    return f"{_PREFIXES[TransactionKind(kind)]}-{executed_at:%Y%m%d}-{uuid4().hex[:8].upper()}"
