"""
Banca Kernel - transaction-processing core of the online-banking backend.

Moves money between accounts and pays service providers with:
- Idempotent request handling (unique idempotency key per transaction)
- Atomic, non-negative balance movements
- Manager approval above a per-tier threshold
- Scheduled execution driven by banca_batch
"""

__version__ = "0.1.0"
