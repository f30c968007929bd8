"""
Transaction lifecycle domain types (``banca_kernel.domain.transaction_state``).

Responsibility
--------------
Pure enumerations and the transition table for a banking Transaction and its
Schedule.  Every status change in the services goes through
``require_transition`` so an illegal move fails closed with
``InvalidStateError`` instead of silently overwriting the status.

Lifecycle
---------
::

    RECEIVED --+--> SCHEDULED --------+--> PENDING_APPROVAL --+--> SUCCESSFUL
               |                      |                       +--> FAILED
               +--> PENDING_APPROVAL  +--> SUCCESSFUL         +--> REJECTED
               +--> SUCCESSFUL        +--> FAILED
               +--> FAILED            +--> CANCELLED

RECEIVED only exists inside the unit of work that reserved the idempotency
key; the same unit of work always moves it on before commit.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from banca_kernel.exceptions import InvalidStateError


class TransactionKind(str, Enum):
    TRANSFER = "transfer"
    SERVICE_PAYMENT = "service_payment"


class TransactionStatus(str, Enum):
    """Transaction lifecycle states."""

    RECEIVED = "received"
    PENDING_APPROVAL = "pending_approval"
    SCHEDULED = "scheduled"
    SUCCESSFUL = "successful"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


TRANSACTION_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.RECEIVED: frozenset({
        TransactionStatus.SCHEDULED,
        TransactionStatus.PENDING_APPROVAL,
        TransactionStatus.SUCCESSFUL,
        TransactionStatus.FAILED,
    }),
    TransactionStatus.SCHEDULED: frozenset({
        TransactionStatus.PENDING_APPROVAL,
        TransactionStatus.SUCCESSFUL,
        TransactionStatus.FAILED,
        TransactionStatus.CANCELLED,
    }),
    TransactionStatus.PENDING_APPROVAL: frozenset({
        TransactionStatus.SUCCESSFUL,
        TransactionStatus.FAILED,
        TransactionStatus.REJECTED,
    }),
    TransactionStatus.SUCCESSFUL: frozenset(),
    TransactionStatus.FAILED: frozenset(),
    TransactionStatus.CANCELLED: frozenset(),
    TransactionStatus.REJECTED: frozenset(),
}

TERMINAL_STATUSES: frozenset[TransactionStatus] = frozenset({
    TransactionStatus.SUCCESSFUL,
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
    TransactionStatus.REJECTED,
})


class ScheduleStatus(str, Enum):
    """Schedule states, kept in lockstep with the owning transaction."""

    PENDING = "pending"
    EXECUTED = "executed"
    FAILED = "failed"


def is_transition_allowed(current: TransactionStatus, target: TransactionStatus) -> bool:
    return target in TRANSACTION_TRANSITIONS.get(current, frozenset())


def require_transition(
    entity_id: Any,
    current: TransactionStatus | str,
    target: TransactionStatus,
    action: str,
) -> None:
    """
    Fail closed on a transition missing from the table.

    Raises:
        InvalidStateError: If ``current -> target`` is not allowed.
    """
    current_status = TransactionStatus(current)
    if not is_transition_allowed(current_status, target):
        raise InvalidStateError(entity_id, current_status.value, action)
