"""
BaseService -- abstract base for kernel services.

Responsibility:
    Common constructor and session-handling contract.  Services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.  The caller (API layer, scheduler or test harness)
    owns commit/rollback, so a whole request is one atomic unit.

Failure modes:
    - ``storage_guard`` converts SQLAlchemy failures escaping a public
      operation into ``StorageError`` so no raw driver exception crosses the
      engine boundary.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from banca_kernel.exceptions import StorageError
from banca_kernel.logging_config import get_logger

logger = get_logger("services.base")


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Guarantees:
        The service never calls ``session.commit()``; it may open and
        release SAVEPOINTs for sub-steps that must be all-or-nothing.
    """

    def __init__(self, session: Session):
        self._session = session


@contextmanager
def storage_guard(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy errors as StorageError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error(
            "storage_failure",
            extra={"operation": operation, "error_type": type(exc).__name__},
            exc_info=True,
        )
        raise StorageError(operation, type(exc).__name__) from exc
