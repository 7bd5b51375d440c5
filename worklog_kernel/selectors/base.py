"""
Module: worklog_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - DTO return convention: selectors return frozen dataclasses, not ORM
      instances, except where a store needs the model to apply the
      sealing transition.
    - A missing backing table surfaces as DataIntegrityError, never as a
      raw driver error.
"""

from abc import ABC
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from worklog_kernel.exceptions import DataIntegrityError
from worklog_kernel.logging_config import get_logger

logger = get_logger("selectors.base")

T = TypeVar("T")


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs.  The caller owns the transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def _table_exists(self, table_name: str) -> bool:
        return inspect(self.session.get_bind()).has_table(table_name)

    def _guarded(self, table_name: str, query: Callable[[], T]) -> T:
        """
        Run ``query``; translate a missing table into DataIntegrityError.

        Other database errors (lock contention, connection loss) propagate
        unchanged so callers can treat them as retryable.
        """
        try:
            return query()
        except (OperationalError, ProgrammingError) as exc:
            if self._table_exists(table_name):
                raise
            logger.error(
                "backing_table_missing",
                extra={"table": table_name, "error": str(exc.orig)},
            )
            raise DataIntegrityError(table_name, "table does not exist") from exc
