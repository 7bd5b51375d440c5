"""
Module: worklog_kernel.selectors.entry_selector
Responsibility: Read access to the append-only entry store.

Reads run without the store lock: a scan may be slightly stale relative to
an in-flight append, which itself commits under the lock.
"""

from datetime import date

from sqlalchemy import select

from worklog_kernel.domain.types import WorklogEntry
from worklog_kernel.models.worklog_entry import WorklogEntryModel
from worklog_kernel.selectors.base import BaseSelector

_TABLE = WorklogEntryModel.__tablename__


class EntrySelector(BaseSelector):
    """Entry-store scans returned as WorklogEntry DTOs."""

    def scan(self, start: date, end: date) -> list[WorklogEntry]:
        """All entries dated in [start, end], in date then insertion order.

        Raises:
            DataIntegrityError: if the entry table is missing.
        """
        stmt = (
            select(WorklogEntryModel)
            .where(WorklogEntryModel.entry_date >= start)
            .where(WorklogEntryModel.entry_date <= end)
            .order_by(
                WorklogEntryModel.entry_date,
                WorklogEntryModel.created_at,
                WorklogEntryModel.id,
            )
        )
        rows = self._guarded(_TABLE, lambda: self.session.scalars(stmt).all())
        return [row.to_dto() for row in rows]

    def for_actor_on(self, actor_id: str, on: date) -> list[WorklogEntry]:
        """Entries one actor logged on one calendar date (overlap candidates)."""
        stmt = (
            select(WorklogEntryModel)
            .where(WorklogEntryModel.actor_id == actor_id)
            .where(WorklogEntryModel.entry_date == on)
            .order_by(WorklogEntryModel.created_at, WorklogEntryModel.id)
        )
        rows = self._guarded(_TABLE, lambda: self.session.scalars(stmt).all())
        return [row.to_dto() for row in rows]
