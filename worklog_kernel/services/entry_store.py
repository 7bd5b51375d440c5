"""
EntryStore -- append-only writer for accepted worklog entries.

Flush-only: the caller (EntryService) holds the store lock and commits.
"""

from dataclasses import replace

from sqlalchemy.orm import Session

from worklog_kernel.domain.clock import Clock, SystemClock
from worklog_kernel.domain.types import WorklogEntry
from worklog_kernel.logging_config import get_logger
from worklog_kernel.models.worklog_entry import WorklogEntryModel

logger = get_logger("services.entry_store")


class EntryStore:

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def append(self, entry: WorklogEntry, created_by: str | None = None) -> WorklogEntry:
        """Persist ``entry`` and return it with its generated id and createdAt."""
        stamped = replace(entry, created_at=self._clock.now())
        model = WorklogEntryModel.from_dto(stamped, created_by=created_by or entry.actor_id)
        self._session.add(model)
        self._session.flush()

        logger.info(
            "entry_appended",
            extra={
                "entry_id": str(model.id),
                "actor": model.actor_id,
                "entry_date": model.entry_date,
                "minutes": model.minutes,
                "activity_code": model.activity_code,
            },
        )
        return replace(stamped, entry_id=str(model.id))
