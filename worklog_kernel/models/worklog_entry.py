"""
Module: worklog_kernel.models.worklog_entry
Responsibility: ORM persistence for accepted worklog entries.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: every UPDATE and DELETE is refused by the ORM listeners
      in db/immutability.py.  Corrections after closure are adjustment rows
      (models/adjustment.py), never edits.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import Date, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from worklog_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from worklog_kernel.domain.types import WorklogEntry


class WorklogEntryModel(TrackedBase):
    """
    One accepted unit of logged time.

    Non-goals:
        - No CHECK constraint on ``minutes``: the validation engine guards
          new rows, and aggregation's inclusion filter tolerates legacy ones.
    """

    __tablename__ = "worklog_entries"

    __table_args__ = (
        Index("idx_entry_date", "entry_date"),
        Index("idx_entry_actor_date", "actor_id", "entry_date"),
    )

    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    activity_code: Mapped[str] = mapped_column(String(50), nullable=False)
    subject_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)
    start_minute_of_day: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<WorklogEntry {self.actor_id} {self.entry_date} {self.minutes}m {self.activity_code}>"

    def to_dto(self) -> WorklogEntry:
        from worklog_kernel.domain.types import WorklogEntry

        return WorklogEntry(
            entry_id=str(self.id) if self.id is not None else "",
            actor_id=self.actor_id or "",
            entry_date=self.entry_date,
            minutes=self.minutes,
            activity_code=self.activity_code or "",
            subject_id=self.subject_id,
            notes=self.notes or "",
            start_minute_of_day=self.start_minute_of_day,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto: WorklogEntry, created_by: str) -> WorklogEntryModel:
        model = cls(
            actor_id=dto.actor_id,
            entry_date=dto.entry_date,
            minutes=dto.minutes,
            activity_code=dto.activity_code,
            subject_id=dto.subject_id,
            notes=dto.notes or "",
            start_minute_of_day=dto.start_minute_of_day,
            created_by=created_by,
        )
        if dto.created_at is not None:
            model.created_at = dto.created_at
        return model
