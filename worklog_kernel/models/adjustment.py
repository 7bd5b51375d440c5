"""
Module: worklog_kernel.models.adjustment
Responsibility: ORM persistence for compensating adjustments to sealed weeks.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only (ORM listeners in db/immutability.py).
    - minutes is signed and never zero (CHECK constraint).
    - adjusts_week_end references a week that was CLOSED when the row was
      written (checked by AdjustmentService under the store lock).
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Date, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from worklog_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from worklog_kernel.domain.types import Adjustment


class WorklogAdjustmentModel(TrackedBase):
    """Compensating minutes for one actor/activity against a sealed week."""

    __tablename__ = "worklog_adjustments"

    __table_args__ = (
        CheckConstraint("minutes <> 0", name="ck_adjustment_nonzero"),
        Index("idx_adjustment_week", "adjusts_week_end"),
    )

    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    activity_code: Mapped[str] = mapped_column(String(50), nullable=False)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    adjusts_week_end: Mapped[date] = mapped_column(Date, nullable=False)
    # Date of the correction itself, always after the sealed window
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<WorklogAdjustment {self.actor_id} {self.minutes:+d}m wk {self.adjusts_week_end}>"

    def to_dto(self) -> Adjustment:
        from worklog_kernel.domain.types import Adjustment

        return Adjustment(
            adjustment_id=str(self.id),
            actor_id=self.actor_id,
            activity_code=self.activity_code,
            minutes=self.minutes,
            adjusts_week_end=self.adjusts_week_end,
            effective_date=self.effective_date,
            reason=self.reason,
            recorded_by=self.created_by,
            created_at=self.created_at,
        )
