"""
Module: worklog_kernel.models.weekly_report
Responsibility: ORM persistence for sealed weekly reports and their rows.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one report per week ending (unique week_end and report_key).
    - The only permitted UPDATE is the sealing transition: is_sealed goes
      False -> True, sealed_at is set, editors shrink to the owner.  After
      that every UPDATE is refused; DELETE is always refused.
    - Report rows are immutable from creation.

Failure modes:
    - IntegrityError on a second report for the same week (last line of the
      duplicate-closure guard, behind the existence check under the lock).
    - ImmutabilityViolationError on any forbidden write.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from worklog_kernel.db.base import Base, TrackedBase, UUIDString

if TYPE_CHECKING:
    from worklog_kernel.domain.types import ReportRow, WeeklyReport


class WeeklyReportModel(TrackedBase):
    """Header of the weekly report artifact."""

    __tablename__ = "weekly_reports"

    __table_args__ = (
        UniqueConstraint("report_key", name="uq_weekly_report_key"),
        UniqueConstraint("week_end", name="uq_weekly_report_week_end"),
    )

    report_key: Mapped[str] = mapped_column(String(200), nullable=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    week_end: Mapped[date] = mapped_column(Date, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    actor_count: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_count: Mapped[int] = mapped_column(Integer, nullable=False)
    included_entry_ids: Mapped[list] = mapped_column(JSON, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    editors: Mapped[list] = mapped_column(JSON, nullable=False)
    is_sealed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sealed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    rows: Mapped[list[WeeklyReportRowModel]] = relationship(
        "WeeklyReportRowModel",
        back_populates="report",
        order_by="WeeklyReportRowModel.position",
    )

    def __repr__(self) -> str:
        state = "sealed" if self.is_sealed else "open"
        return f"<WeeklyReport {self.report_key} ({state})>"

    def seal(self, sealed_at: datetime) -> None:
        """Apply the one-way sealing transition.

        Requires sealed_at from the injected clock.  Idempotent: sealing a
        sealed report is a no-op so no UPDATE is emitted.
        """
        if self.is_sealed:
            return
        self.is_sealed = True
        self.sealed_at = sealed_at
        self.editors = [self.owner]

    def to_dto(self) -> WeeklyReport:
        from worklog_kernel.domain.types import WeeklyReport

        return WeeklyReport(
            report_key=self.report_key,
            week_start=self.week_start,
            week_end=self.week_end,
            generated_at=self.generated_at,
            rows=tuple(row.to_dto() for row in self.rows),
            included_entry_ids=tuple(self.included_entry_ids or ()),
            content_hash=self.content_hash,
            owner=self.owner,
            is_sealed=self.is_sealed,
            report_id=str(self.id),
        )


class WeeklyReportRowModel(Base):
    """One (actor, category) row of a weekly report, stored in report order."""

    __tablename__ = "weekly_report_rows"

    __table_args__ = (
        UniqueConstraint("report_id", "position", name="uq_report_row_position"),
        Index("idx_report_row_actor", "actor_id"),
    )

    report_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("weekly_reports.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    total_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    billable_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_count: Mapped[int] = mapped_column(Integer, nullable=False)

    report: Mapped[WeeklyReportModel] = relationship(
        "WeeklyReportModel", back_populates="rows",
    )

    def to_dto(self) -> ReportRow:
        from worklog_kernel.domain.types import FundingCategory, ReportRow

        return ReportRow(
            actor_id=self.actor_id,
            category=FundingCategory(self.category),
            total_minutes=self.total_minutes,
            entry_count=self.entry_count,
            billable_minutes=self.billable_minutes,
        )
