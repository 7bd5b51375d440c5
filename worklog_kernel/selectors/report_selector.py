"""
Module: worklog_kernel.selectors.report_selector
Responsibility: Read access to sealed weekly reports and their adjustments.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from worklog_kernel.domain.types import Adjustment, WeeklyReport
from worklog_kernel.models.adjustment import WorklogAdjustmentModel
from worklog_kernel.models.weekly_report import WeeklyReportModel
from worklog_kernel.selectors.base import BaseSelector

_REPORTS = WeeklyReportModel.__tablename__


class ReportSelector(BaseSelector):

    def find_model(self, week_end: date) -> WeeklyReportModel | None:
        """ORM instance for the report store; other callers use ``get``."""
        stmt = (
            select(WeeklyReportModel)
            .where(WeeklyReportModel.week_end == week_end)
            .options(selectinload(WeeklyReportModel.rows))
        )
        return self._guarded(_REPORTS, lambda: self.session.scalars(stmt).first())

    def exists(self, week_end: date) -> bool:
        stmt = select(WeeklyReportModel.id).where(WeeklyReportModel.week_end == week_end)
        return self._guarded(_REPORTS, lambda: self.session.scalar(stmt)) is not None

    def get(self, week_end: date) -> WeeklyReport | None:
        model = self.find_model(week_end)
        return model.to_dto() if model is not None else None

    def adjustments_for(self, week_end: date) -> list[Adjustment]:
        stmt = (
            select(WorklogAdjustmentModel)
            .where(WorklogAdjustmentModel.adjusts_week_end == week_end)
            .order_by(WorklogAdjustmentModel.created_at, WorklogAdjustmentModel.id)
        )
        rows = self._guarded(
            WorklogAdjustmentModel.__tablename__,
            lambda: self.session.scalars(stmt).all(),
        )
        return [row.to_dto() for row in rows]
