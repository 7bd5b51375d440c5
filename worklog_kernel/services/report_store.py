"""
ReportStore -- creation, sealing and verification of weekly reports.

Responsibility:
    exists(week_end) -> bool; create(...) -> handle; seal(handle);
    verify(week_end) recomputes the content hash of a stored report.

Invariants enforced:
    - Reports are created unsealed and sealed in the same unit of work;
      sealing is the only UPDATE the ORM listeners permit on a report.
    - Sealing revokes every editor grant except the owning principal.
    - Rows are stored in report order (``position``) so that order is
      preserved and covered by the content hash.

Failure modes:
    - ReportTamperedError from ``verify`` when stored content no longer
      matches the hash sealed at creation.
    - WeekNotClosedError from ``verify`` when no report exists.

Flush-only: the caller holds the store lock and commits.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime

from sqlalchemy.orm import Session

from worklog_kernel.domain.clock import Clock, SystemClock
from worklog_kernel.domain.types import ReportRow, WeeklyReport
from worklog_kernel.exceptions import ReportTamperedError, WeekNotClosedError
from worklog_kernel.logging_config import get_logger
from worklog_kernel.models.weekly_report import WeeklyReportModel, WeeklyReportRowModel
from worklog_kernel.selectors.report_selector import ReportSelector
from worklog_kernel.utils.hashing import hash_report_content

logger = get_logger("services.report_store")


def _row_payload(row: ReportRow | WeeklyReportRowModel) -> dict:
    category = row.category
    return {
        "actor_id": row.actor_id,
        "category": getattr(category, "value", category),
        "total_minutes": row.total_minutes,
        "billable_minutes": row.billable_minutes,
        "entry_count": row.entry_count,
    }


def compute_content_hash(
    report_key: str,
    week_start: date,
    week_end: date,
    rows: Sequence[ReportRow | WeeklyReportRowModel],
    included_entry_ids: Sequence[str],
) -> str:
    return hash_report_content(
        report_key,
        week_start,
        week_end,
        [_row_payload(r) for r in rows],
        list(included_entry_ids),
    )


class ReportStore:

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._selector = ReportSelector(session)

    def exists(self, week_end: date) -> bool:
        return self._selector.exists(week_end)

    def get(self, week_end: date) -> WeeklyReport | None:
        return self._selector.get(week_end)

    def create(
        self,
        *,
        report_key: str,
        week_start: date,
        week_end: date,
        generated_at: datetime,
        rows: Sequence[ReportRow],
        included_entry_ids: Sequence[str],
        owner: str,
        created_by: str,
    ) -> WeeklyReportModel:
        """Write an unsealed report and its rows; returns the handle to seal."""
        content_hash = compute_content_hash(
            report_key, week_start, week_end, rows, included_entry_ids
        )
        editors = [owner] if created_by == owner else [owner, created_by]
        report = WeeklyReportModel(
            report_key=report_key,
            week_start=week_start,
            week_end=week_end,
            generated_at=generated_at,
            actor_count=len({r.actor_id for r in rows}),
            entry_count=len(included_entry_ids),
            included_entry_ids=list(included_entry_ids),
            content_hash=content_hash,
            owner=owner,
            editors=editors,
            is_sealed=False,
            created_at=generated_at,
            created_by=created_by,
        )
        self._session.add(report)
        self._session.flush()

        for position, row in enumerate(rows):
            self._session.add(
                WeeklyReportRowModel(
                    report_id=report.id,
                    position=position,
                    actor_id=row.actor_id,
                    category=row.category.value,
                    total_minutes=row.total_minutes,
                    billable_minutes=row.billable_minutes,
                    entry_count=row.entry_count,
                )
            )
        self._session.flush()
        self._session.refresh(report, attribute_names=["rows"])

        logger.info(
            "report_created",
            extra={
                "report_key": report_key,
                "row_count": len(rows),
                "entry_count": len(included_entry_ids),
                "content_hash": content_hash,
            },
        )
        return report

    def seal(self, handle: WeeklyReportModel) -> None:
        """Deny further writes: mark sealed and reduce editors to the owner."""
        handle.seal(self._clock.now())
        self._session.flush()
        logger.info(
            "report_sealed",
            extra={"report_key": handle.report_key, "editors": list(handle.editors)},
        )

    def verify(self, week_end: date) -> WeeklyReport:
        """
        Recompute the stored report's content hash.

        Raises:
            WeekNotClosedError: no report exists for ``week_end``.
            ReportTamperedError: stored content does not match its hash.
        """
        model = self._selector.find_model(week_end)
        if model is None:
            raise WeekNotClosedError(week_end.isoformat())

        actual = compute_content_hash(
            model.report_key,
            model.week_start,
            model.week_end,
            list(model.rows),
            list(model.included_entry_ids or ()),
        )
        if actual != model.content_hash or not model.is_sealed:
            logger.critical(
                "report_tamper_detected",
                extra={
                    "report_key": model.report_key,
                    "expected_hash": model.content_hash,
                    "actual_hash": actual,
                    "is_sealed": model.is_sealed,
                },
            )
            raise ReportTamperedError(model.report_key, model.content_hash, actual)

        logger.info("report_verified", extra={"report_key": model.report_key})
        return model.to_dto()
