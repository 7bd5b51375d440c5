"""
AggregationEngine -- the week-close state machine.

Responsibility:
    ``close_week(week_ending)`` turns one week of accepted entries into a
    sealed, immutable WeeklyReport, exactly once per week ending.

States:
    OPEN (no report for week_end) -> CLOSING (lock held, report being
    built) -> CLOSED (report exists and is sealed).  One way; CLOSED is
    terminal.

Steps, all inside ``hold()`` on the store lock:
    1. Record ``week_close_started`` and commit it so it survives failure.
    2. Normalize the week ending (bad input -> INVALID_INPUT, no retry).
    3. Duplicate-closure guard: an existing report -> ALREADY_CLOSED.
    4. Scan the window, apply the inclusion filter, classify.
    5. Group by (actor, category) and order deterministically.
    6. Create the report with its content hash and seal it.
    7. Record ``week_close_completed`` and commit; then the lock releases.

Failure modes:
    - LockTimeoutError -> LOCK_TIMEOUT, retryable, week stays OPEN.
    - DataIntegrityError (missing entry or report table) -> FAILED, not
      retryable.
    - Any other exception -> FAILED, retryable, rolled back, audited as
      ``week_close_failed``.  No raw fault ever reaches the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from worklog_kernel.db.engine import write_session
from worklog_kernel.domain.aggregation import aggregate_week
from worklog_kernel.domain.calendar import normalize_week_ending, report_key_for, week_window
from worklog_kernel.domain.classification import ActivityCatalog
from worklog_kernel.domain.clock import Clock, SystemClock
from worklog_kernel.domain.policy import CompliancePolicy
from worklog_kernel.domain.types import WeeklyReport
from worklog_kernel.exceptions import (
    DataIntegrityError,
    InternalError,
    InvalidWeekEndingError,
    LockTimeoutError,
    WeekAlreadyClosedError,
)
from worklog_kernel.logging_config import LogContext, get_logger
from worklog_kernel.models.audit_event import AuditAction, AuditSeverity
from worklog_kernel.selectors.entry_selector import EntrySelector
from worklog_kernel.selectors.reference_selector import ReferenceSelector
from worklog_kernel.services.auditor_service import (
    SYSTEM_ACTOR,
    AuditSink,
    AuditSinkFactory,
    default_audit_sink_factory,
)
from worklog_kernel.services.lock_service import LockProvider, default_lock_provider, hold
from worklog_kernel.services.report_store import ReportStore

logger = get_logger("services.week_close")


class CloseWeekStatus(str, Enum):
    CLOSED = "closed"
    ALREADY_CLOSED = "already_closed"
    LOCK_TIMEOUT = "lock_timeout"
    INVALID_INPUT = "invalid_input"
    FAILED = "failed"


@dataclass(frozen=True)
class CloseWeekResult:
    """
    Structured outcome of ``close_week``.

    Callers distinguish "already closed" (informational success) from
    "failed to close" (usually retryable) from "bad input" (never
    retryable) by ``status`` and ``retryable``.
    """

    status: CloseWeekStatus
    week_end: date | None = None
    report_key: str | None = None
    report: WeeklyReport | None = None
    message: str = ""
    error_code: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status in (CloseWeekStatus.CLOSED, CloseWeekStatus.ALREADY_CLOSED)

    @property
    def retryable(self) -> bool:
        if self.status is CloseWeekStatus.LOCK_TIMEOUT:
            return True
        if self.status is CloseWeekStatus.FAILED:
            return self.error_code != DataIntegrityError.code
        return False


class AggregationEngine:
    """Close weeks into sealed reports."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        policy: CompliancePolicy | None = None,
        lock_provider: LockProvider | None = None,
        clock: Clock | None = None,
        audit_sink_factory: AuditSinkFactory | None = None,
    ):
        self._session_factory = session_factory
        self._policy = policy or CompliancePolicy()
        self._lock = lock_provider or default_lock_provider()
        self._clock = clock or SystemClock()
        self._audit_factory = audit_sink_factory or default_audit_sink_factory(self._clock)

    def close_week(self, week_ending: Any, actor_id: str | None = None) -> CloseWeekResult:
        requested_by = actor_id or SYSTEM_ACTOR
        with LogContext.bind(actor_id=requested_by, week_end=str(week_ending)):
            try:
                with hold(self._lock, self._policy.lock_timeout_seconds):
                    return self._close_locked(week_ending, requested_by)
            except LockTimeoutError as exc:
                logger.warning(
                    "week_close_lock_timeout",
                    extra={"timeout_seconds": exc.timeout_seconds},
                )
                return CloseWeekResult(
                    status=CloseWeekStatus.LOCK_TIMEOUT,
                    message=(
                        "Another closure or entry write is in progress; "
                        "the week is still open, please retry."
                    ),
                    error_code=exc.code,
                )

    # ------------------------------------------------------------------

    def _close_locked(self, week_ending: Any, requested_by: str) -> CloseWeekResult:
        with write_session(self._session_factory) as session:
            audit = self._audit_factory(session)
            audit.record(
                AuditAction.WEEK_CLOSE_STARTED,
                {"week_ending": repr(week_ending), "requested_by": requested_by},
                entity_type="WeeklyReport",
                actor_id=requested_by,
            )
            self._commit_audit(session)

            try:
                week_end = normalize_week_ending(week_ending)
            except InvalidWeekEndingError as exc:
                logger.warning("week_close_invalid_input", extra={"reason": exc.reason})
                self._record_failure(session, audit, requested_by, None, exc)
                return CloseWeekResult(
                    status=CloseWeekStatus.INVALID_INPUT,
                    message=str(exc),
                    error_code=exc.code,
                )

            report_key = report_key_for(self._policy.report_prefix, week_end)
            try:
                return self._build(session, audit, week_end, report_key, requested_by)
            except WeekAlreadyClosedError:
                # Lost a race the in-process lock cannot see (another worker).
                session.rollback()
                return self._already_closed(session, audit, week_end, report_key, requested_by)
            except DataIntegrityError as exc:
                session.rollback()
                logger.error(
                    "week_close_data_integrity_failure",
                    extra={"table": exc.table, "reason": exc.reason, "report_key": report_key},
                )
                self._record_failure(session, audit, requested_by, report_key, exc)
                return CloseWeekResult(
                    status=CloseWeekStatus.FAILED,
                    week_end=week_end,
                    report_key=report_key,
                    message=str(exc),
                    error_code=exc.code,
                )
            except Exception as exc:
                session.rollback()
                logger.exception("week_close_failed", extra={"report_key": report_key})
                wrapped = InternalError("close_week", f"{type(exc).__name__}: {exc}")
                self._record_failure(session, audit, requested_by, report_key, wrapped)
                return CloseWeekResult(
                    status=CloseWeekStatus.FAILED,
                    week_end=week_end,
                    report_key=report_key,
                    message=f"Week {week_end.isoformat()} could not be closed; please retry.",
                    error_code=wrapped.code,
                )

    def _build(
        self,
        session: Session,
        audit: AuditSink,
        week_end: date,
        report_key: str,
        requested_by: str,
    ) -> CloseWeekResult:
        reports = ReportStore(session, self._clock)
        if reports.exists(week_end):
            return self._already_closed(session, audit, week_end, report_key, requested_by)

        week_start, _ = week_window(week_end)
        entries = EntrySelector(session).scan(week_start, week_end)
        catalog = self._load_catalog(session)
        aggregation = aggregate_week(entries, catalog, week_start, week_end)

        try:
            handle = reports.create(
                report_key=report_key,
                week_start=week_start,
                week_end=week_end,
                generated_at=self._clock.now(),
                rows=aggregation.rows,
                included_entry_ids=aggregation.included_entry_ids,
                owner=self._policy.report_owner,
                created_by=requested_by,
            )
        except IntegrityError as exc:
            raise WeekAlreadyClosedError(report_key) from exc
        reports.seal(handle)

        audit.record(
            AuditAction.WEEK_CLOSE_COMPLETED,
            {
                "report_key": report_key,
                "week_start": week_start,
                "week_end": week_end,
                "included_entry_ids": list(aggregation.included_entry_ids),
                "entry_count": len(aggregation.included_entry_ids),
                "actor_count": aggregation.actor_count,
                "row_count": len(aggregation.rows),
                "total_minutes": aggregation.total_minutes,
                "skipped_count": aggregation.skipped_count,
                "content_hash": handle.content_hash,
            },
            entity_type="WeeklyReport",
            entity_id=str(handle.id),
            actor_id=requested_by,
        )
        session.commit()

        report = handle.to_dto()
        logger.info(
            "week_closed",
            extra={
                "report_key": report_key,
                "entry_count": report.entry_count,
                "actor_count": report.actor_count,
                "skipped_count": aggregation.skipped_count,
            },
        )
        return CloseWeekResult(
            status=CloseWeekStatus.CLOSED,
            week_end=week_end,
            report_key=report_key,
            report=report,
            message=f"Week {week_end.isoformat()} closed: {report_key}.",
        )

    def _already_closed(
        self,
        session: Session,
        audit: AuditSink,
        week_end: date,
        report_key: str,
        requested_by: str,
    ) -> CloseWeekResult:
        existing = ReportStore(session, self._clock).get(week_end)
        audit.record(
            AuditAction.WEEK_CLOSE_ALREADY_CLOSED,
            {"report_key": existing.report_key if existing else report_key},
            entity_type="WeeklyReport",
            entity_id=existing.report_id if existing else "-",
            actor_id=requested_by,
        )
        self._commit_audit(session)
        logger.info("week_already_closed", extra={"report_key": report_key})
        return CloseWeekResult(
            status=CloseWeekStatus.ALREADY_CLOSED,
            week_end=week_end,
            report_key=existing.report_key if existing else report_key,
            report=existing,
            message=f"Week {week_end.isoformat()} is already closed.",
            error_code=WeekAlreadyClosedError.code,
        )

    def _load_catalog(self, session: Session) -> ActivityCatalog:
        reserved = self._policy.reserved_out_of_grant_codes
        try:
            return ReferenceSelector(session).load_catalog(reserved)
        except DataIntegrityError as exc:
            # Logged once per pass; every entry degrades to UNCLASSIFIED.
            logger.warning(
                "activity_catalog_unavailable",
                extra={"table": exc.table, "reason": exc.reason, "degraded_to": "UNCLASSIFIED"},
            )
            return ActivityCatalog.unavailable(reserved)

    def _record_failure(
        self,
        session: Session,
        audit: AuditSink,
        requested_by: str,
        report_key: str | None,
        exc: Exception,
    ) -> None:
        audit.record(
            AuditAction.WEEK_CLOSE_FAILED,
            {
                "report_key": report_key,
                "error_code": getattr(exc, "code", type(exc).__name__),
                "reason": str(exc),
            },
            entity_type="WeeklyReport",
            actor_id=requested_by,
            severity=AuditSeverity.ERROR,
        )
        self._commit_audit(session)

    def _commit_audit(self, session: Session) -> None:
        try:
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("audit_commit_failed")
