"""
AdjustmentService -- post-closure corrections without rewriting history.

Responsibility:
    A sealed week is never recomputed.  Corrections are appended as
    compensating adjustment rows, dated at correction time and pointing
    back at the affected week; ``adjusted_summary`` folds them into a
    derived view while the sealed report stays untouched.

Invariants enforced:
    - Adjustments are only accepted for weeks that are already CLOSED,
      checked under the store lock so a concurrent closure cannot race it.
    - minutes is signed and non-zero.
    - The recorder must resolve to an active staff member.

Failure modes (raised; this is a command API, not a pipeline boundary):
    - InvalidWeekEndingError / InputError for malformed input.
    - AuthorizationError for an unknown or inactive recorder.
    - WeekNotClosedError when the week has no sealed report.
    - LockTimeoutError when the store lock is busy (retryable).
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from worklog_kernel.db.engine import write_session
from worklog_kernel.domain.calendar import normalize_week_ending, parse_minutes
from worklog_kernel.domain.classification import (
    ActivityCatalog,
    classify,
    normalize_activity_code,
)
from worklog_kernel.domain.clock import Clock, SystemClock
from worklog_kernel.domain.policy import CompliancePolicy
from worklog_kernel.domain.types import (
    AdjustedRow,
    AdjustedWeekSummary,
    Adjustment,
    FundingCategory,
    ReportRow,
    WorklogEntry,
)
from worklog_kernel.exceptions import DataIntegrityError, InputError, WeekNotClosedError
from worklog_kernel.logging_config import LogContext, get_logger
from worklog_kernel.models.adjustment import WorklogAdjustmentModel
from worklog_kernel.models.audit_event import AuditAction
from worklog_kernel.selectors.reference_selector import ReferenceSelector
from worklog_kernel.selectors.report_selector import ReportSelector
from worklog_kernel.services.auditor_service import (
    AuditSinkFactory,
    default_audit_sink_factory,
)
from worklog_kernel.services.authorization import AuthorizationContext
from worklog_kernel.services.lock_service import LockProvider, default_lock_provider, hold

logger = get_logger("services.adjustment")


def fold_adjustments(
    rows: Iterable[ReportRow],
    adjustments: Iterable[Adjustment],
    catalog: ActivityCatalog,
) -> tuple[AdjustedRow, ...]:
    """Merge sealed rows with classified adjustments, keeping report order.

    Rows that exist only because of an adjustment are appended after the
    sealed rows in (actor case-folded, category) order.
    """
    sealed: dict[tuple[str, FundingCategory], int] = {}
    order: list[tuple[str, FundingCategory]] = []
    for row in rows:
        key = (row.actor_id, row.category)
        if key not in sealed:
            order.append(key)
            sealed[key] = 0
        sealed[key] += row.total_minutes

    deltas: dict[tuple[str, FundingCategory], int] = {}
    for adj in adjustments:
        verdict = classify(
            WorklogEntry(
                entry_id=adj.adjustment_id,
                actor_id=adj.actor_id,
                entry_date=adj.effective_date,
                minutes=adj.minutes,
                activity_code=adj.activity_code,
            ),
            catalog,
        )
        key = (adj.actor_id, verdict.category)
        deltas[key] = deltas.get(key, 0) + adj.minutes

    extra = sorted(
        (k for k in deltas if k not in sealed),
        key=lambda k: (k[0].casefold(), k[1].value, k[0]),
    )
    return tuple(
        AdjustedRow(
            actor_id=actor,
            category=category,
            sealed_minutes=sealed.get((actor, category), 0),
            adjustment_minutes=deltas.get((actor, category), 0),
        )
        for actor, category in order + extra
    )


class AdjustmentService:

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

    def record_adjustment(
        self,
        week_ending: Any,
        actor_id: str,
        activity_code: str,
        minutes: Any,
        reason: str,
        recorded_by: str,
    ) -> Adjustment:
        """Append a compensating record against a sealed week."""
        week_end = normalize_week_ending(week_ending)
        delta = parse_minutes(minutes)
        if delta is None or delta == 0:
            raise InputError("Adjustment minutes must be a non-zero whole number.")
        code = normalize_activity_code(activity_code)
        if not code:
            raise InputError("Adjustment activity code is required.")
        if not (reason or "").strip():
            raise InputError("Adjustment reason is required.")

        with LogContext.bind(actor_id=recorded_by, week_end=week_end.isoformat()):
            with hold(self._lock, self._policy.lock_timeout_seconds):
                with write_session(self._session_factory) as session:
                    authorization = AuthorizationContext(session)
                    recorder = authorization.require_active_actor(recorded_by)
                    subject = authorization.resolve_actor(actor_id)
                    target_actor = subject.staff_id if subject is not None else (actor_id or "").strip()
                    if not target_actor:
                        raise InputError("Adjustment actor is required.")
                    self._require_known_activity(session, code)

                    if not ReportSelector(session).exists(week_end):
                        raise WeekNotClosedError(week_end.isoformat())

                    model = WorklogAdjustmentModel(
                        actor_id=target_actor,
                        activity_code=code,
                        minutes=delta,
                        adjusts_week_end=week_end,
                        effective_date=self._clock.now().date(),
                        reason=reason.strip(),
                        created_at=self._clock.now(),
                        created_by=recorder.staff_id,
                    )
                    session.add(model)
                    session.flush()
                    adjustment = model.to_dto()

                    self._audit_factory(session).record(
                        AuditAction.ADJUSTMENT_RECORDED,
                        {
                            "adjusts_week_end": week_end,
                            "actor_id": target_actor,
                            "activity_code": code,
                            "minutes": delta,
                            "reason": adjustment.reason,
                        },
                        entity_type="Adjustment",
                        entity_id=adjustment.adjustment_id,
                        actor_id=recorder.staff_id,
                    )
                    session.commit()

        logger.info(
            "adjustment_recorded",
            extra={
                "adjustment_id": adjustment.adjustment_id,
                "adjusts_week_end": week_end,
                "minutes": delta,
            },
        )
        return adjustment

    def _require_known_activity(self, session: Session, code: str) -> None:
        catalog = ReferenceSelector(session).load_catalog(
            self._policy.reserved_out_of_grant_codes
        )
        if code not in catalog and code not in catalog.reserved_out_of_grant_codes:
            raise InputError(f"Unknown activity code {code!r}.")

    def adjusted_summary(self, week_ending: Any) -> AdjustedWeekSummary:
        """
        Derived view of a sealed week with its adjustments folded in.

        Raises:
            WeekNotClosedError: no sealed report for the week.
        """
        week_end = normalize_week_ending(week_ending)
        with self._session_factory() as session:
            reports = ReportSelector(session)
            report = reports.get(week_end)
            if report is None:
                raise WeekNotClosedError(week_end.isoformat())
            adjustments = reports.adjustments_for(week_end)
            try:
                catalog = ReferenceSelector(session).load_catalog(
                    self._policy.reserved_out_of_grant_codes
                )
            except DataIntegrityError:
                logger.warning("activity_catalog_unavailable", extra={"degraded_to": "UNCLASSIFIED"})
                catalog = ActivityCatalog.unavailable(self._policy.reserved_out_of_grant_codes)

        return AdjustedWeekSummary(
            report_key=report.report_key,
            week_end=week_end,
            rows=fold_adjustments(report.rows, adjustments, catalog),
            adjustments=tuple(adjustments),
        )
