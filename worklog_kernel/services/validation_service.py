"""
ValidationEngine -- I/O shell around the pure validation rules.

Responsibility:
    Gathers everything the rules in ``domain.validation`` need (actor
    snapshot, activity catalog, the actor's existing entries for the day),
    runs them, and records the outcome in the audit sink.

Architecture position:
    Kernel > Services.  Lock-free: it only reads the stores.

Audit records:
    - ``entry_rejected``            one per rejection, with every error.
    - ``validation_overlap_skipped`` warning when no start time is derivable.
    - ``validation_internal_error`` when validation itself malfunctions,
      kept separate so operators can tell bad input from a system fault.

Failure modes:
    - Never raises for foreseeable bad data.  An unexpected exception is
      logged, audited, and returned as a rejected result carrying one
      ``INTERNAL_ERROR`` error of kind ``internal``.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from worklog_kernel.domain.calendar import parse_calendar_date
from worklog_kernel.domain.classification import ActivityCatalog
from worklog_kernel.domain.clock import Clock, SystemClock
from worklog_kernel.domain.policy import CompliancePolicy
from worklog_kernel.domain.types import (
    CandidateEntry,
    ErrorKind,
    ValidationError,
    ValidationResult,
)
from worklog_kernel.domain.validation import (
    OVERLAP_SKIPPED_WARNING,
    ActorSnapshot,
    validate_entry,
)
from worklog_kernel.exceptions import DataIntegrityError
from worklog_kernel.logging_config import LogContext, get_logger
from worklog_kernel.models.audit_event import AuditAction, AuditSeverity
from worklog_kernel.selectors.entry_selector import EntrySelector
from worklog_kernel.selectors.reference_selector import ReferenceSelector
from worklog_kernel.services.auditor_service import AuditSink, NullAuditSink
from worklog_kernel.services.authorization import AuthorizationContext

logger = get_logger("services.validation")


class ValidationEngine:
    """
    Accept or reject one candidate entry.

    Contract:
        ``validate(candidate, actor_ref, now)`` returns a ValidationResult.
        On rejection the caller must not persist the entry.
    """

    def __init__(
        self,
        session: Session,
        policy: CompliancePolicy | None = None,
        clock: Clock | None = None,
        audit: AuditSink | None = None,
    ):
        self._session = session
        self._policy = policy or CompliancePolicy()
        self._clock = clock or SystemClock()
        self._audit = audit or NullAuditSink()
        self._authorization = AuthorizationContext(session)
        self._references = ReferenceSelector(session)
        self._entries = EntrySelector(session)

    def _load_catalog(self) -> ActivityCatalog:
        try:
            return self._references.load_catalog(self._policy.reserved_out_of_grant_codes)
        except DataIntegrityError as exc:
            # Surfaces as a CATALOG_UNAVAILABLE error of kind internal.
            logger.error(
                "activity_catalog_unavailable",
                extra={"table": exc.table, "reason": exc.reason},
            )
            return ActivityCatalog.unavailable(self._policy.reserved_out_of_grant_codes)

    def _existing_for(self, snapshot: ActorSnapshot, candidate: CandidateEntry):
        entry_date = parse_calendar_date(candidate.entry_date)
        if snapshot.staff is None or entry_date is None:
            return []
        return self._entries.for_actor_on(snapshot.actor_id, entry_date)

    def validate(
        self,
        candidate: CandidateEntry | Mapping[str, Any],
        actor_ref: str,
        now: datetime | None = None,
    ) -> ValidationResult:
        if not isinstance(candidate, CandidateEntry):
            candidate = CandidateEntry.from_payload(candidate)
        now = now or self._clock.now()

        with LogContext.bind(actor_id=actor_ref, entry_id=candidate.entry_id):
            try:
                snapshot = self._authorization.snapshot(actor_ref, candidate.subject_id)
                catalog = self._load_catalog()
                existing = self._existing_for(snapshot, candidate)
                result = validate_entry(
                    candidate, snapshot, catalog, existing, now, self._policy
                )
            except Exception as exc:
                logger.exception("validation_internal_error")
                self._audit.record(
                    AuditAction.VALIDATION_INTERNAL_ERROR,
                    {
                        "stage": "validate",
                        "exc_type": type(exc).__name__,
                        "reason": str(exc),
                    },
                    entity_type="WorklogEntry",
                    entity_id=candidate.entry_id or "-",
                    actor_id=actor_ref,
                    severity=AuditSeverity.ERROR,
                )
                return ValidationResult.failure(
                    ValidationError(
                        code="INTERNAL_ERROR",
                        message="The entry could not be validated because of a system error.",
                        kind=ErrorKind.INTERNAL,
                    )
                )

            self._record_outcome(candidate, snapshot, result)
            return result

    def _record_outcome(
        self,
        candidate: CandidateEntry,
        snapshot: ActorSnapshot,
        result: ValidationResult,
    ) -> None:
        entity_id = candidate.entry_id or "-"

        if OVERLAP_SKIPPED_WARNING in result.warnings:
            logger.warning(
                "validation_overlap_skipped",
                extra={"actor": snapshot.actor_id, "entry_date": str(candidate.entry_date)},
            )
            self._audit.record(
                AuditAction.VALIDATION_OVERLAP_SKIPPED,
                {
                    "entry_date": str(candidate.entry_date),
                    "minutes": str(candidate.minutes),
                    "reason": "no start time derivable from start field or notes",
                },
                entity_type="WorklogEntry",
                entity_id=entity_id,
                actor_id=snapshot.actor_id,
                severity=AuditSeverity.WARNING,
            )

        if result.accepted:
            logger.info(
                "entry_validated",
                extra={"actor": snapshot.actor_id, "warnings": list(result.warnings)},
            )
            return

        logger.info(
            "entry_rejected",
            extra={"actor": snapshot.actor_id, "error_codes": list(result.codes)},
        )
        internal = [e for e in result.errors if e.kind is ErrorKind.INTERNAL]
        if internal:
            self._audit.record(
                AuditAction.VALIDATION_INTERNAL_ERROR,
                {"stage": "rules", "errors": [e.to_payload() for e in internal]},
                entity_type="WorklogEntry",
                entity_id=entity_id,
                actor_id=snapshot.actor_id,
                severity=AuditSeverity.ERROR,
            )
        self._audit.record(
            AuditAction.ENTRY_REJECTED,
            {
                "candidate": {
                    "entry_date": str(candidate.entry_date),
                    "minutes": str(candidate.minutes),
                    "activity_code": str(candidate.activity_code),
                    "subject_id": candidate.subject_id,
                },
                "errors": [e.to_payload() for e in result.errors],
            },
            entity_type="WorklogEntry",
            entity_id=entity_id,
            actor_id=snapshot.actor_id,
            severity=AuditSeverity.WARNING,
        )
