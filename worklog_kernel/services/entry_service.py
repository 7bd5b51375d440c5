"""
EntryService -- submit a candidate entry: validate, then append under lock.

Responsibility:
    Orchestrates one submission as two units of work:

    1. Validation (lock-free): its own session, which commits only the
       audit records validation emits.
    2. Append (locked): inside ``hold()``, a fresh session re-checks the
       overlap rule against entries committed since step 1, appends the
       entry, records ``entry_recorded``, and commits before the lock is
       released.

Architecture position:
    Kernel > Services -- pipeline service.  Owns its transactions through a
    session factory (the BatchScheduler pattern) instead of flushing into a
    caller's session, because the commit must happen inside the lock.

Failure modes:
    - Rejection: returned as SubmitStatus.REJECTED with every error.
    - LockTimeoutError: returned as SubmitStatus.LOCK_TIMEOUT (retryable);
      nothing was written.
    - Anything else: logged, rolled back, returned as SubmitStatus.FAILED.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from worklog_kernel.db.engine import write_session
from worklog_kernel.domain.clock import Clock, SystemClock
from worklog_kernel.domain.policy import CompliancePolicy
from worklog_kernel.domain.types import (
    CandidateEntry,
    ErrorKind,
    ValidationError,
    ValidationResult,
    WorklogEntry,
)
from worklog_kernel.domain.validation import find_overlaps
from worklog_kernel.exceptions import LockTimeoutError
from worklog_kernel.logging_config import LogContext, get_logger
from worklog_kernel.models.audit_event import AuditAction, AuditSeverity
from worklog_kernel.selectors.entry_selector import EntrySelector
from worklog_kernel.services.auditor_service import (
    AuditSinkFactory,
    default_audit_sink_factory,
)
from worklog_kernel.services.entry_store import EntryStore
from worklog_kernel.services.lock_service import LockProvider, default_lock_provider, hold
from worklog_kernel.services.validation_service import ValidationEngine

logger = get_logger("services.entry")


class SubmitStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    LOCK_TIMEOUT = "lock_timeout"
    FAILED = "failed"


@dataclass(frozen=True)
class SubmitResult:
    status: SubmitStatus
    entry: WorklogEntry | None = None
    errors: tuple[ValidationError, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def accepted(self) -> bool:
        return self.status is SubmitStatus.ACCEPTED

    @property
    def retryable(self) -> bool:
        return self.status in (SubmitStatus.LOCK_TIMEOUT, SubmitStatus.FAILED)

    @property
    def messages(self) -> tuple[str, ...]:
        return tuple(e.message for e in self.errors)


class EntryService:
    """Pipeline entry point for logging time."""

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

    def submit(
        self,
        candidate: CandidateEntry | Mapping[str, Any],
        actor_ref: str,
    ) -> SubmitResult:
        if not isinstance(candidate, CandidateEntry):
            candidate = CandidateEntry.from_payload(candidate)

        with LogContext.bind(actor_id=actor_ref):
            try:
                result = self._validate(candidate, actor_ref)
            except Exception:
                logger.exception("entry_validation_failed")
                return self._failed(())

            if not result.accepted:
                return SubmitResult(
                    status=SubmitStatus.REJECTED,
                    errors=result.errors,
                    warnings=result.warnings,
                )

            try:
                with hold(self._lock, self._policy.lock_timeout_seconds):
                    return self._append_locked(result.entry, actor_ref, result.warnings)
            except LockTimeoutError as exc:
                logger.warning(
                    "entry_submit_lock_timeout",
                    extra={"timeout_seconds": exc.timeout_seconds},
                )
                return SubmitResult(
                    status=SubmitStatus.LOCK_TIMEOUT,
                    errors=(
                        ValidationError(
                            code=exc.code,
                            message="The worklog is busy; please try again.",
                            kind=ErrorKind.INTERNAL,
                        ),
                    ),
                    warnings=result.warnings,
                )

    def _validate(self, candidate: CandidateEntry, actor_ref: str) -> ValidationResult:
        with write_session(self._session_factory) as session:
            try:
                engine = ValidationEngine(
                    session, self._policy, self._clock, self._audit_factory(session)
                )
                result = engine.validate(candidate, actor_ref, self._clock.now())
                session.commit()
            except Exception:
                session.rollback()
                raise
        return result

    def _failed(self, warnings: tuple[str, ...]) -> SubmitResult:
        return SubmitResult(
            status=SubmitStatus.FAILED,
            errors=(
                ValidationError(
                    code="INTERNAL_ERROR",
                    message="The entry could not be saved because of a system error.",
                    kind=ErrorKind.INTERNAL,
                ),
            ),
            warnings=warnings,
        )

    def _append_locked(
        self, entry: WorklogEntry, actor_ref: str, warnings: tuple[str, ...]
    ) -> SubmitResult:
        with write_session(self._session_factory) as session:
            audit = self._audit_factory(session)
            try:
                if entry.start_minute_of_day is not None:
                    # Entries committed between validation and lock acquisition
                    latest = EntrySelector(session).for_actor_on(entry.actor_id, entry.entry_date)
                    clashes = find_overlaps(
                        None,
                        entry.actor_id,
                        entry.entry_date,
                        entry.start_minute_of_day,
                        entry.minutes,
                        latest,
                    )
                    if clashes:
                        errors = tuple(
                            ValidationError(
                                code="TIME_OVERLAP",
                                message="Entry overlaps an entry recorded while it was being validated.",
                                field="start_time",
                                details={"conflicting_entry_id": c.entry_id},
                            )
                            for c in clashes
                        )
                        audit.record(
                            AuditAction.ENTRY_REJECTED,
                            {"errors": [e.to_payload() for e in errors]},
                            entity_type="WorklogEntry",
                            actor_id=entry.actor_id,
                            severity=AuditSeverity.WARNING,
                        )
                        session.commit()
                        return SubmitResult(
                            status=SubmitStatus.REJECTED, errors=errors, warnings=warnings
                        )

                stored = EntryStore(session, self._clock).append(entry, created_by=actor_ref)
                audit.record(
                    AuditAction.ENTRY_RECORDED,
                    {
                        "entry_date": stored.entry_date,
                        "minutes": stored.minutes,
                        "activity_code": stored.activity_code,
                        "subject_id": stored.subject_id,
                    },
                    entity_type="WorklogEntry",
                    entity_id=stored.entry_id,
                    actor_id=stored.actor_id,
                )
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("entry_append_failed", extra={"actor": entry.actor_id})
                return self._failed(warnings)

        logger.info(
            "entry_recorded",
            extra={"entry_id": stored.entry_id, "actor": stored.actor_id},
        )
        return SubmitResult(status=SubmitStatus.ACCEPTED, entry=stored, warnings=warnings)
