"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Implements the pipeline's audit sink: every significant step of entry
    submission and week closure is recorded as an immutable, hash-chained
    AuditEvent.  Also provides chain validation for tamper detection and
    trace queries for forensic review.

Architecture position:
    Kernel > Services -- imperative shell, called by ValidationEngine,
    EntryService, AggregationEngine and AdjustmentService.

Invariants enforced:
    - Audit chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``.
    - Sequence monotonicity via SequenceService.
    - Append-only: audit events are never modified or deleted (ORM
      listeners on AuditEvent).

Failure modes:
    - ``record()`` never raises.  A failed write is rolled back to its
      savepoint and logged as ``audit_record_failed``; the pipeline carries
      on, because audit is best-effort by contract.
    - AuditChainBrokenError from ``validate_chain()``.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from worklog_kernel.domain.clock import Clock, SystemClock
from worklog_kernel.exceptions import AuditChainBrokenError
from worklog_kernel.logging_config import get_logger
from worklog_kernel.models.audit_event import AuditAction, AuditEvent, AuditSeverity
from worklog_kernel.services.sequence_service import SequenceService
from worklog_kernel.utils.hashing import canonicalize_json, hash_audit_event, hash_payload

logger = get_logger("services.auditor")

SYSTEM_ACTOR = "system"


class AuditSink(ABC):
    """
    Write-once audit capability consumed by the pipeline.

    Contract:
        ``record()`` is best-effort and must never raise back into the
        caller.  There is no read-back requirement.
    """

    @abstractmethod
    def record(
        self,
        action: AuditAction,
        payload: Mapping[str, Any] | None = None,
        *,
        entity_type: str = "Worklog",
        entity_id: str = "-",
        actor_id: str = SYSTEM_ACTOR,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> None:
        ...


class NullAuditSink(AuditSink):
    """Discards every record."""

    def record(self, action, payload=None, **kwargs) -> None:
        return None


AuditSinkFactory = Callable[[Session], AuditSink]


def default_audit_sink_factory(clock: Clock) -> AuditSinkFactory:
    """One database-backed sink per unit of work, bound to its session."""
    return lambda session: AuditorService(session, clock)


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: str
    severity: str
    occurred_at: datetime
    actor_id: str
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, in chain order."""

    entity_type: str
    entity_id: str
    entries: tuple[AuditTraceEntry, ...]

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0


class AuditorService(AuditSink):
    """
    Database-backed audit sink with hash chain linkage.

    Events are written into the caller's session inside a SAVEPOINT so a
    failed audit write never poisons the caller's unit of work.  The
    caller commits.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: str,
        action: AuditAction,
        actor_id: str,
        severity: AuditSeverity,
        payload: Mapping[str, Any] | None,
    ) -> AuditEvent:
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        # Round-trip through canonical JSON so dates and enums are stored
        # exactly as they were hashed.
        payload_data = json.loads(canonicalize_json(dict(payload or {})))
        payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            severity=severity.value,
            actor_id=actor_id or SYSTEM_ACTOR,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return audit_event

    def record(
        self,
        action: AuditAction,
        payload: Mapping[str, Any] | None = None,
        *,
        entity_type: str = "Worklog",
        entity_id: str = "-",
        actor_id: str = SYSTEM_ACTOR,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> None:
        try:
            with self._session.begin_nested():
                self._create_audit_event(
                    entity_type, entity_id, action, actor_id, severity, payload
                )
        except Exception:
            # Audit is best-effort: log and continue.
            logger.exception(
                "audit_record_failed",
                extra={"action": action.value, "entity_type": entity_type},
            )

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Returns True only if every stored hash matches its recomputed value
        and every ``prev_hash`` matches its predecessor's hash.

        Raises:
            AuditChainBrokenError: at the first inconsistent event.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
            raise AuditChainBrokenError(str(events[0].id), "None", events[0].prev_hash)

        for i, event in enumerate(events):
            if hash_payload(event.payload or {}) != event.payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id), event.payload_hash, hash_payload(event.payload or {})
                )

            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                action=event.action,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            if i > 0 and event.prev_hash != events[i - 1].hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id), events[i - 1].hash, event.prev_hash or "None"
                )

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: str) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == str(entity_id),
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=str(entity_id),
            entries=tuple(
                AuditTraceEntry(
                    seq=e.seq,
                    action=e.action,
                    severity=e.severity,
                    occurred_at=e.occurred_at,
                    actor_id=e.actor_id,
                    payload=e.payload or {},
                    hash=e.hash,
                )
                for e in events
            ),
        )

    def get_recent_events(
        self, limit: int = 100, action: AuditAction | None = None
    ) -> list[AuditEvent]:
        """Most recent events first, optionally filtered by action."""
        stmt = select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(limit)
        if action is not None:
            stmt = stmt.where(AuditEvent.action == action.value)
        return list(self._session.execute(stmt).scalars().all())
