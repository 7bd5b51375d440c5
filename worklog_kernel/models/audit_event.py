"""
Module: worklog_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners).
    - Hash chain integrity: hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash).  Validated by AuditorService.
    - seq is unique and increasing.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a hash mismatch.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from worklog_kernel.db.base import Base


class AuditAction(str, Enum):
    """Types of auditable actions.

    Contract: every member is produced by exactly one pipeline step, so an
    operator can tell "user entered bad data" from "system malfunctioned".
    """

    # Entry lifecycle
    ENTRY_RECORDED = "entry_recorded"
    ENTRY_REJECTED = "entry_rejected"
    VALIDATION_INTERNAL_ERROR = "validation_internal_error"
    VALIDATION_OVERLAP_SKIPPED = "validation_overlap_skipped"

    # Week-close lifecycle
    WEEK_CLOSE_STARTED = "week_close_started"
    WEEK_CLOSE_COMPLETED = "week_close_completed"
    WEEK_CLOSE_ALREADY_CLOSED = "week_close_already_closed"
    WEEK_CLOSE_FAILED = "week_close_failed"

    # Post-closure corrections
    ADJUSTMENT_RECORDED = "adjustment_recorded"


class AuditSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - seq is unique and increasing.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - This model does NOT compute hashes at INSERT time; that is the
          responsibility of AuditorService.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    # e.g. "WorklogEntry", "WeeklyReport", "Adjustment"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(
        String(10), default=AuditSeverity.INFO.value, nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
