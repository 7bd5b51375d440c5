"""
worklog_kernel.domain.types -- Pure frozen dataclasses for the compliance
pipeline.  ZERO I/O.

Frozen dataclasses with enum category fields and tuples for immutable
collections.  ORM models convert to these via ``to_dto()``; services and
pure domain functions only ever exchange these values.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


# =============================================================================
# Enums
# =============================================================================


class FundingCategory(str, Enum):
    """Grant-funding category assigned to logged time."""

    IN_GRANT = "IN_GRANT"
    OUT_OF_GRANT = "OUT_OF_GRANT"
    UNCLASSIFIED = "UNCLASSIFIED"


class ErrorKind(str, Enum):
    """Which taxonomy class a validation defect belongs to."""

    VALIDATION = "validation"  # User-correctable input defect
    AUTHORIZATION = "authorization"  # Actor/subject/role mismatch
    INTERNAL = "internal"  # Validation itself malfunctioned


# =============================================================================
# Reference data
# =============================================================================


@dataclass(frozen=True)
class ActivityDefinition:
    """One row of the activity catalog.

    ``allowable`` is tri-state: ``None`` means the catalog is silent, which
    permits the activity but never makes it billable.
    """

    code: str
    label: str
    allowable: bool | None = None
    funding_category: str | None = None


@dataclass(frozen=True)
class StaffMember:
    staff_id: str
    email: str
    display_name: str
    role: str
    building: str | None
    is_active: bool


@dataclass(frozen=True)
class Student:
    student_id: str
    display_name: str
    building: str | None
    is_active: bool


@dataclass(frozen=True)
class CaseloadAssignment:
    """Effective-dated link between an actor and a subject."""

    actor_id: str
    subject_id: str
    start_date: date
    end_date: date | None = None

    def covers(self, on: date) -> bool:
        """True when ``on`` is inside [start_date, end_date]; open end never expires."""
        if self.start_date > on:
            return False
        return self.end_date is None or self.end_date >= on


# =============================================================================
# Entries
# =============================================================================


@dataclass(frozen=True)
class CandidateEntry:
    """Raw, unvalidated entry as submitted by a caller.

    Fields are deliberately loosely typed: parsing them is part of
    validation, and a defect must surface as a ValidationError rather
    than a TypeError at construction time.
    """

    entry_date: Any
    minutes: Any
    activity_code: Any
    subject_id: Any = None
    notes: str | None = None
    start_time: Any = None
    entry_id: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CandidateEntry:
        """Build a candidate from a form/API payload, accepting common key aliases."""

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in payload and payload[key] not in (None, ""):
                    return payload[key]
            return None

        return cls(
            entry_date=pick("entry_date", "date"),
            minutes=pick("minutes", "duration_minutes"),
            activity_code=pick("activity_code", "activityCode", "activity"),
            subject_id=pick("subject_id", "student_id", "studentId"),
            notes=pick("notes"),
            start_time=pick("start_time", "start", "startTime"),
            entry_id=pick("entry_id", "id"),
        )


@dataclass(frozen=True)
class WorklogEntry:
    """A persisted worklog entry.

    Legacy rows may carry an empty id/actor or non-positive minutes; the
    aggregation inclusion filter skips them instead of failing.
    """

    entry_id: str
    actor_id: str
    entry_date: date
    minutes: int
    activity_code: str
    subject_id: str | None = None
    notes: str = ""
    start_minute_of_day: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class Adjustment:
    """Compensating record against an already sealed week."""

    adjustment_id: str
    actor_id: str
    activity_code: str
    minutes: int  # Signed; never zero
    adjusts_week_end: date
    effective_date: date
    reason: str
    recorded_by: str
    created_at: datetime | None = None


# =============================================================================
# Classification
# =============================================================================


@dataclass(frozen=True)
class Classification:
    category: FundingCategory
    billable: bool
    minutes: int
    activity_code: str
    activity_label: str


# =============================================================================
# Validation results
# =============================================================================


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation defect.

    Contract:
        Carries a machine-readable code, a human-readable message, the
        offending field, and the taxonomy ``kind``.

    Non-goals:
        - Does NOT raise -- it IS the error representation.
    """

    code: str
    message: str
    field: str | None = None
    kind: ErrorKind = ErrorKind.VALIDATION
    details: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "kind": self.kind.value,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validating one candidate entry.

    Guarantees:
        - ``accepted`` is True only when ``errors`` is empty.
        - ``warnings`` carries observable degradations (e.g. skipped
          overlap check) that do not block the entry.
        - ``entry`` is the normalized entry when accepted, else None.
    """

    accepted: bool
    errors: tuple[ValidationError, ...] = ()
    warnings: tuple[str, ...] = ()
    entry: WorklogEntry | None = None

    @classmethod
    def success(
        cls, entry: WorklogEntry, warnings: tuple[str, ...] = ()
    ) -> ValidationResult:
        return cls(accepted=True, errors=(), warnings=warnings, entry=entry)

    @classmethod
    def failure(
        cls, *errors: ValidationError, warnings: tuple[str, ...] = ()
    ) -> ValidationResult:
        return cls(accepted=False, errors=tuple(errors), warnings=warnings)

    @property
    def messages(self) -> tuple[str, ...]:
        return tuple(e.message for e in self.errors)

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(e.code for e in self.errors)

    def __bool__(self) -> bool:
        return self.accepted


# =============================================================================
# Reports
# =============================================================================


@dataclass(frozen=True)
class ReportRow:
    actor_id: str
    category: FundingCategory
    total_minutes: int
    entry_count: int
    billable_minutes: int = 0


@dataclass(frozen=True)
class WeeklyReport:
    """Immutable snapshot of a sealed weekly report."""

    report_key: str
    week_start: date
    week_end: date
    generated_at: datetime
    rows: tuple[ReportRow, ...] = ()
    included_entry_ids: tuple[str, ...] = ()
    content_hash: str = ""
    owner: str = ""
    is_sealed: bool = False
    report_id: str | None = None

    @property
    def actor_count(self) -> int:
        return len({row.actor_id for row in self.rows})

    @property
    def entry_count(self) -> int:
        return len(self.included_entry_ids)

    def minutes_for(self, actor_id: str) -> int:
        """Total minutes across all categories for one actor."""
        return sum(r.total_minutes for r in self.rows if r.actor_id == actor_id)


@dataclass(frozen=True)
class AdjustedRow:
    actor_id: str
    category: FundingCategory
    sealed_minutes: int
    adjustment_minutes: int

    @property
    def net_minutes(self) -> int:
        return self.sealed_minutes + self.adjustment_minutes


@dataclass(frozen=True)
class AdjustedWeekSummary:
    """Derived view: sealed report rows with later adjustments folded in."""

    report_key: str
    week_end: date
    rows: tuple[AdjustedRow, ...] = ()
    adjustments: tuple[Adjustment, ...] = field(default_factory=tuple)
