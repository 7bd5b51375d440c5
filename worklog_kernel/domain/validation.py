"""ValidationEngine rules -- pure checks over a candidate entry.

Every check returns a list of ValidationError; ``validate_entry`` runs them
in a fixed order and collects all defects rather than stopping at the
first, so the submitter sees everything wrong with the entry at once.
Checks that depend on an earlier field (e.g. caseload needs a parsed date)
silently skip when that field is already reported as broken.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from worklog_kernel.domain.calendar import (
    MINUTES_PER_DAY,
    derive_start_minute,
    format_minute_of_day,
    intervals_overlap,
    parse_calendar_date,
    parse_clock_time,
    parse_minutes,
    start_minute_from_notes,
)
from worklog_kernel.domain.classification import ActivityCatalog, normalize_activity_code
from worklog_kernel.domain.policy import CompliancePolicy
from worklog_kernel.domain.types import (
    ActivityDefinition,
    CandidateEntry,
    CaseloadAssignment,
    ErrorKind,
    StaffMember,
    Student,
    ValidationError,
    ValidationResult,
    WorklogEntry,
)

OVERLAP_SKIPPED_WARNING = "overlap_check_skipped"

UNKNOWN_ACTIVITY_MESSAGE = "Unknown activity code."


@dataclass(frozen=True)
class ActorSnapshot:
    """Everything authorization needs, resolved before the pure checks run.

    ``staff`` is None when the actor reference did not resolve.  ``subject``
    is None either because no subject was requested or because it did not
    resolve; ``subject_requested`` tells the two apart.
    """

    actor_ref: str
    staff: StaffMember | None
    subject_requested: str | None = None
    subject: Student | None = None
    assignments: tuple[CaseloadAssignment, ...] = ()

    @property
    def actor_id(self) -> str:
        return self.staff.staff_id if self.staff is not None else self.actor_ref


@dataclass(frozen=True)
class _Parsed:
    entry_date: date | None
    minutes: int | None
    activity_code: str
    subject_id: str | None
    start_minute: int | None
    start_time_invalid: bool = False


def _parse(candidate: CandidateEntry) -> _Parsed:
    subject = candidate.subject_id
    subject_id = str(subject).strip() if subject not in (None, "") else None

    # A start field that was supplied but cannot be read is an error, not a
    # reason to fall back to the notes marker.
    explicit = candidate.start_time
    if explicit is None or explicit == "":
        start_minute = start_minute_from_notes(candidate.notes)
    else:
        start_minute = parse_clock_time(explicit)

    return _Parsed(
        entry_date=parse_calendar_date(candidate.entry_date),
        minutes=parse_minutes(candidate.minutes),
        activity_code=normalize_activity_code(candidate.activity_code),
        subject_id=subject_id or None,
        start_minute=start_minute,
        start_time_invalid=explicit not in (None, "") and start_minute is None,
    )


# =============================================================================
# Individual checks
# =============================================================================


def check_required_fields(parsed: _Parsed) -> list[ValidationError]:
    errors: list[ValidationError] = []
    if parsed.entry_date is None:
        errors.append(ValidationError(
            code="INVALID_DATE",
            message="Entry date is missing or is not a valid calendar date.",
            field="entry_date",
        ))
    if parsed.minutes is None or not 0 < parsed.minutes <= MINUTES_PER_DAY:
        errors.append(ValidationError(
            code="INVALID_MINUTES",
            message=f"Minutes must be a whole number greater than 0 and at most {MINUTES_PER_DAY}.",
            field="minutes",
        ))
    if not parsed.activity_code:
        errors.append(ValidationError(
            code="MISSING_ACTIVITY",
            message="Activity code is required.",
            field="activity_code",
        ))
    if parsed.start_time_invalid:
        errors.append(ValidationError(
            code="INVALID_START_TIME",
            message="Start time is not a valid time of day (e.g. 09:30 or 1:15 pm).",
            field="start_time",
        ))
    return errors


def check_activity_exists(
    parsed: _Parsed, catalog: ActivityCatalog
) -> list[ValidationError]:
    if not parsed.activity_code:
        return []
    if not catalog.is_available:
        return [ValidationError(
            code="CATALOG_UNAVAILABLE",
            message="Activity catalog could not be read; try again later.",
            field="activity_code",
            kind=ErrorKind.INTERNAL,
        )]
    if parsed.activity_code not in catalog:
        return [ValidationError(
            code="UNKNOWN_ACTIVITY",
            message=UNKNOWN_ACTIVITY_MESSAGE,
            field="activity_code",
            details={"activity_code": parsed.activity_code},
        )]
    return []


def check_actor_eligible(actor: ActorSnapshot) -> list[ValidationError]:
    if actor.staff is None:
        return [ValidationError(
            code="UNKNOWN_ACTOR",
            message="You are not registered as a staff member.",
            field="actor",
            kind=ErrorKind.AUTHORIZATION,
            details={"actor": actor.actor_ref},
        )]
    if not actor.staff.is_active:
        return [ValidationError(
            code="INACTIVE_ACTOR",
            message="Your staff record is inactive.",
            field="actor",
            kind=ErrorKind.AUTHORIZATION,
            details={"actor": actor.staff.staff_id},
        )]
    return []


def check_activity_allowed(
    definition: ActivityDefinition | None,
    actor: ActorSnapshot,
    policy: CompliancePolicy,
) -> list[ValidationError]:
    """Catalog ``allowable is False`` always wins over any role allowance."""
    if definition is None:
        return []
    code = normalize_activity_code(definition.code)
    if definition.allowable is False:
        return [ValidationError(
            code="ACTIVITY_NOT_ALLOWABLE",
            message=f"Activity {code} is not allowable.",
            field="activity_code",
            kind=ErrorKind.AUTHORIZATION,
        )]
    if actor.staff is None:
        return []
    allowed = policy.allowed_codes_for(actor.staff.role)
    if allowed is not None and code not in allowed:
        return [ValidationError(
            code="ROLE_ACTIVITY_NOT_ALLOWED",
            message=f"Role {actor.staff.role!r} may not log activity {code}.",
            field="activity_code",
            kind=ErrorKind.AUTHORIZATION,
            details={"role": actor.staff.role},
        )]
    return []


def _same_building(a: str | None, b: str | None) -> bool | None:
    if not a or not b:
        return None
    return a.strip().casefold() == b.strip().casefold()


def check_subject_linkage(
    parsed: _Parsed, actor: ActorSnapshot
) -> list[ValidationError]:
    if parsed.subject_id is None:
        return []
    subject = actor.subject
    if subject is None:
        return [ValidationError(
            code="UNKNOWN_SUBJECT",
            message="Student not found.",
            field="subject_id",
            kind=ErrorKind.AUTHORIZATION,
            details={"subject_id": parsed.subject_id},
        )]

    errors: list[ValidationError] = []
    if not subject.is_active:
        errors.append(ValidationError(
            code="INACTIVE_SUBJECT",
            message="Student is inactive.",
            field="subject_id",
            kind=ErrorKind.AUTHORIZATION,
        ))
    if actor.staff is not None and _same_building(actor.staff.building, subject.building) is False:
        errors.append(ValidationError(
            code="BUILDING_MISMATCH",
            message="Student is assigned to a different building than you.",
            field="subject_id",
            kind=ErrorKind.AUTHORIZATION,
            details={
                "actor_building": actor.staff.building,
                "subject_building": subject.building,
            },
        ))
    if actor.staff is not None and parsed.entry_date is not None:
        on_caseload = any(
            a.subject_id.casefold() == subject.student_id.casefold()
            and a.covers(parsed.entry_date)
            for a in actor.assignments
        )
        if not on_caseload:
            errors.append(ValidationError(
                code="NOT_ON_CASELOAD",
                message="Student is not on your caseload for this date.",
                field="subject_id",
                kind=ErrorKind.AUTHORIZATION,
                details={"entry_date": parsed.entry_date.isoformat()},
            ))
    return errors


def check_date_reasonable(
    parsed: _Parsed, now: datetime, future_days_limit: int
) -> list[ValidationError]:
    if parsed.entry_date is None:
        return []
    latest = now.date() + timedelta(days=future_days_limit)
    if parsed.entry_date > latest:
        return [ValidationError(
            code="DATE_TOO_FAR_IN_FUTURE",
            message=f"Entry date cannot be more than {future_days_limit} days in the future.",
            field="entry_date",
            details={"latest_allowed": latest.isoformat()},
        )]
    return []


def find_overlaps(
    candidate_id: str | None,
    actor_id: str,
    entry_date: date,
    start_minute: int,
    minutes: int,
    existing: Sequence[WorklogEntry],
) -> list[WorklogEntry]:
    """Existing entries for the same actor/date whose interval intersects.

    Entries without a derivable start, and the candidate itself (same id),
    never count as overlapping.
    """
    hits: list[WorklogEntry] = []
    for other in existing:
        if candidate_id and other.entry_id == candidate_id:
            continue
        if other.actor_id != actor_id or other.entry_date != entry_date:
            continue
        other_start = other.start_minute_of_day
        if other_start is None:
            other_start = derive_start_minute(None, other.notes)
        if other_start is None or other.minutes is None or other.minutes <= 0:
            continue
        if intervals_overlap(start_minute, minutes, other_start, other.minutes):
            hits.append(other)
    return hits


def check_overlap(
    parsed: _Parsed,
    candidate_id: str | None,
    actor: ActorSnapshot,
    existing: Sequence[WorklogEntry],
) -> list[ValidationError]:
    if parsed.entry_date is None or parsed.minutes is None or parsed.minutes <= 0:
        return []
    if parsed.start_minute is None:
        return []
    hits = find_overlaps(
        candidate_id,
        actor.actor_id,
        parsed.entry_date,
        parsed.start_minute,
        parsed.minutes,
        existing,
    )
    errors = []
    for other in hits:
        other_start = other.start_minute_of_day
        if other_start is None:
            other_start = derive_start_minute(None, other.notes)
        errors.append(ValidationError(
            code="TIME_OVERLAP",
            message=(
                "Entry overlaps an existing entry from "
                f"{format_minute_of_day(other_start)} to "
                f"{format_minute_of_day(other_start + other.minutes)}."
            ),
            field="start_time",
            details={"conflicting_entry_id": other.entry_id},
        ))
    return errors


# =============================================================================
# Composition
# =============================================================================


def validate_entry(
    candidate: CandidateEntry,
    actor: ActorSnapshot,
    catalog: ActivityCatalog,
    existing: Sequence[WorklogEntry],
    now: datetime,
    policy: CompliancePolicy,
) -> ValidationResult:
    """Run every check in order and collect all defects."""
    parsed = _parse(candidate)
    definition = catalog.get(parsed.activity_code) if catalog.is_available else None

    errors: list[ValidationError] = []
    errors.extend(check_required_fields(parsed))
    errors.extend(check_activity_exists(parsed, catalog))
    errors.extend(check_actor_eligible(actor))
    errors.extend(check_activity_allowed(definition, actor, policy))
    errors.extend(check_subject_linkage(parsed, actor))
    errors.extend(check_date_reasonable(parsed, now, policy.future_days_limit))
    errors.extend(check_overlap(parsed, candidate.entry_id, actor, existing))

    warnings: tuple[str, ...] = ()
    if parsed.start_minute is None and not parsed.start_time_invalid:
        warnings = (OVERLAP_SKIPPED_WARNING,)

    if errors:
        return ValidationResult.failure(*errors, warnings=warnings)

    entry = WorklogEntry(
        entry_id=candidate.entry_id or "",
        actor_id=actor.actor_id,
        entry_date=parsed.entry_date,
        minutes=parsed.minutes,
        activity_code=parsed.activity_code,
        subject_id=parsed.subject_id,
        notes=(candidate.notes or "").strip(),
        start_minute_of_day=parsed.start_minute,
    )
    return ValidationResult.success(entry, warnings=warnings)
