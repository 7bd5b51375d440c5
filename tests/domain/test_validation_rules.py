"""
Tests for the pure validation rules.

These tests verify:
- Every check runs and every defect is collected, in check order
- Authorization defects carry kind=authorization
- Caseload effective dating is inclusive at both ends
- The overlap rule uses half-open intervals and is symmetric
- A missing start time skips the overlap rule with a warning
- The rules themselves never log; the service shell does
"""

from datetime import date, datetime, timezone

import pytest

from worklog_kernel.domain.classification import ActivityCatalog
from worklog_kernel.domain.policy import CompliancePolicy
from worklog_kernel.domain.types import (
    ActivityDefinition,
    CandidateEntry,
    CaseloadAssignment,
    ErrorKind,
    StaffMember,
    Student,
    WorklogEntry,
)
from worklog_kernel.domain.validation import (
    OVERLAP_SKIPPED_WARNING,
    UNKNOWN_ACTIVITY_MESSAGE,
    ActorSnapshot,
    find_overlaps,
    validate_entry,
)

NOW = datetime(2024, 3, 8, 17, 0, tzinfo=timezone.utc)

TEACHER = StaffMember("T100", "teacher@district.org", "Avery", "teacher", "North", True)
PARA = StaffMember("P200", "para@district.org", "Jordan", "Paraprofessional", "North", True)
FORMER = StaffMember("T300", "former@district.org", "Former", "teacher", "North", False)

S1 = Student("S1", "Student One", "North", True)
S2_INACTIVE = Student("S2", "Student Two", "North", False)
S3_SOUTH = Student("S3", "Student Three", "South", True)
S4_NO_BUILDING = Student("S4", "Student Four", None, True)

CATALOG = ActivityCatalog.from_definitions([
    ActivityDefinition("DIRECT_INSTRUCTION", "Direct instruction", True, "IN_GRANT"),
    ActivityDefinition("PLANNING", "Planning", None, "IN_GRANT"),
    ActivityDefinition("LUNCH_DUTY", "Lunch duty", False, "OUT_OF_GRANT"),
])

POLICY = CompliancePolicy.build(
    role_activity_codes={"paraprofessional": ["DIRECT_INSTRUCTION", "LUNCH_DUTY"]},
)


def _candidate(**overrides):
    fields = {
        "entry_date": "2024-03-06",
        "minutes": 60,
        "activity_code": "DIRECT_INSTRUCTION",
        "start_time": "09:00",
    }
    fields.update(overrides)
    return CandidateEntry(**fields)


def _actor(staff=TEACHER, subject=None, assignments=(), actor_ref=None):
    return ActorSnapshot(
        actor_ref=actor_ref or (staff.email if staff else "stranger@district.org"),
        staff=staff,
        subject_requested=subject.student_id if subject else None,
        subject=subject,
        assignments=tuple(assignments),
    )


def _existing(entry_id, start_minute, minutes=60, actor_id="T100", notes=""):
    return WorklogEntry(
        entry_id=entry_id,
        actor_id=actor_id,
        entry_date=date(2024, 3, 6),
        minutes=minutes,
        activity_code="DIRECT_INSTRUCTION",
        notes=notes,
        start_minute_of_day=start_minute,
    )


def _validate(candidate=None, actor=None, catalog=CATALOG, existing=(), policy=POLICY):
    return validate_entry(
        candidate or _candidate(),
        actor or _actor(),
        catalog,
        list(existing),
        NOW,
        policy,
    )


class TestAcceptedEntries:

    def test_valid_entry_is_accepted_and_normalized(self):
        result = _validate(_candidate(activity_code=" direct_instruction ", notes="  phonics  "))

        assert result.accepted
        assert result.errors == ()
        assert result.warnings == ()
        entry = result.entry
        assert entry.actor_id == "T100"
        assert entry.activity_code == "DIRECT_INSTRUCTION"
        assert entry.entry_date == date(2024, 3, 6)
        assert entry.minutes == 60
        assert entry.notes == "phonics"
        assert entry.start_minute_of_day == 540

    def test_actor_resolved_by_email_keeps_canonical_id(self):
        result = _validate(actor=_actor(actor_ref="TEACHER@district.org"))
        assert result.entry.actor_id == "T100"

    def test_silent_allowable_is_permitted(self):
        assert _validate(_candidate(activity_code="PLANNING")).accepted


class TestRequiredFields:

    def test_all_field_defects_are_collected(self):
        result = _validate(_candidate(entry_date="2024-13-45", minutes="abc", activity_code="  "))

        assert not result.accepted
        assert result.codes == ("INVALID_DATE", "INVALID_MINUTES", "MISSING_ACTIVITY")

    @pytest.mark.parametrize("minutes", [0, -15, 1441, "12.5", None])
    def test_minutes_out_of_range(self, minutes):
        result = _validate(_candidate(minutes=minutes))
        assert "INVALID_MINUTES" in result.codes

    def test_full_day_is_allowed(self):
        assert _validate(_candidate(minutes=1440, start_time="00:00")).accepted

    @pytest.mark.parametrize("start_time", ["25:00", "10:75", "noon", 1440])
    def test_unreadable_start_time_is_rejected(self, start_time):
        result = _validate(_candidate(start_time=start_time))

        assert result.codes == ("INVALID_START_TIME",)
        assert result.errors[0].field == "start_time"
        assert result.warnings == ()

    def test_unreadable_start_time_does_not_fall_back_to_notes(self):
        result = _validate(
            _candidate(start_time="25:00", notes="start=09:00"),
            existing=[_existing("e-1", 540)],
        )
        assert result.codes == ("INVALID_START_TIME",)


class TestActivityRules:

    def test_unknown_activity(self):
        result = _validate(_candidate(activity_code="ZZZ"))
        assert result.codes == ("UNKNOWN_ACTIVITY",)
        assert result.messages == (UNKNOWN_ACTIVITY_MESSAGE,)

    def test_catalog_unavailable_is_internal(self):
        result = _validate(catalog=ActivityCatalog.unavailable())
        assert result.codes == ("CATALOG_UNAVAILABLE",)
        assert result.errors[0].kind is ErrorKind.INTERNAL

    def test_not_allowable_blocks_even_when_role_allows(self):
        result = _validate(_candidate(activity_code="LUNCH_DUTY"), actor=_actor(PARA))
        assert result.codes == ("ACTIVITY_NOT_ALLOWABLE",)
        assert result.errors[0].kind is ErrorKind.AUTHORIZATION

    def test_role_restriction(self):
        result = _validate(_candidate(activity_code="PLANNING"), actor=_actor(PARA))
        assert result.codes == ("ROLE_ACTIVITY_NOT_ALLOWED",)

    def test_unlisted_role_is_unrestricted(self):
        assert _validate(_candidate(activity_code="PLANNING"), actor=_actor(TEACHER)).accepted


class TestActorRules:

    def test_unknown_actor(self):
        result = _validate(actor=_actor(staff=None))
        assert result.codes == ("UNKNOWN_ACTOR",)
        assert result.errors[0].kind is ErrorKind.AUTHORIZATION

    def test_inactive_actor(self):
        result = _validate(actor=_actor(FORMER))
        assert result.codes == ("INACTIVE_ACTOR",)


class TestSubjectRules:

    def _on_caseload(self, student, start=date(2024, 1, 1), end=None, actor=TEACHER):
        return CaseloadAssignment(actor.staff_id, student.student_id, start, end)

    def test_subject_on_caseload(self):
        actor = _actor(subject=S1, assignments=[self._on_caseload(S1)])
        assert _validate(_candidate(subject_id="S1"), actor=actor).accepted

    def test_unknown_subject(self):
        actor = ActorSnapshot("teacher@district.org", TEACHER, subject_requested="S9")
        result = _validate(_candidate(subject_id="S9"), actor=actor)
        assert result.codes == ("UNKNOWN_SUBJECT",)

    def test_inactive_subject(self):
        actor = _actor(subject=S2_INACTIVE, assignments=[self._on_caseload(S2_INACTIVE)])
        result = _validate(_candidate(subject_id="S2"), actor=actor)
        assert result.codes == ("INACTIVE_SUBJECT",)

    def test_building_mismatch(self):
        actor = _actor(subject=S3_SOUTH, assignments=[self._on_caseload(S3_SOUTH)])
        result = _validate(_candidate(subject_id="S3"), actor=actor)
        assert result.codes == ("BUILDING_MISMATCH",)

    def test_blank_building_skips_building_check(self):
        actor = _actor(subject=S4_NO_BUILDING, assignments=[self._on_caseload(S4_NO_BUILDING)])
        assert _validate(_candidate(subject_id="S4"), actor=actor).accepted

    def test_not_on_caseload(self):
        result = _validate(_candidate(subject_id="S1"), actor=_actor(subject=S1))
        assert result.codes == ("NOT_ON_CASELOAD",)

    @pytest.mark.parametrize("entry_date,on_caseload", [
        ("2024-02-29", False),
        ("2024-03-01", True),
        ("2024-03-05", True),
        ("2024-03-06", False),
    ])
    def test_caseload_effective_dating_is_inclusive(self, entry_date, on_caseload):
        assignment = self._on_caseload(S1, date(2024, 3, 1), date(2024, 3, 5), actor=PARA)
        actor = _actor(PARA, subject=S1, assignments=[assignment])
        result = _validate(_candidate(subject_id="S1", entry_date=entry_date), actor=actor)
        assert result.accepted is on_caseload
        if not on_caseload:
            assert result.codes == ("NOT_ON_CASELOAD",)


class TestDateRule:

    def test_limit_day_is_allowed(self):
        assert _validate(_candidate(entry_date="2024-03-15")).accepted

    def test_beyond_limit_is_rejected(self):
        result = _validate(_candidate(entry_date="2024-03-16"))
        assert result.codes == ("DATE_TOO_FAR_IN_FUTURE",)
        assert result.errors[0].details == {"latest_allowed": "2024-03-15"}

    def test_past_dates_are_allowed(self):
        assert _validate(_candidate(entry_date="2023-09-01")).accepted


class TestOverlapRule:

    def test_overlap_message_names_the_existing_range(self):
        result = _validate(_candidate(start_time="09:30"), existing=[_existing("e-1", 540)])
        assert result.codes == ("TIME_OVERLAP",)
        assert "09:00 to 10:00" in result.messages[0]
        assert result.errors[0].details == {"conflicting_entry_id": "e-1"}

    def test_adjacent_entries_do_not_overlap(self):
        assert _validate(_candidate(start_time="10:00"), existing=[_existing("e-1", 540)]).accepted

    def test_overlap_is_symmetric(self):
        # A at 09:00-10:00 stored, B at 09:30-10:30 submitted, and vice versa
        forward = _validate(_candidate(start_time="09:30"), existing=[_existing("a", 540)])
        backward = _validate(_candidate(start_time="09:00"), existing=[_existing("b", 570)])
        assert forward.codes == backward.codes == ("TIME_OVERLAP",)

    def test_every_conflict_is_reported(self):
        existing = [_existing("e-1", 540, 30), _existing("e-2", 570, 30)]
        result = _validate(_candidate(start_time="09:00", minutes=60), existing=existing)
        assert result.codes == ("TIME_OVERLAP", "TIME_OVERLAP")

    def test_start_taken_from_notes(self):
        result = _validate(
            _candidate(start_time=None, notes="start=9:15 am"),
            existing=[_existing("e-1", 540)],
        )
        assert result.codes == ("TIME_OVERLAP",)

    def test_existing_start_taken_from_notes(self):
        existing = [_existing("e-1", None, notes="start=09:00")]
        assert _validate(_candidate(start_time="09:30"), existing=existing).codes == ("TIME_OVERLAP",)

    def test_missing_start_skips_check_with_warning(self):
        result = _validate(_candidate(start_time=None), existing=[_existing("e-1", 540)])
        assert result.accepted
        assert result.warnings == (OVERLAP_SKIPPED_WARNING,)

    def test_same_entry_id_is_ignored(self):
        result = _validate(_candidate(entry_id="e-1"), existing=[_existing("e-1", 540)])
        assert result.accepted

    def test_other_actor_is_ignored(self):
        assert find_overlaps(None, "T100", date(2024, 3, 6), 540, 60, [
            _existing("e-1", 540, actor_id="P200"),
        ]) == []

    def test_existing_without_start_is_ignored(self):
        assert find_overlaps(None, "T100", date(2024, 3, 6), 540, 60, [
            _existing("e-1", None),
        ]) == []


class TestErrorCollection:

    def test_defects_from_every_check_are_reported_in_order(self):
        actor = _actor(FORMER, subject=S3_SOUTH)
        result = _validate(
            _candidate(
                entry_date="2024-03-20",
                activity_code="LUNCH_DUTY",
                subject_id="S3",
                start_time="09:30",
            ),
            actor=actor,
            existing=[],
        )
        assert result.codes == (
            "INACTIVE_ACTOR",
            "ACTIVITY_NOT_ALLOWABLE",
            "BUILDING_MISMATCH",
            "NOT_ON_CASELOAD",
            "DATE_TOO_FAR_IN_FUTURE",
        )


def test_rules_write_no_logs(captured_logs):
    _validate(_candidate(activity_code="ZZZ"))
    _validate(_candidate(start_time=None))
    assert captured_logs() == []
