"""
Audit chain validation.

Every recorded event links to its predecessor by hash; editing any stored
event through raw SQL must break validation at that event.
"""

import pytest
from sqlalchemy import text

from tests.conftest import TEACHER, WEEK_END
from worklog_kernel.exceptions import AuditChainBrokenError
from worklog_kernel.models.audit_event import AuditAction, AuditSeverity
from worklog_kernel.services.auditor_service import AuditorService
from worklog_kernel.services.sequence_service import SequenceService


@pytest.fixture
def busy_week(submit, aggregation_engine):
    submit(start_time="08:00")
    submit(start_time="09:00")
    submit(activity_code="ZZZ", start_time="11:00")
    return aggregation_engine.close_week(WEEK_END)


class TestChainIntegrity:

    def test_empty_chain_is_valid(self, session, clock):
        assert AuditorService(session, clock).validate_chain()

    def test_pipeline_chain_is_valid(self, busy_week, session, clock):
        auditor = AuditorService(session, clock)
        assert auditor.validate_chain()

        events = auditor.get_recent_events(limit=10)
        assert [e.seq for e in events] == sorted((e.seq for e in events), reverse=True)
        assert events[-1].prev_hash is None
        for newer, older in zip(events, events[1:]):
            assert newer.prev_hash == older.hash

    def test_sequence_matches_event_count(self, busy_week, session, clock):
        events = AuditorService(session, clock).get_recent_events(limit=100)
        assert SequenceService(session).current_value(SequenceService.AUDIT_EVENT) == len(events)

    @pytest.mark.parametrize("statement", [
        "UPDATE audit_events SET action = 'entry_recorded' WHERE seq = 3",
        "UPDATE audit_events SET entity_id = 'forged' WHERE seq = 2",
        "UPDATE audit_events SET prev_hash = NULL WHERE seq = 2",
    ])
    def test_edited_event_breaks_chain(self, busy_week, session_factory, clock, statement, captured_logs):
        with session_factory() as s:
            s.execute(text(statement))
            s.commit()

        with session_factory() as s:
            with pytest.raises(AuditChainBrokenError) as exc_info:
                AuditorService(s, clock).validate_chain()

        assert exc_info.value.code == "AUDIT_CHAIN_BROKEN"
        assert any(r["message"] == "audit_chain_broken" for r in captured_logs())

    def test_deleted_event_breaks_chain(self, busy_week, session_factory, clock):
        with session_factory() as s:
            s.execute(text("DELETE FROM audit_events WHERE seq = 2"))
            s.commit()

        with session_factory() as s:
            with pytest.raises(AuditChainBrokenError):
                AuditorService(s, clock).validate_chain()


class TestRecording:

    def test_record_writes_chained_event(self, session, clock):
        auditor = AuditorService(session, clock)
        auditor.record(
            AuditAction.ENTRY_REJECTED,
            {"errors": [{"code": "UNKNOWN_ACTIVITY"}]},
            entity_type="WorklogEntry",
            entity_id="abc",
            actor_id=TEACHER,
            severity=AuditSeverity.WARNING,
        )
        auditor.record(AuditAction.ENTRY_RECORDED, entity_type="WorklogEntry", entity_id="abc")
        session.commit()

        trace = auditor.get_trace("WorklogEntry", "abc")
        assert trace.actions == ("entry_rejected", "entry_recorded")
        assert trace.entries[0].severity == "warning"
        assert trace.entries[0].payload == {"errors": [{"code": "UNKNOWN_ACTIVITY"}]}
        assert trace.entries[1].actor_id == "system"
        assert auditor.validate_chain()

    def test_trace_for_unknown_entity_is_empty(self, session, clock):
        assert AuditorService(session, clock).get_trace("WorklogEntry", "missing").is_empty

    def test_record_never_raises(self, session, clock, monkeypatch, captured_logs):
        auditor = AuditorService(session, clock)

        def broken(*args, **kwargs):
            raise RuntimeError("sequence table gone")

        monkeypatch.setattr(auditor._sequence_service, "next_value", broken)
        auditor.record(AuditAction.ENTRY_RECORDED, {"x": 1})

        assert any(r["message"] == "audit_record_failed" for r in captured_logs())

    def test_recent_events_filtered_by_action(self, busy_week, session, clock):
        rejected = AuditorService(session, clock).get_recent_events(action=AuditAction.ENTRY_REJECTED)
        assert [e.action for e in rejected] == ["entry_rejected"]
