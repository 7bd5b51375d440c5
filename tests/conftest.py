"""
Pytest fixtures for the worklog kernel test suite.

Provides:
- A SQLite file database per test (WAL, real commits, tables created fresh)
- A deterministic clock pinned to Friday 2024-03-08 17:00 UTC
- Seeded reference data (staff, students, caseload, activity catalog)
- Pipeline services wired to one shared in-process lock
- Captured structured logs

Environment Variables:
- WORKLOG_TEST_DATABASE_URL: run against another database (e.g. PostgreSQL).
  Tables are dropped and recreated for every test.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from io import StringIO

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from worklog_kernel.db.engine import build_engine, create_tables, drop_tables
from worklog_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from worklog_kernel.domain.clock import DeterministicClock
from worklog_kernel.domain.policy import CompliancePolicy
from worklog_kernel.domain.types import CandidateEntry
from worklog_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from worklog_kernel.models.audit_event import AuditEvent
from worklog_kernel.models.reference import (
    ActivityDefinitionModel,
    CaseloadAssignmentModel,
    StaffMemberModel,
    StudentModel,
)
from worklog_kernel.services.adjustment_service import AdjustmentService
from worklog_kernel.services.auditor_service import AuditSink, default_audit_sink_factory
from worklog_kernel.services.entry_service import EntryService
from worklog_kernel.services.lock_service import ProcessLockProvider
from worklog_kernel.services.week_close_service import AggregationEngine

# Friday; the closing week is Sat 2024-03-02 .. Fri 2024-03-08
FIXED_NOW = datetime(2024, 3, 8, 17, 0, 0, tzinfo=timezone.utc)
WEEK_END = date(2024, 3, 8)

TEACHER = "T100"
TEACHER_EMAIL = "teacher@district.org"
PARA = "P200"
PARA_EMAIL = "para@district.org"
INACTIVE_TEACHER = "T300"
SOUTH_TEACHER = "T400"

PARA_CODES = ("DIRECT_INSTRUCTION", "SMALL_GROUP", "NON_GRANT", "OTHER")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture worklog_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, aggregation_engine):
            aggregation_engine.close_week("2024-03-08")
            logs = captured_logs()
            assert any(r["message"] == "week_closed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("worklog_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    """Immutability listeners are registered once and remain active."""
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def engine(tmp_path):
    url = os.environ.get("WORKLOG_TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'worklog.db'}"
    eng = build_engine(url)
    drop_tables(eng)
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """A plain session for arranging and inspecting data; tests commit explicitly."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Reference data
# =============================================================================


@pytest.fixture
def reference_data(session_factory):
    """Seed staff, students, caseload assignments and the activity catalog."""
    with session_factory() as s:
        s.add_all([
            StaffMemberModel(
                staff_id=TEACHER, email=TEACHER_EMAIL, display_name="Avery Teacher",
                role="teacher", building="North", is_active=True,
            ),
            StaffMemberModel(
                staff_id=PARA, email=PARA_EMAIL, display_name="Jordan Para",
                role="Paraprofessional", building="North", is_active=True,
            ),
            StaffMemberModel(
                staff_id=INACTIVE_TEACHER, email="former@district.org",
                display_name="Former Teacher", role="teacher", building="North",
                is_active=False,
            ),
            StaffMemberModel(
                staff_id=SOUTH_TEACHER, email="south@district.org",
                display_name="Sam South", role="teacher", building="South",
                is_active=True,
            ),
        ])
        s.add_all([
            StudentModel(student_id="S1", display_name="Student One", building="North", is_active=True),
            StudentModel(student_id="S2", display_name="Student Two", building="North", is_active=False),
            StudentModel(student_id="S3", display_name="Student Three", building="South", is_active=True),
            StudentModel(student_id="S4", display_name="Student Four", building=None, is_active=True),
        ])
        s.add_all([
            CaseloadAssignmentModel(actor_id=TEACHER, subject_id="S1", start_date=date(2024, 1, 1)),
            CaseloadAssignmentModel(actor_id=TEACHER, subject_id="S2", start_date=date(2024, 1, 1)),
            CaseloadAssignmentModel(actor_id=TEACHER, subject_id="S3", start_date=date(2024, 1, 1)),
            CaseloadAssignmentModel(actor_id=TEACHER, subject_id="S4", start_date=date(2024, 1, 1)),
            CaseloadAssignmentModel(
                actor_id=PARA, subject_id="S1",
                start_date=date(2024, 3, 1), end_date=date(2024, 3, 5),
            ),
        ])
        s.add_all([
            ActivityDefinitionModel(
                code="DIRECT_INSTRUCTION", label="Direct instruction",
                allowable=True, funding_category="IN_GRANT",
            ),
            ActivityDefinitionModel(
                code="SMALL_GROUP", label="Small group", allowable=True,
                funding_category="in grant",
            ),
            ActivityDefinitionModel(
                code="PLANNING", label="Planning", allowable=None,
                funding_category="IN_GRANT",
            ),
            ActivityDefinitionModel(
                code="LUNCH_DUTY", label="Lunch duty", allowable=False,
                funding_category="OUT_OF_GRANT",
            ),
            ActivityDefinitionModel(
                code="NON_GRANT", label="Non-grant work", allowable=True,
                funding_category="OUT_OF_GRANT",
            ),
            ActivityDefinitionModel(
                code="MYSTERY", label="Mystery work", allowable=True,
                funding_category="Something Else",
            ),
        ])
        s.commit()


# =============================================================================
# Pipeline wiring
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def policy():
    return CompliancePolicy.build(
        role_activity_codes={"paraprofessional": PARA_CODES},
        lock_timeout_seconds=0.5,
    )


@pytest.fixture
def lock_provider():
    return ProcessLockProvider()


@pytest.fixture
def audit_sink_factory(clock):
    return default_audit_sink_factory(clock)


@pytest.fixture
def entry_service(session_factory, policy, lock_provider, clock, audit_sink_factory, reference_data):
    return EntryService(session_factory, policy, lock_provider, clock, audit_sink_factory)


@pytest.fixture
def aggregation_engine(session_factory, policy, lock_provider, clock, audit_sink_factory, reference_data):
    return AggregationEngine(session_factory, policy, lock_provider, clock, audit_sink_factory)


@pytest.fixture
def adjustment_service(session_factory, policy, lock_provider, clock, audit_sink_factory, reference_data):
    return AdjustmentService(session_factory, policy, lock_provider, clock, audit_sink_factory)


@pytest.fixture
def submit(entry_service):
    """Submit an entry with sensible defaults; keyword arguments override them."""

    def _submit(actor=TEACHER, **fields):
        payload = {
            "entry_date": "2024-03-06",
            "minutes": 60,
            "activity_code": "DIRECT_INSTRUCTION",
        }
        payload.update(fields)
        return entry_service.submit(CandidateEntry(**payload), actor)

    return _submit


@pytest.fixture
def audit_actions(session_factory):
    """Audit actions recorded so far, in chain order."""

    def _actions() -> list[str]:
        with session_factory() as s:
            return list(s.scalars(select(AuditEvent.action).order_by(AuditEvent.seq)))

    return _actions


class RecordingAuditSink(AuditSink):
    """In-memory sink for pure service tests."""

    def __init__(self):
        self.records = []

    def record(self, action, payload=None, **kwargs):
        self.records.append((action, dict(payload or {}), kwargs))

    @property
    def actions(self):
        return [action for action, _, _ in self.records]


@pytest.fixture
def recording_sink():
    return RecordingAuditSink()
