"""
Pure domain layer.

Frozen value objects and the validation, classification and aggregation
rules, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time

All domain objects are immutable and deterministic.
"""

from worklog_kernel.domain.aggregation import AggregationResult, aggregate_week
from worklog_kernel.domain.classification import ActivityCatalog, classify
from worklog_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from worklog_kernel.domain.policy import CompliancePolicy
from worklog_kernel.domain.types import (
    ActivityDefinition,
    Adjustment,
    CandidateEntry,
    CaseloadAssignment,
    Classification,
    ErrorKind,
    FundingCategory,
    ReportRow,
    StaffMember,
    Student,
    ValidationError,
    ValidationResult,
    WeeklyReport,
    WorklogEntry,
)
from worklog_kernel.domain.validation import ActorSnapshot, validate_entry

__all__ = [
    "ActivityCatalog",
    "ActivityDefinition",
    "ActorSnapshot",
    "Adjustment",
    "AggregationResult",
    "CandidateEntry",
    "CaseloadAssignment",
    "Classification",
    "Clock",
    "CompliancePolicy",
    "DeterministicClock",
    "ErrorKind",
    "FundingCategory",
    "ReportRow",
    "StaffMember",
    "Student",
    "SystemClock",
    "ValidationError",
    "ValidationResult",
    "WeeklyReport",
    "WorklogEntry",
    "aggregate_week",
    "classify",
    "validate_entry",
]
