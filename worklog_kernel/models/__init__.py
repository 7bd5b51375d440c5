"""ORM models for the worklog kernel."""

from worklog_kernel.models.adjustment import WorklogAdjustmentModel
from worklog_kernel.models.audit_event import AuditAction, AuditEvent, AuditSeverity
from worklog_kernel.models.reference import (
    ActivityDefinitionModel,
    CaseloadAssignmentModel,
    StaffMemberModel,
    StudentModel,
)
from worklog_kernel.models.sequence import SequenceCounter
from worklog_kernel.models.weekly_report import WeeklyReportModel, WeeklyReportRowModel
from worklog_kernel.models.worklog_entry import WorklogEntryModel

__all__ = [
    "ActivityDefinitionModel",
    "AuditAction",
    "AuditEvent",
    "AuditSeverity",
    "CaseloadAssignmentModel",
    "SequenceCounter",
    "StaffMemberModel",
    "StudentModel",
    "WeeklyReportModel",
    "WeeklyReportRowModel",
    "WorklogAdjustmentModel",
    "WorklogEntryModel",
]
