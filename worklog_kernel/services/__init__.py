"""Services for the worklog kernel (write side)."""

from worklog_kernel.services.adjustment_service import AdjustmentService
from worklog_kernel.services.auditor_service import (
    AuditorService,
    AuditSink,
    AuditTrace,
    NullAuditSink,
)
from worklog_kernel.services.authorization import AuthorizationContext
from worklog_kernel.services.entry_service import EntryService, SubmitResult, SubmitStatus
from worklog_kernel.services.entry_store import EntryStore
from worklog_kernel.services.lock_service import (
    LockProvider,
    LockToken,
    ProcessLockProvider,
    default_lock_provider,
    hold,
)
from worklog_kernel.services.report_store import ReportStore
from worklog_kernel.services.sequence_service import SequenceService
from worklog_kernel.services.validation_service import ValidationEngine
from worklog_kernel.services.week_close_service import (
    AggregationEngine,
    CloseWeekResult,
    CloseWeekStatus,
)

__all__ = [
    "AdjustmentService",
    "AggregationEngine",
    "AuditSink",
    "AuditTrace",
    "AuditorService",
    "AuthorizationContext",
    "CloseWeekResult",
    "CloseWeekStatus",
    "EntryService",
    "EntryStore",
    "LockProvider",
    "LockToken",
    "NullAuditSink",
    "ProcessLockProvider",
    "ReportStore",
    "SequenceService",
    "SubmitResult",
    "SubmitStatus",
    "ValidationEngine",
    "default_lock_provider",
    "hold",
]
