"""Read-only query selectors over the worklog tables."""

from worklog_kernel.selectors.entry_selector import EntrySelector
from worklog_kernel.selectors.reference_selector import ReferenceSelector
from worklog_kernel.selectors.report_selector import ReportSelector

__all__ = ["EntrySelector", "ReferenceSelector", "ReportSelector"]
