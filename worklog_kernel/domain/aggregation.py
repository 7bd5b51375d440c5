"""
Aggregation -- pure grouping of classified entries into weekly report rows.

Responsibility:
    Given the scanned entries and a week window, apply the inclusion
    filter, classify each survivor, group by (actor, category) and return
    deterministically ordered rows plus the included entry ids.

Invariants enforced:
    - Per-actor sum of row minutes equals the sum of that actor's
      qualifying entries in the window.
    - Row order is (actor case-folded ascending, category ascending).
    - Entries failing the inclusion filter contribute nothing.

No I/O, no logging, no clock.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from worklog_kernel.domain.classification import ActivityCatalog, classify
from worklog_kernel.domain.types import FundingCategory, ReportRow, WorklogEntry


@dataclass(frozen=True)
class AggregationResult:
    rows: tuple[ReportRow, ...]
    included_entry_ids: tuple[str, ...]
    skipped_count: int = 0

    @property
    def actor_count(self) -> int:
        return len({row.actor_id for row in self.rows})

    @property
    def total_minutes(self) -> int:
        return sum(row.total_minutes for row in self.rows)


def is_qualifying(entry: WorklogEntry, week_start: date, week_end: date) -> bool:
    """Inclusion filter applied to every scanned row."""
    if not entry.entry_id or not str(entry.entry_id).strip():
        return False
    if not entry.actor_id or not str(entry.actor_id).strip():
        return False
    minutes = entry.minutes
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
        return False
    if not isinstance(entry.entry_date, date):
        return False
    return week_start <= entry.entry_date <= week_end


def row_sort_key(row: ReportRow) -> tuple[str, str, str]:
    # Raw actor id breaks ties between ids differing only in case.
    return (row.actor_id.casefold(), row.category.value, row.actor_id)


def aggregate_week(
    entries: Iterable[WorklogEntry],
    catalog: ActivityCatalog,
    week_start: date,
    week_end: date,
) -> AggregationResult:
    """Filter, classify, group and order the entries of one week."""
    totals: dict[tuple[str, FundingCategory], list[int]] = {}
    included: list[str] = []
    skipped = 0

    for entry in entries:
        if not is_qualifying(entry, week_start, week_end):
            skipped += 1
            continue
        verdict = classify(entry, catalog)
        bucket = totals.setdefault((entry.actor_id, verdict.category), [0, 0, 0])
        bucket[0] += entry.minutes
        bucket[1] += entry.minutes if verdict.billable else 0
        bucket[2] += 1
        included.append(entry.entry_id)

    rows = sorted(
        (
            ReportRow(
                actor_id=actor_id,
                category=category,
                total_minutes=minutes,
                entry_count=count,
                billable_minutes=billable,
            )
            for (actor_id, category), (minutes, billable, count) in totals.items()
        ),
        key=row_sort_key,
    )
    return AggregationResult(
        rows=tuple(rows),
        included_entry_ids=tuple(included),
        skipped_count=skipped,
    )
