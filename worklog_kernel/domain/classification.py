"""
ClassificationEngine -- map a logged activity to a grant-funding category.

Responsibility:
    Pure, deterministic classification of a worklog entry against the
    activity catalog.  No I/O, no logging, no clock.

Invariants enforced:
    - Same (entry, catalog) always yields the same Classification.
    - Never raises for foreseeable bad data: unknown codes and unmapped
      category strings degrade to UNCLASSIFIED.
    - billable is True only for IN_GRANT rows whose catalog ``allowable``
      flag is explicitly True.

Failure modes:
    - An unreadable catalog is represented by ``ActivityCatalog.unavailable()``;
      every entry classifies UNCLASSIFIED / non-billable.  The caller is
      responsible for logging that degradation once per pass.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from worklog_kernel.domain.types import (
    ActivityDefinition,
    Classification,
    FundingCategory,
    WorklogEntry,
)

UNCLASSIFIED_LABEL = "Unclassified"

DEFAULT_RESERVED_OUT_OF_GRANT_CODES: frozenset[str] = frozenset({"NON_GRANT", "OTHER"})

_CATEGORY_SYNONYMS: Mapping[str, FundingCategory] = MappingProxyType({
    "IN": FundingCategory.IN_GRANT,
    "IN_GRANT": FundingCategory.IN_GRANT,
    "INGRANT": FundingCategory.IN_GRANT,
    "GRANT": FundingCategory.IN_GRANT,
    "BILLABLE": FundingCategory.IN_GRANT,
    "OUT": FundingCategory.OUT_OF_GRANT,
    "OUT_OF_GRANT": FundingCategory.OUT_OF_GRANT,
    "OUTOFGRANT": FundingCategory.OUT_OF_GRANT,
    "OOG": FundingCategory.OUT_OF_GRANT,
    "NON_GRANT": FundingCategory.OUT_OF_GRANT,
    "NONGRANT": FundingCategory.OUT_OF_GRANT,
    "NOT_GRANT": FundingCategory.OUT_OF_GRANT,
})


def normalize_activity_code(code: object) -> str:
    """Catalog keys are compared stripped and upper-cased."""
    if code is None:
        return ""
    return str(code).strip().upper()


def normalize_funding_category(raw: str | None) -> FundingCategory:
    """Map a raw catalog category string onto the canonical enum.

    Comparison is case-insensitive with whitespace stripped; internal
    hyphens and spaces fold to underscores so "In-Grant" and "in grant"
    both resolve.
    """
    if raw is None:
        return FundingCategory.UNCLASSIFIED
    key = "_".join(str(raw).strip().upper().replace("-", " ").split())
    return _CATEGORY_SYNONYMS.get(key, FundingCategory.UNCLASSIFIED)


@dataclass(frozen=True)
class ActivityCatalog:
    """Read-only snapshot of activity definitions keyed by normalized code."""

    definitions: Mapping[str, ActivityDefinition] = field(
        default_factory=lambda: MappingProxyType({})
    )
    reserved_out_of_grant_codes: frozenset[str] = DEFAULT_RESERVED_OUT_OF_GRANT_CODES
    is_available: bool = True

    @classmethod
    def from_definitions(
        cls,
        definitions: Iterable[ActivityDefinition],
        reserved_out_of_grant_codes: Iterable[str] | None = None,
    ) -> ActivityCatalog:
        by_code = {normalize_activity_code(d.code): d for d in definitions}
        reserved = (
            DEFAULT_RESERVED_OUT_OF_GRANT_CODES
            if reserved_out_of_grant_codes is None
            else frozenset(normalize_activity_code(c) for c in reserved_out_of_grant_codes)
        )
        return cls(
            definitions=MappingProxyType(by_code),
            reserved_out_of_grant_codes=reserved,
        )

    @classmethod
    def unavailable(
        cls, reserved_out_of_grant_codes: Iterable[str] | None = None
    ) -> ActivityCatalog:
        """Catalog that could not be read; classifies everything UNCLASSIFIED."""
        reserved = (
            DEFAULT_RESERVED_OUT_OF_GRANT_CODES
            if reserved_out_of_grant_codes is None
            else frozenset(normalize_activity_code(c) for c in reserved_out_of_grant_codes)
        )
        return cls(reserved_out_of_grant_codes=reserved, is_available=False)

    def get(self, code: object) -> ActivityDefinition | None:
        return self.definitions.get(normalize_activity_code(code))

    def __contains__(self, code: object) -> bool:
        return normalize_activity_code(code) in self.definitions

    def __len__(self) -> int:
        return len(self.definitions)


def classify(entry: WorklogEntry, catalog: ActivityCatalog) -> Classification:
    """Classify one entry. Pure and deterministic."""
    code = normalize_activity_code(entry.activity_code)
    raw_label = (entry.activity_code or "").strip() if isinstance(entry.activity_code, str) else ""

    if not catalog.is_available:
        return Classification(
            category=FundingCategory.UNCLASSIFIED,
            billable=False,
            minutes=entry.minutes,
            activity_code=code,
            activity_label=raw_label or UNCLASSIFIED_LABEL,
        )

    definition = catalog.get(code)
    if definition is None:
        category = (
            FundingCategory.OUT_OF_GRANT
            if code in catalog.reserved_out_of_grant_codes
            else FundingCategory.UNCLASSIFIED
        )
        return Classification(
            category=category,
            billable=False,
            minutes=entry.minutes,
            activity_code=code,
            activity_label=raw_label or UNCLASSIFIED_LABEL,
        )

    category = normalize_funding_category(definition.funding_category)
    if (
        category is FundingCategory.UNCLASSIFIED
        and code in catalog.reserved_out_of_grant_codes
    ):
        category = FundingCategory.OUT_OF_GRANT

    return Classification(
        category=category,
        billable=category is FundingCategory.IN_GRANT and definition.allowable is True,
        minutes=entry.minutes,
        activity_code=code,
        activity_label=definition.label or raw_label or UNCLASSIFIED_LABEL,
    )
