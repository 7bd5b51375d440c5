"""
ComplianceConfigSet schema.

The human-authored, reviewable source artifact for compliance settings.
YAML is parsed into these types by the loader, checked by the validator,
and turned into a kernel ``CompliancePolicy`` by the bridges.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RoleRestriction:
    """Activity codes a staff role is limited to."""

    role: str
    activity_codes: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReportSettings:
    prefix: str = "Weekly Worklog Summary"
    owner: str = "compliance-office"


@dataclass(frozen=True)
class ComplianceConfigSet:
    """Root configuration artifact.

    ``checksum`` is the SHA-256 of the canonical source mapping and is
    filled in by the loader.
    """

    config_id: str
    version: int
    report: ReportSettings = field(default_factory=ReportSettings)
    future_days_limit: int = 7
    lock_timeout_seconds: float = 20.0
    reserved_out_of_grant_codes: tuple[str, ...] = ("NON_GRANT", "OTHER")
    role_restrictions: tuple[RoleRestriction, ...] = ()
    checksum: str = ""
