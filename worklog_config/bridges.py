"""
Config -> Kernel bridges.

Converts a validated ``ComplianceConfigSet`` into the kernel's frozen
``CompliancePolicy``.  Lives here because the kernel must never import
``worklog_config``.
"""

from __future__ import annotations

from worklog_config.schema import ComplianceConfigSet
from worklog_kernel.domain.policy import CompliancePolicy


def build_compliance_policy(config: ComplianceConfigSet) -> CompliancePolicy:
    return CompliancePolicy.build(
        report_prefix=config.report.prefix.strip(),
        future_days_limit=config.future_days_limit,
        lock_timeout_seconds=config.lock_timeout_seconds,
        role_activity_codes={
            r.role: r.activity_codes for r in config.role_restrictions
        },
        reserved_out_of_grant_codes=config.reserved_out_of_grant_codes,
        report_owner=config.report.owner.strip(),
    )
