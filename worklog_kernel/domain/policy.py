"""
CompliancePolicy -- the explicit configuration struct injected into every
pipeline service.

Built by ``worklog_config.bridges`` from a validated YAML configuration
set, or constructed directly in tests.  The kernel never reads YAML,
environment variables, or files itself.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from worklog_kernel.domain.classification import (
    DEFAULT_RESERVED_OUT_OF_GRANT_CODES,
    normalize_activity_code,
)

DEFAULT_REPORT_PREFIX = "Weekly Worklog Summary"
DEFAULT_FUTURE_DAYS_LIMIT = 7
DEFAULT_LOCK_TIMEOUT_SECONDS = 20.0
DEFAULT_REPORT_OWNER = "compliance-office"


def _normalize_role(role: str) -> str:
    return role.strip().casefold()


@dataclass(frozen=True)
class CompliancePolicy:
    """
    Frozen compliance settings.

    Guarantees:
        - ``role_activity_codes`` keys are case-folded roles and values are
          frozensets of normalized activity codes.
        - A role absent from ``role_activity_codes`` is unrestricted beyond
          the catalog's own ``allowable`` flag.
    """

    report_prefix: str = DEFAULT_REPORT_PREFIX
    future_days_limit: int = DEFAULT_FUTURE_DAYS_LIMIT
    lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS
    role_activity_codes: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    reserved_out_of_grant_codes: frozenset[str] = DEFAULT_RESERVED_OUT_OF_GRANT_CODES
    report_owner: str = DEFAULT_REPORT_OWNER

    @classmethod
    def build(
        cls,
        *,
        report_prefix: str = DEFAULT_REPORT_PREFIX,
        future_days_limit: int = DEFAULT_FUTURE_DAYS_LIMIT,
        lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        role_activity_codes: Mapping[str, Iterable[str]] | None = None,
        reserved_out_of_grant_codes: Iterable[str] | None = None,
        report_owner: str = DEFAULT_REPORT_OWNER,
    ) -> CompliancePolicy:
        """Construct a policy, normalizing roles and codes."""
        roles = {
            _normalize_role(role): frozenset(normalize_activity_code(c) for c in codes)
            for role, codes in (role_activity_codes or {}).items()
        }
        reserved = (
            DEFAULT_RESERVED_OUT_OF_GRANT_CODES
            if reserved_out_of_grant_codes is None
            else frozenset(normalize_activity_code(c) for c in reserved_out_of_grant_codes)
        )
        return cls(
            report_prefix=report_prefix,
            future_days_limit=future_days_limit,
            lock_timeout_seconds=lock_timeout_seconds,
            role_activity_codes=MappingProxyType(roles),
            reserved_out_of_grant_codes=reserved,
            report_owner=report_owner,
        )

    def allowed_codes_for(self, role: str | None) -> frozenset[str] | None:
        """Codes a role may log, or None when the role is unrestricted."""
        if not role:
            return None
        return self.role_activity_codes.get(_normalize_role(role))
