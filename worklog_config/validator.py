"""
Configuration Validator (``worklog_config.validator``).

Checks a parsed ``ComplianceConfigSet`` for values the kernel cannot work
with.  Errors block use of the configuration; warnings should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from worklog_config.schema import ComplianceConfigSet


@dataclass
class ConfigValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: ComplianceConfigSet) -> ConfigValidationResult:
    result = ConfigValidationResult()

    if not config.report.prefix.strip():
        result.add_error("report.prefix must not be blank")
    if not config.report.owner.strip():
        result.add_error("report.owner must not be blank")
    if config.future_days_limit < 0:
        result.add_error(
            f"future_days_limit must be >= 0, got {config.future_days_limit}"
        )
    if config.lock_timeout_seconds <= 0:
        result.add_error(
            f"lock_timeout_seconds must be > 0, got {config.lock_timeout_seconds}"
        )

    seen_roles: set[str] = set()
    for restriction in config.role_restrictions:
        role = restriction.role.strip().casefold()
        if not role:
            result.add_error("role_activity_codes contains a blank role")
            continue
        if role in seen_roles:
            result.add_error(f"role {restriction.role!r} is listed more than once")
        seen_roles.add(role)
        if not restriction.activity_codes:
            result.add_warning(
                f"role {restriction.role!r} has no allowed activity codes and can log nothing"
            )

    for code in config.reserved_out_of_grant_codes:
        if not code.strip():
            result.add_error("reserved_out_of_grant_codes contains a blank code")

    return result
