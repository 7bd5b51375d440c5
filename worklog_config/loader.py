"""
Configuration Loader (``worklog_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``worklog_config.schema`` dataclasses.  Runtime callers go through
``worklog_config.get_active_policy()`` instead of calling this directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrongly typed values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from worklog_config.schema import ComplianceConfigSet, ReportSettings, RoleRestriction


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; deterministic."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return value


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {value!r}")
    return float(value)


def _as_codes(value: Any, name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValueError(f"{name} must be a list of activity codes, got {value!r}")
    return tuple(str(code) for code in value)


def parse_role_restrictions(data: Any) -> tuple[RoleRestriction, ...]:
    """Parse ``role_activity_codes: {role: [codes]}``."""
    if not data:
        return ()
    if not isinstance(data, dict):
        raise ValueError(f"role_activity_codes must be a mapping, got {data!r}")
    return tuple(
        RoleRestriction(role=str(role), activity_codes=_as_codes(codes, f"role_activity_codes.{role}"))
        for role, codes in sorted(data.items(), key=lambda item: str(item[0]))
    )


def parse_config_set(data: dict[str, Any]) -> ComplianceConfigSet:
    """
    Parse a ``ComplianceConfigSet`` from a dict.

    Raises:
        KeyError: if ``config_id`` or ``version`` is missing.
        ValueError: if a value has the wrong type.
    """
    report_data = data.get("report", {}) or {}
    defaults = ReportSettings()
    report = ReportSettings(
        prefix=str(report_data.get("prefix", defaults.prefix)),
        owner=str(report_data.get("owner", defaults.owner)),
    )

    kwargs: dict[str, Any] = {}
    if "future_days_limit" in data:
        kwargs["future_days_limit"] = _as_int(data["future_days_limit"], "future_days_limit")
    if "lock_timeout_seconds" in data:
        kwargs["lock_timeout_seconds"] = _as_float(
            data["lock_timeout_seconds"], "lock_timeout_seconds"
        )
    if "reserved_out_of_grant_codes" in data:
        kwargs["reserved_out_of_grant_codes"] = _as_codes(
            data["reserved_out_of_grant_codes"], "reserved_out_of_grant_codes"
        )

    return ComplianceConfigSet(
        config_id=str(data["config_id"]),
        version=_as_int(data["version"], "version"),
        report=report,
        role_restrictions=parse_role_restrictions(data.get("role_activity_codes")),
        checksum=compute_checksum(data),
        **kwargs,
    )


def load_config_set(path: Path) -> ComplianceConfigSet:
    """Load and parse one configuration file."""
    return parse_config_set(load_yaml_file(path))
