"""
worklog_config -- single public entrypoint for compliance configuration.

Responsibility:
    ``get_active_policy()`` is the only way services obtain their
    ``CompliancePolicy`` at runtime.  The YAML source is loaded, validated
    and bridged here; the kernel never reads files or environment
    variables itself.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- type or validation failures.

Audit relevance:
    Every successful call emits a ``WORKLOG_CONFIG_TRACE`` log entry with
    the config id, version and checksum, tying each closure back to the
    configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from worklog_config.bridges import build_compliance_policy
from worklog_config.loader import load_config_set
from worklog_config.schema import ComplianceConfigSet
from worklog_config.validator import validate_configuration
from worklog_kernel.domain.policy import CompliancePolicy

_logger = logging.getLogger("worklog_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def load_active_config(path: Path | None = None) -> ComplianceConfigSet:
    """Load and validate a configuration set.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    config = load_config_set(path or DEFAULT_CONFIG_PATH)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"warning": warning})
    return config


def get_active_policy(path: Path | None = None) -> CompliancePolicy:
    """The public configuration entrypoint."""
    config = load_active_config(path)
    policy = build_compliance_policy(config)

    _logger.info(
        "WORKLOG_CONFIG_TRACE",
        extra={
            "trace_type": "WORKLOG_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "report_prefix": policy.report_prefix,
            "role_restriction_count": len(policy.role_activity_codes),
        },
    )
    return policy


__all__ = [
    "ComplianceConfigSet",
    "DEFAULT_CONFIG_PATH",
    "get_active_policy",
    "load_active_config",
]
