"""
Typed exception hierarchy for the worklog kernel.

Every exception carries a class-level ``code`` (machine-readable, API-safe)
and stores its context as attributes, so callers catch by type and report
by code instead of parsing messages.

    WorklogError (base)
    |
    +-- InputError
    |   +-- InvalidWeekEndingError
    |
    +-- AuthorizationError
    |
    +-- ConcurrencyError
    |   +-- LockTimeoutError
    |
    +-- ClosureError
    |   +-- WeekAlreadyClosedError      (success no-op signal)
    |   +-- WeekNotClosedError
    |
    +-- DataIntegrityError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |   +-- ReportTamperedError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- InternalError

Entry validation defects are NOT exceptions: they are returned as
``ValidationError`` values inside a ``ValidationResult`` (see
``worklog_kernel.domain.types``).

Handling categories:
    - InputError            -> non-retryable, show the message to the user
    - LockTimeoutError      -> retryable by re-invocation
    - WeekAlreadyClosedError -> informational, the week is already sealed
    - DataIntegrityError    -> fatal, log with full context
    - ImmutabilityError     -> log security alert
"""


class WorklogError(Exception):
    """
    Base exception for all worklog kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "WORKLOG_ERROR"


# Input errors


class InputError(WorklogError):
    """Caller supplied malformed input. Not retryable."""

    code: str = "INVALID_INPUT"


class InvalidWeekEndingError(InputError):
    """Week-ending value is not a strict calendar date."""

    code: str = "INVALID_WEEK_ENDING"

    def __init__(self, value: object, reason: str):
        self.value = repr(value)
        self.reason = reason
        super().__init__(f"Invalid week ending {value!r}: {reason}")


# Authorization errors


class AuthorizationError(WorklogError):
    """Actor, subject, or role does not permit the operation."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, actor_id: str, reason: str):
        self.actor_id = actor_id
        self.reason = reason
        super().__init__(f"Actor {actor_id!r} not authorized: {reason}")


# Concurrency errors


class ConcurrencyError(WorklogError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class LockTimeoutError(ConcurrencyError):
    """Exclusive store lock was not acquired within the wait ceiling."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, scope: str, timeout_seconds: float):
        self.scope = scope
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not acquire lock on {scope} within {timeout_seconds:g}s"
        )


# Closure errors


class ClosureError(WorklogError):
    """Base exception for week-closure errors."""

    code: str = "CLOSURE_ERROR"


class WeekAlreadyClosedError(ClosureError):
    """A report already exists for this week ending (idempotent success)."""

    code: str = "WEEK_ALREADY_CLOSED"

    def __init__(self, report_key: str):
        self.report_key = report_key
        super().__init__(f"Week already closed: {report_key}")


class WeekNotClosedError(ClosureError):
    """Operation requires a sealed week but none exists."""

    code: str = "WEEK_NOT_CLOSED"

    def __init__(self, week_end: str):
        self.week_end = week_end
        super().__init__(f"No sealed report exists for week ending {week_end}")


# Data integrity errors


class DataIntegrityError(WorklogError):
    """Backing table is missing or malformed. Fatal."""

    code: str = "DATA_INTEGRITY"

    def __init__(self, table: str, reason: str):
        self.table = table
        self.reason = reason
        super().__init__(f"Data integrity failure on {table}: {reason}")


# Immutability errors


class ImmutabilityError(WorklogError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class ReportTamperedError(ImmutabilityError):
    """Stored report content no longer matches its sealed content hash."""

    code: str = "REPORT_TAMPERED"

    def __init__(self, report_key: str, expected_hash: str, actual_hash: str):
        self.report_key = report_key
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Report {report_key} content hash mismatch: "
            f"sealed {expected_hash}, recomputed {actual_hash}"
        )


# Audit errors


class AuditError(WorklogError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Internal errors


class InternalError(WorklogError):
    """Unexpected failure wrapped at a public operation boundary."""

    code: str = "INTERNAL_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Internal error during {operation}: {reason}")
