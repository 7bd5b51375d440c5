"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here intercept those events and refuse
any write that would rewrite worklog history:

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> ImmutabilityViolationError
         |
    [before_delete] --> _refuse_delete() ---> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities:

Entity                  | When immutable
------------------------|--------------------------------------------------
WorklogEntryModel       | Always (append-only store)
WorklogAdjustmentModel  | Always (compensating records are history too)
WeeklyReportModel       | After sealing; before sealing only the sealing
                        | transition itself may update it.  Never deleted.
WeeklyReportRowModel    | Always
AuditEvent              | Always

Usage:

    from worklog_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup, after models import

To temporarily disable (TESTS ONLY, to plant tampered rows):

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from worklog_kernel.exceptions import ImmutabilityViolationError
from worklog_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Columns the sealing transition is allowed to touch
_SEALING_FIELDS = frozenset({"is_sealed", "sealed_at", "editors"})


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    extra = {
        "entity_type": entity_type,
        "entity_id": str(target.id),
        "operation": operation,
    }
    if field is not None:
        extra["field"] = field
    logger.error("immutability_violation_blocked", extra=extra)
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_columns(target) -> list[str]:
    insp = inspect(target)
    column_keys = {attr.key for attr in insp.mapper.column_attrs}
    return [
        attr.key
        for attr in insp.attrs
        if attr.key in column_keys and attr.history.has_changes()
    ]


def _append_only_update_check(entity_type: str):
    def _check(mapper, connection, target):
        changed = _changed_columns(target)
        if changed:
            _block(
                entity_type,
                target,
                "UPDATE",
                f"{entity_type} rows are append-only; cannot modify '{changed[0]}'",
                field=changed[0],
            )

    _check.__name__ = f"_check_{entity_type.lower()}_update"
    return _check


def _refuse_delete(entity_type: str):
    def _check(mapper, connection, target):
        _block(entity_type, target, "DELETE", f"{entity_type} rows cannot be deleted")

    _check.__name__ = f"_check_{entity_type.lower()}_delete"
    return _check


def _was_sealed_before(target) -> bool:
    history = get_history(target, "is_sealed")
    if history.deleted:
        return bool(history.deleted[0])
    if not history.added:
        return bool(target.is_sealed)
    return False


def _check_weekly_report_update(mapper, connection, target):
    """
    Allow exactly one UPDATE: the unsealed -> sealed transition.

    Logic:
        1. Already sealed before this flush: block every column change.
        2. Not yet sealed: only sealing columns may change, and the
           result must be sealed.
    """
    changed = _changed_columns(target)
    if not changed:
        return

    if _was_sealed_before(target):
        _block(
            "WeeklyReport",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on sealed report {target.report_key}",
            field=changed[0],
        )

    illegal = [key for key in changed if key not in _SEALING_FIELDS]
    if illegal or not target.is_sealed:
        field = illegal[0] if illegal else "is_sealed"
        _block(
            "WeeklyReport",
            target,
            "UPDATE",
            f"Only the sealing transition may update report {target.report_key}",
            field=field,
        )


_check_entry_update = _append_only_update_check("WorklogEntry")
_check_entry_delete = _refuse_delete("WorklogEntry")
_check_adjustment_update = _append_only_update_check("WorklogAdjustment")
_check_adjustment_delete = _refuse_delete("WorklogAdjustment")
_check_report_delete = _refuse_delete("WeeklyReport")
_check_report_row_update = _append_only_update_check("WeeklyReportRow")
_check_report_row_delete = _refuse_delete("WeeklyReportRow")
_check_audit_event_update = _append_only_update_check("AuditEvent")
_check_audit_event_delete = _refuse_delete("AuditEvent")


def _listener_table():
    from worklog_kernel.models.adjustment import WorklogAdjustmentModel
    from worklog_kernel.models.audit_event import AuditEvent
    from worklog_kernel.models.weekly_report import WeeklyReportModel, WeeklyReportRowModel
    from worklog_kernel.models.worklog_entry import WorklogEntryModel

    return [
        (WorklogEntryModel, "before_update", _check_entry_update),
        (WorklogEntryModel, "before_delete", _check_entry_delete),
        (WorklogAdjustmentModel, "before_update", _check_adjustment_update),
        (WorklogAdjustmentModel, "before_delete", _check_adjustment_delete),
        (WeeklyReportModel, "before_update", _check_weekly_report_update),
        (WeeklyReportModel, "before_delete", _check_report_delete),
        (WeeklyReportRowModel, "before_update", _check_report_row_update),
        (WeeklyReportRowModel, "before_delete", _check_report_row_delete),
        (AuditEvent, "before_update", _check_audit_event_update),
        (AuditEvent, "before_delete", _check_audit_event_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: a listener that is already registered is left alone.
    """
    for target, event_name, fn in _listener_table():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that plant tampered rows on purpose.
    """
    for target, event_name, fn in _listener_table():
        _safe_remove_listener(target, event_name, fn)
