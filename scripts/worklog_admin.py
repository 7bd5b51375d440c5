#!/usr/bin/env python3
"""
Administrative commands for the worklog store.

Usage:
    python scripts/worklog_admin.py --db sqlite:///worklog.db init-db
    python scripts/worklog_admin.py --db ... close-week 2024-03-08
    python scripts/worklog_admin.py --db ... verify-report 2024-03-08
    python scripts/worklog_admin.py --db ... adjusted-summary 2024-03-08
    python scripts/worklog_admin.py --db ... check-audit-chain
    python scripts/worklog_admin.py show-config [--config path.yaml]

The database URL may also come from WORKLOG_DATABASE_URL.  Exit status is
0 on success, 1 on a failed or refused operation, 2 on bad usage.
"""

import argparse
import os
import sys
from pathlib import Path

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from worklog_config import get_active_policy
from worklog_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from worklog_kernel.db.immutability import register_immutability_listeners
from worklog_kernel.exceptions import WorklogError
from worklog_kernel.services.adjustment_service import AdjustmentService
from worklog_kernel.services.auditor_service import AuditorService
from worklog_kernel.services.report_store import ReportStore
from worklog_kernel.services.week_close_service import AggregationEngine

DEFAULT_DB_URL = "sqlite:///worklog.db"


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Worklog store administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--db",
        default=os.environ.get("WORKLOG_DATABASE_URL", DEFAULT_DB_URL),
        help="SQLAlchemy database URL (default: $WORKLOG_DATABASE_URL or %(default)s)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Compliance configuration YAML (default: bundled default set)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create every table")

    close = sub.add_parser("close-week", help="Close a week into a sealed report")
    close.add_argument("week_ending", help="Week ending date, YYYY-MM-DD")
    close.add_argument("--actor", default=None, help="Staff id requesting the close")

    verify = sub.add_parser("verify-report", help="Recompute a sealed report's content hash")
    verify.add_argument("week_ending")

    summary = sub.add_parser("adjusted-summary", help="Sealed report with adjustments folded in")
    summary.add_argument("week_ending")

    sub.add_parser("check-audit-chain", help="Validate the audit hash chain")
    sub.add_parser("show-config", help="Print the active compliance policy")
    return parser.parse_args(argv)


def _connect(db_url: str):
    init_engine_from_url(db_url)
    register_immutability_listeners()
    return get_session_factory()


def cmd_init_db(args, policy) -> int:
    init_engine_from_url(args.db)
    create_tables()
    print(f"Tables created at {args.db}")
    return 0


def cmd_close_week(args, policy) -> int:
    engine = AggregationEngine(_connect(args.db), policy)
    result = engine.close_week(args.week_ending, actor_id=args.actor)
    print(f"{result.status.value}: {result.message}")
    if result.report is not None:
        for row in result.report.rows:
            print(
                f"  {row.actor_id:<20} {row.category.value:<14} "
                f"{row.total_minutes:>6} min ({row.billable_minutes} billable, {row.entry_count} entries)"
            )
        print(f"  hash: {result.report.content_hash}")
    return 0 if result.succeeded else 1


def cmd_verify_report(args, policy) -> int:
    from worklog_kernel.domain.calendar import normalize_week_ending

    with _connect(args.db)() as session:
        report = ReportStore(session).verify(normalize_week_ending(args.week_ending))
    print(f"OK {report.report_key} ({report.content_hash[:16]}...)")
    return 0


def cmd_adjusted_summary(args, policy) -> int:
    summary = AdjustmentService(_connect(args.db), policy).adjusted_summary(args.week_ending)
    print(summary.report_key)
    for row in summary.rows:
        print(
            f"  {row.actor_id:<20} {row.category.value:<14} "
            f"{row.sealed_minutes:>6} {row.adjustment_minutes:+6d} = {row.net_minutes:>6}"
        )
    print(f"  {len(summary.adjustments)} adjustment(s)")
    return 0


def cmd_check_audit_chain(args, policy) -> int:
    with _connect(args.db)() as session:
        AuditorService(session).validate_chain()
    print("Audit chain valid")
    return 0


def cmd_show_config(args, policy) -> int:
    print(f"report_prefix:         {policy.report_prefix}")
    print(f"report_owner:          {policy.report_owner}")
    print(f"future_days_limit:     {policy.future_days_limit}")
    print(f"lock_timeout_seconds:  {policy.lock_timeout_seconds}")
    print(f"reserved codes:        {', '.join(sorted(policy.reserved_out_of_grant_codes))}")
    for role, codes in sorted(policy.role_activity_codes.items()):
        print(f"role {role}: {', '.join(sorted(codes))}")
    return 0


COMMANDS = {
    "init-db": cmd_init_db,
    "close-week": cmd_close_week,
    "verify-report": cmd_verify_report,
    "adjusted-summary": cmd_adjusted_summary,
    "check-audit-chain": cmd_check_audit_chain,
    "show-config": cmd_show_config,
}


def main(argv=None) -> int:
    args = _parse_args(argv)
    try:
        policy = get_active_policy(args.config)
    except (FileNotFoundError, ValueError, KeyError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    try:
        return COMMANDS[args.command](args, policy)
    except WorklogError as exc:
        print(f"{exc.code}: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
