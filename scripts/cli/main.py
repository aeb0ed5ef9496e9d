"""
Hall dues CLI: one subcommand per ledger operation.

Usage:
    python -m scripts.cli.main init
    python -m scripts.cli.main rollover --year 2025/2026 --semester 1 \\
        --start 2025-09-01 --end 2025-12-20 --dues 20 --actor bursar@example.edu
    python -m scripts.cli.main record-payment --student NTCW/23/001 --hall h1 \\
        --amount 20 --receipt R-0001 --recorded-by bursar@example.edu
    python -m scripts.cli.main dues-status --student NTCW/23/001
    python -m scripts.cli.main report --hall ALL
    python -m scripts.cli.main export-csv --output defaulters.csv

Exit codes: 0 success, 1 setup failure, 2 ledger error (code printed).
"""

import argparse
import json
import logging
import sys

from dues_kernel.config import load_config
from dues_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from dues_kernel.exceptions import DuesKernelError
from dues_kernel.logging_config import configure_logging
from dues_services.ledger_api import DuesLedgerAPI, error_payload
from scripts.cli import config as cli_config
from scripts.cli.util import file_log_handler, fmt_amount


def _add_student_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--student", required=True, help="Index number or profile key")
    parser.add_argument(
        "--kind",
        choices=("index", "profile"),
        default="index",
        help="Which identifier --student carries (default: index)",
    )


def _add_scope_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--hall", default="ALL", help="Hall id or ALL (default: ALL)")
    parser.add_argument("--year", default=None, help="Academic year, e.g. 2025/2026")
    parser.add_argument("--semester", default=None, help="Semester number (1 or 2)")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Hall dues ledger: semesters, payments and financial reports.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", default=None, help="YAML config (default: $DUES_CONFIG or packaged defaults)")
    parser.add_argument("--database-url", default=None, help="Override database.url from config")
    parser.add_argument("--json", action="store_true", help="Print raw JSON instead of tables")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug-level logging to the log file")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create tables and seed settings and halls")
    sub.add_parser("active-semester", help="Show the active semester")
    sub.add_parser("semesters", help="List every semester, newest first")

    p = sub.add_parser("rollover", help="Activate a new semester")
    p.add_argument("--year", required=True)
    p.add_argument("--semester", required=True)
    p.add_argument("--start", required=True, help="ISO date")
    p.add_argument("--end", required=True, help="ISO date")
    p.add_argument("--dues", required=True, help="Dues amount")
    p.add_argument("--actor", default=None)

    p = sub.add_parser("record-payment", help="Record a dues payment")
    _add_student_args(p)
    p.add_argument("--hall", required=True)
    p.add_argument("--semester-id", default=None, help="Default: the active semester")
    p.add_argument("--amount", required=True)
    p.add_argument("--receipt", required=True)
    p.add_argument("--recorded-by", required=True)

    p = sub.add_parser("record-expense", help="Record a hall or GENERAL expense")
    p.add_argument("--hall", required=True, help="Hall id or GENERAL")
    p.add_argument("--title", required=True)
    p.add_argument("--amount", required=True)
    p.add_argument("--category", default="")
    p.add_argument("--description", default="")
    p.add_argument("--recorded-by", required=True)

    p = sub.add_parser("dues-status", help="Has a student paid?")
    _add_student_args(p)
    p.add_argument("--semester-id", default=None, help="Default: the active semester")

    p = sub.add_parser("roster", help="Dues collection roster with paid status")
    p.add_argument("--hall", default="ALL")
    p.add_argument("--status", default="ALL", choices=("ALL", "PAID", "UNPAID"))
    p.add_argument("--search", default="")
    p.add_argument("--semester-id", default=None, help="Default: the active semester")

    p = sub.add_parser("report", help="Financial summary and defaulters")
    _add_scope_args(p)

    p = sub.add_parser("export-csv", help="Write the defaulter list as CSV")
    _add_scope_args(p)
    p.add_argument("--output", default="-", help="File path, or - for stdout")

    return parser.parse_args(argv)


def _student_ref(args: argparse.Namespace) -> dict[str, str]:
    kind = "PROFILE_KEY" if args.kind == "profile" else "INDEX_NUMBER"
    return {"kind": kind, "value": args.student}


def _print_semester(sem: dict | None) -> None:
    if sem is None:
        print("  No active semester.")
        return
    state = "active" if sem["isActive"] else "closed"
    print(f"  {sem['label']}  ({state})")
    print(f"    id:     {sem['id']}")
    print(f"    window: {sem['startDate']} .. {sem['endDate']}")
    print(f"    dues:   {fmt_amount(sem['duesAmount'])}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_init(api: DuesLedgerAPI, args: argparse.Namespace) -> int:
    result = api.bootstrap()
    print(f"  Settings created: {'yes' if result.settings_created else 'no (already present)'}")
    print(f"  Halls created: {', '.join(result.halls_created) or 'none'}")
    return 0


def cmd_active_semester(api: DuesLedgerAPI, args: argparse.Namespace) -> int:
    sem = api.get_active_semester()
    if args.json:
        print(json.dumps(sem, indent=2))
        return 0
    _print_semester(sem)
    if sem is None:
        settings = api.get_settings()
        if settings is not None:
            print(
                f"  Fallback: {settings['currentAcademicYear']} - Sem "
                f"{settings['currentSemesterNumber']}, dues {fmt_amount(settings['defaultDuesAmount'])}"
            )
    return 0


def cmd_semesters(api: DuesLedgerAPI, args: argparse.Namespace) -> int:
    rows = api.list_semesters()
    if args.json:
        print(json.dumps(rows, indent=2))
        return 0
    if not rows:
        print("  No semesters yet.")
    for sem in rows:
        _print_semester(sem)
    return 0


def cmd_rollover(api: DuesLedgerAPI, args: argparse.Namespace) -> int:
    sem = api.rollover(
        {
            "academicYear": args.year,
            "semesterNumber": args.semester,
            "startDate": args.start,
            "endDate": args.end,
            "duesAmount": args.dues,
        },
        actor=args.actor,
    )
    if args.json:
        print(json.dumps(sem, indent=2))
        return 0
    print("  Rolled over to:")
    _print_semester(sem)
    return 0


def cmd_record_payment(api: DuesLedgerAPI, args: argparse.Namespace) -> int:
    semester_id = args.semester_id
    if semester_id is None:
        active = api.get_active_semester()
        if active is None:
            print("  ERROR: no active semester; pass --semester-id", file=sys.stderr)
            return 2
        semester_id = active["id"]
    payment = api.record_payment(
        {
            "studentRef": _student_ref(args),
            "hallId": args.hall,
            "semesterId": semester_id,
            "amount": args.amount,
            "receiptNumber": args.receipt,
            "recordedBy": args.recorded_by,
        }
    )
    if args.json:
        print(json.dumps(payment, indent=2))
        return 0
    print(
        f"  Recorded {fmt_amount(payment['amount'])} from {payment['studentName']} "
        f"({payment['studentId']}) for {payment['semester']}, receipt {payment['receiptNumber']}"
    )
    return 0


def cmd_record_expense(api: DuesLedgerAPI, args: argparse.Namespace) -> int:
    expense = api.record_expense(
        {
            "hallId": args.hall,
            "title": args.title,
            "amount": args.amount,
            "category": args.category,
            "description": args.description,
            "recordedBy": args.recorded_by,
        }
    )
    if args.json:
        print(json.dumps(expense, indent=2))
        return 0
    print(f"  Recorded expense {expense['title']!r} ({expense['hallId']}): {fmt_amount(expense['amount'])}")
    return 0


def cmd_dues_status(api: DuesLedgerAPI, args: argparse.Namespace) -> int:
    status = api.dues_status(_student_ref(args), args.semester_id)
    if args.json:
        print(json.dumps(status))
        return 0
    print(f"  {args.student}: {'PAID' if status['paid'] else 'UNPAID'}")
    return 0


def cmd_roster(api: DuesLedgerAPI, args: argparse.Namespace) -> int:
    rows = api.roster_status(args.semester_id, args.hall, args.status, args.search)
    if args.json:
        print(json.dumps(rows, indent=2))
        return 0
    for row in rows:
        ident = row["indexNumber"] or row["studentId"]
        print(f"  {ident:<16} {row['name']:<30} {row['hallName'] or '-':<14} {'PAID' if row['paid'] else 'UNPAID'}")
    print(f"  {len(rows)} student(s)")
    return 0


def cmd_report(api: DuesLedgerAPI, args: argparse.Namespace) -> int:
    report = api.report(args.hall, args.year, args.semester)
    if args.json:
        print(json.dumps(report, indent=2))
        return 0
    sem = report["semester"]
    print(f"  Scope: {report['hallId']} / {sem['label'] if sem else 'no semester'}")
    print(f"  Expected revenue: {fmt_amount(report['expectedRevenue'])}")
    print(f"  Actual revenue:   {fmt_amount(report['actualRevenue'])}")
    print(f"  Total expenses:   {fmt_amount(report['totalExpenses'])}")
    print(f"  Net balance:      {fmt_amount(report['netBalance'])}")
    print(
        f"  Paid: {report['paidCount']}/{report['studentCount']} "
        f"({report['paidPercentage']}%), defaulters: {len(report['defaulters'])}"
    )
    for hall in report["hallBreakdown"]:
        print(
            f"    {hall['hallName']:<14} students {hall['studentCount']:>4}  "
            f"collected {fmt_amount(hall['actualRevenue'])} of {fmt_amount(hall['expectedRevenue'])}"
        )
    return 0


def cmd_export_csv(api: DuesLedgerAPI, args: argparse.Namespace) -> int:
    text = api.export_defaulters_csv(args.hall, args.year, args.semester)
    if args.output == "-":
        sys.stdout.write(text)
    else:
        with open(args.output, "w", newline="", encoding="utf-8") as f:
            f.write(text)
        print(f"  Wrote {max(text.count(chr(10)) - 1, 0)} defaulter(s) to {args.output}")
    return 0


COMMANDS = {
    "init": cmd_init,
    "active-semester": cmd_active_semester,
    "semesters": cmd_semesters,
    "rollover": cmd_rollover,
    "record-payment": cmd_record_payment,
    "record-expense": cmd_record_expense,
    "dues-status": cmd_dues_status,
    "roster": cmd_roster,
    "report": cmd_report,
    "export-csv": cmd_export_csv,
}


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    configure_logging(level=level, handler=file_log_handler(cli_config.LOG_PATH, level))

    try:
        config = load_config(args.config)
        init_engine_from_url(args.database_url or config.database_url, echo=config.echo)
        create_tables()
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    api = DuesLedgerAPI(get_session_factory(), config)
    try:
        return COMMANDS[args.command](api, args)
    except DuesKernelError as exc:
        if args.json:
            print(json.dumps(error_payload(exc)), file=sys.stderr)
        else:
            print(f"  ERROR: {exc.code}: {exc}", file=sys.stderr)
        return 2
    finally:
        reset_engine()


if __name__ == "__main__":
    sys.exit(main())
