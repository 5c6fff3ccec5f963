"""HR Payroll Command Line Interface.

Operator tools for running a payroll period end to end:
- Schema bootstrap
- Period creation and attendance import
- Payroll generation
- Approval, finalization, payment, reopen and lock
- Period summaries

Usage:
    python -m hr_payroll init-db
    python -m hr_payroll create-period --year 2024 --month 1 --period 1
    python -m hr_payroll import-attendance --period-id X --file dtr.json --user hr
    python -m hr_payroll generate --period-id X
    python -m hr_payroll approve --period-id X
    python -m hr_payroll finalize --period-id X
    python -m hr_payroll mark-paid --period-id X
    python -m hr_payroll reopen --period-id X --reason "Corrected DTR"
    python -m hr_payroll lock --period-id X
    python -m hr_payroll summary --period-id X
    python -m hr_payroll step-increments --as-of 2024-03-31

Every command prints a JSON document on stdout and writes its domain
events to the ``hr_payroll.audit`` logger. Failures print a JSON
error on stderr and exit non-zero.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll.config import Settings, get_settings
from hr_payroll.database import Database
from hr_payroll.errors import PayrollError
from hr_payroll.events import AuditLogHandler, EventEmitter
from hr_payroll.models import PayrollPeriod
from hr_payroll.result import Err
from hr_payroll.schemas import PeriodSummary
from hr_payroll.services import (
    AttendanceStore,
    PayrollGenerationService,
    PayrollPeriodService,
    ReimportWarning,
    StepIncrementService,
    SqlEmployeeDirectory,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

Handler = Callable[[AsyncSession, argparse.Namespace], Awaitable[dict[str, Any]]]


def configure_logging(level: str = "INFO") -> None:
    """Route library logging to stderr at the given level."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, stream=sys.stderr)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _period_payload(period: PayrollPeriod) -> dict[str, Any]:
    return PeriodSummary.model_validate(period).model_dump(mode="json")


def _err_payload(err: Err) -> dict[str, Any]:
    return {"kind": err.kind, "message": err.message}


class PayrollCli:
    """HR Payroll Command Line Interface."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.parser = self._build_parser()
        self.emitter = EventEmitter()
        self.emitter.on_all(AuditLogHandler())

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m hr_payroll",
            description="HR payroll operator tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: $DATABASE_URL)",
        )
        parser.add_argument(
            "--log-level",
            type=str,
            help="Logging level (default: $LOG_LEVEL)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create all tables")

        create = subparsers.add_parser("create-period", help="Create a half-month payroll period")
        create.add_argument("--year", type=int, required=True)
        create.add_argument("--month", type=int, required=True)
        create.add_argument("--period", type=int, choices=[1, 2], required=True, dest="period_number")
        create.add_argument("--pay-date", type=parse_date, help="Pay date (ISO format)")
        create.add_argument("--user", type=str, default="cli", help="Acting user")

        attendance = subparsers.add_parser(
            "import-attendance",
            help="Import attendance rows from a JSON file",
        )
        attendance.add_argument("--period-id", type=parse_uuid, required=True)
        attendance.add_argument(
            "--file",
            type=str,
            required=True,
            help="JSON array of {employee_id, working_days, leave_days, overtime_hours}",
        )
        attendance.add_argument("--user", type=str, default="cli", help="Acting user")
        attendance.add_argument(
            "--confirm",
            action="store_true",
            help="Supersede the active batch instead of stopping at the warning",
        )

        for name, help_text in (
            ("generate", "Generate payroll items for a period"),
            ("finalize", "Finalize a period once all items are approved"),
            ("lock", "Lock a paid period"),
            ("summary", "Show period totals and item statuses"),
        ):
            cmd = subparsers.add_parser(name, help=help_text)
            cmd.add_argument("--period-id", type=parse_uuid, required=True)
            cmd.add_argument("--user", type=str, default="cli", help="Acting user")

        for name, help_text in (
            ("approve", "Approve calculated items (all, or --employee-id)"),
            ("mark-paid", "Mark finalized items paid (all, or --employee-id)"),
        ):
            cmd = subparsers.add_parser(name, help=help_text)
            cmd.add_argument("--period-id", type=parse_uuid, required=True)
            cmd.add_argument(
                "--employee-id",
                type=parse_uuid,
                action="append",
                dest="employee_ids",
                help="Restrict to this employee (repeatable)",
            )
            cmd.add_argument("--user", type=str, default="cli", help="Acting user")

        reopen = subparsers.add_parser("reopen", help="Reopen a finalized or paid period")
        reopen.add_argument("--period-id", type=parse_uuid, required=True)
        reopen.add_argument("--reason", type=str, required=True)
        reopen.add_argument("--user", type=str, default="cli", help="Acting user")

        steps = subparsers.add_parser("step-increments", help="Apply due salary step increments")
        steps.add_argument(
            "--as-of",
            type=parse_date,
            default=None,
            help="Evaluation date (default: today)",
        )
        steps.add_argument("--user", type=str, default="cli", help="Acting user")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(parsed.log_level or self.settings.log_level)

        if parsed.command == "init-db":
            return asyncio.run(self._init_db(parsed))

        handlers: dict[str, Handler] = {
            "create-period": self._cmd_create_period,
            "import-attendance": self._cmd_import_attendance,
            "generate": self._cmd_generate,
            "approve": self._cmd_approve,
            "finalize": self._cmd_finalize,
            "mark-paid": self._cmd_mark_paid,
            "reopen": self._cmd_reopen,
            "lock": self._cmd_lock,
            "summary": self._cmd_summary,
            "step-increments": self._cmd_step_increments,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1
        return asyncio.run(self._execute(handler, parsed))

    def _database(self, args: argparse.Namespace) -> Database:
        if args.database_url:
            return Database.from_url(args.database_url, echo=self.settings.echo_sql)
        return Database.from_settings(self.settings)

    async def _init_db(self, args: argparse.Namespace) -> int:
        db = self._database(args)
        try:
            await db.create_all()
        finally:
            await db.dispose()
        self._print({"status": "ok", "message": "Schema created"})
        return 0

    async def _execute(self, handler: Handler, args: argparse.Namespace) -> int:
        db = self._database(args)
        try:
            with self.emitter.batch():
                async with db.session() as session:
                    payload = await handler(session, args)
        except PayrollError as e:
            logger.error("%s failed: %s", args.command, e.message)
            print(json.dumps(e.to_dict(), default=_json_default, indent=2), file=sys.stderr)
            return 2
        finally:
            await db.dispose()

        self._print(payload)
        return 0

    @staticmethod
    def _print(payload: dict[str, Any]) -> None:
        print(json.dumps(payload, default=_json_default, indent=2))

    # ----- Commands -----

    async def _cmd_create_period(self, session: AsyncSession, args: argparse.Namespace) -> dict[str, Any]:
        period = await PayrollPeriodService(session, self.emitter).create_period(
            args.year, args.month, args.period_number, pay_date=args.pay_date, created_by=args.user
        )
        return _period_payload(period)

    async def _cmd_import_attendance(self, session: AsyncSession, args: argparse.Namespace) -> dict[str, Any]:
        with open(args.file, encoding="utf-8") as f:
            rows = json.load(f)

        store = AttendanceStore(session, self.emitter)
        if args.confirm:
            result = await store.confirm_reimport(args.period_id, rows, args.user)
        else:
            result = await store.import_batch(args.period_id, rows, args.user)

        if isinstance(result, ReimportWarning):
            return {"status": "warning", "reimport": vars(result)}
        return {
            "status": "imported",
            "batch_id": result.batch_id,
            "row_count": result.row_count,
            "total_working_days": result.total_working_days,
        }

    async def _cmd_generate(self, session: AsyncSession, args: argparse.Namespace) -> dict[str, Any]:
        service = PayrollGenerationService(session, self.emitter, settings=self.settings)
        summary = await service.generate(args.period_id, actor=args.user)
        return {
            "period_id": summary.period_id,
            "processed_count": summary.processed_count,
            "failed_count": summary.failed_count,
            "skipped_count": summary.skipped_count,
            "total_net_pay": summary.total_net_pay,
            "duration_seconds": round(summary.duration_seconds, 3),
            "failures": {str(k): _err_payload(v) for k, v in summary.failures.items()},
            "skipped": summary.skipped,
        }

    async def _cmd_approve(self, session: AsyncSession, args: argparse.Namespace) -> dict[str, Any]:
        items = await PayrollPeriodService(session, self.emitter).approve_items(
            args.period_id, employee_ids=args.employee_ids, actor=args.user
        )
        return {"approved": len(items)}

    async def _cmd_finalize(self, session: AsyncSession, args: argparse.Namespace) -> dict[str, Any]:
        service = PayrollPeriodService(session, self.emitter)
        period = await service.finalize_period(args.period_id, actor=args.user)
        return _period_payload(period)

    async def _cmd_mark_paid(self, session: AsyncSession, args: argparse.Namespace) -> dict[str, Any]:
        period = await PayrollPeriodService(session, self.emitter).mark_paid(
            args.period_id, employee_ids=args.employee_ids, actor=args.user
        )
        return _period_payload(period)

    async def _cmd_reopen(self, session: AsyncSession, args: argparse.Namespace) -> dict[str, Any]:
        period = await PayrollPeriodService(session, self.emitter).reopen_period(
            args.period_id, reason=args.reason, actor=args.user
        )
        return _period_payload(period)

    async def _cmd_lock(self, session: AsyncSession, args: argparse.Namespace) -> dict[str, Any]:
        service = PayrollPeriodService(session, self.emitter)
        period = await service.lock_period(args.period_id, actor=args.user)
        return _period_payload(period)

    async def _cmd_summary(self, session: AsyncSession, args: argparse.Namespace) -> dict[str, Any]:
        service = PayrollPeriodService(session, self.emitter)
        period = await service.get_period(args.period_id)
        items = await service.get_items(args.period_id)
        by_status: dict[str, int] = {}
        for item in items:
            by_status[item.status] = by_status.get(item.status, 0) + 1
        payload = _period_payload(period)
        payload["items_by_status"] = by_status
        return payload

    async def _cmd_step_increments(self, session: AsyncSession, args: argparse.Namespace) -> dict[str, Any]:
        service = StepIncrementService(session, SqlEmployeeDirectory(session), self.emitter)
        run = await service.process(args.as_of or date.today(), actor=args.user)
        return {
            "evaluation_date": run.evaluation_date,
            "applied": run.applied,
            "not_eligible": dict(run.not_eligible),
            "failures": {str(k): _err_payload(v) for k, v in run.failures.items()},
        }


def main() -> int:
    """CLI entry point."""
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
