"""Attendance (DTR) import store for payroll periods.

Each period has at most one active import batch. A second import does
not silently replace the first: it returns a ReimportWarning, and the
caller must confirm before the old batch is superseded. Superseded
batches are kept as history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll.calculators.money import ZERO, round_to_cents
from hr_payroll.calculators.proration import daily_rate_from_monthly
from hr_payroll.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from hr_payroll.events import (
    AttendanceImported,
    AttendanceReimportWarned,
    EventEmitter,
    EventMetadata,
)
from hr_payroll.models import (
    AttendanceImportBatch,
    AttendanceRecord,
    Employee,
    PayrollItem,
    PayrollPeriod,
)
from hr_payroll.models.base import utcnow
from hr_payroll.schemas import AttendanceRow, parse_attendance_rows
from hr_payroll.services.state_machine import PayrollStateMachine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReimportWarning:
    """Describes the batch a new import would supersede."""

    period_id: UUID
    existing_batch_id: UUID
    previous_row_count: int
    previous_total_working_days: Decimal
    last_imported_at: datetime
    last_imported_by: str
    payroll_items_exist: bool
    payroll_item_count: int
    can_supersede: bool


@dataclass(frozen=True)
class AttendanceStats:
    """Aggregates over the active batch of a period."""

    period_id: UUID
    batch_id: UUID | None
    employee_count: int
    total_working_days: Decimal
    total_leave_days: Decimal
    total_overtime_hours: Decimal
    estimated_basic_pay: Decimal


class AttendanceStore:
    """Imports attendance batches and answers working-day lookups."""

    def __init__(self, session: AsyncSession, emitter: EventEmitter | None = None):
        self.session = session
        self.emitter = emitter or EventEmitter()

    # ----- Imports -----

    async def import_batch(
        self,
        period_id: UUID,
        rows: Iterable[Any],
        imported_by: str,
    ) -> AttendanceImportBatch | ReimportWarning:
        """Import attendance rows for a period.

        Returns the new batch, or a ReimportWarning when the period already
        has an active batch. Nothing is written in the warning case.
        """
        period = await self._load_period(period_id)
        self._require_editable(period)
        parsed = parse_attendance_rows(rows)

        warning = await self.preview_reimport(period_id)
        if warning is not None:
            logger.info(
                "Attendance import for period %s held: %d-row batch %s already active",
                period.label,
                warning.previous_row_count,
                warning.existing_batch_id,
            )
            self.emitter.emit(
                AttendanceReimportWarned(
                    metadata=EventMetadata.create(actor=imported_by),
                    period_id=period_id,
                    existing_batch_id=warning.existing_batch_id,
                    previous_row_count=warning.previous_row_count,
                    payroll_items_exist=warning.payroll_items_exist,
                )
            )
            return warning

        await self._validate_employees(parsed)
        return await self._write_batch(period, parsed, imported_by, existing=None)

    async def preview_reimport(self, period_id: UUID) -> ReimportWarning | None:
        """Describe the active batch a re-import would supersede, if any."""
        period = await self._load_period(period_id)
        existing = await self.get_active_batch(period_id)
        if existing is None:
            return None

        item_count = await self.session.scalar(
            select(func.count())
            .select_from(PayrollItem)
            .where(PayrollItem.period_id == period_id)
        )
        return ReimportWarning(
            period_id=period_id,
            existing_batch_id=existing.batch_id,
            previous_row_count=existing.row_count,
            previous_total_working_days=existing.total_working_days,
            last_imported_at=existing.imported_at,
            last_imported_by=existing.imported_by,
            payroll_items_exist=bool(item_count),
            payroll_item_count=item_count or 0,
            can_supersede=PayrollStateMachine.is_editable(period.status),
        )

    async def confirm_reimport(
        self,
        period_id: UUID,
        rows: Iterable[Any],
        imported_by: str,
    ) -> AttendanceImportBatch:
        """Supersede the active batch with a new one.

        Only allowed while the period is Draft or Open. Re-importing rows
        identical to the active batch is a no-op returning that batch.
        """
        period = await self._load_period(period_id)
        self._require_editable(period)
        parsed = parse_attendance_rows(rows)
        await self._validate_employees(parsed)

        existing = await self.get_active_batch(period_id)
        if existing is not None and await self._same_rows(existing, parsed):
            logger.info(
                "Attendance re-import for period %s matches batch %s; nothing to do",
                period.label,
                existing.batch_id,
            )
            return existing

        return await self._write_batch(period, parsed, imported_by, existing=existing)

    # ----- Lookups -----

    async def get_active_batch(self, period_id: UUID) -> AttendanceImportBatch | None:
        result = await self.session.execute(
            select(AttendanceImportBatch).where(
                AttendanceImportBatch.period_id == period_id,
                AttendanceImportBatch.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def get_working_days(self, period_id: UUID, employee_id: UUID) -> Decimal | None:
        """Working days for an employee, or None when absent from the batch."""
        result = await self.session.execute(
            select(AttendanceRecord.working_days)
            .join(AttendanceImportBatch)
            .where(
                AttendanceImportBatch.period_id == period_id,
                AttendanceImportBatch.is_active.is_(True),
                AttendanceRecord.employee_id == employee_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_records(self, period_id: UUID) -> dict[UUID, AttendanceRecord]:
        """All records of the active batch keyed by employee."""
        result = await self.session.execute(
            select(AttendanceRecord)
            .join(AttendanceImportBatch)
            .where(
                AttendanceImportBatch.period_id == period_id,
                AttendanceImportBatch.is_active.is_(True),
            )
        )
        return {r.employee_id: r for r in result.scalars().all()}

    async def get_import_history(self, period_id: UUID) -> list[AttendanceImportBatch]:
        """All batches of a period, newest first."""
        await self._load_period(period_id)
        result = await self.session.execute(
            select(AttendanceImportBatch)
            .where(AttendanceImportBatch.period_id == period_id)
            .order_by(AttendanceImportBatch.imported_at.desc())
        )
        return list(result.scalars().all())

    async def get_stats(self, period_id: UUID) -> AttendanceStats:
        await self._load_period(period_id)
        batch = await self.get_active_batch(period_id)
        if batch is None:
            return AttendanceStats(period_id, None, 0, ZERO, ZERO, ZERO, ZERO)

        result = await self.session.execute(
            select(AttendanceRecord, Employee)
            .join(Employee, Employee.employee_id == AttendanceRecord.employee_id)
            .where(AttendanceRecord.batch_id == batch.batch_id)
        )
        working = leave = overtime = estimated = ZERO
        count = 0
        for record, employee in result.all():
            count += 1
            working += record.working_days
            leave += record.leave_days
            overtime += record.overtime_hours
            rate = employee.current_daily_rate or daily_rate_from_monthly(
                employee.current_monthly_salary
            )
            estimated += rate * record.working_days

        return AttendanceStats(
            period_id=period_id,
            batch_id=batch.batch_id,
            employee_count=count,
            total_working_days=working,
            total_leave_days=leave,
            total_overtime_hours=overtime,
            estimated_basic_pay=round_to_cents(estimated),
        )

    # ----- Internals -----

    async def _load_period(self, period_id: UUID) -> PayrollPeriod:
        period = await self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise NotFoundError("PayrollPeriod", period_id)
        return period

    @staticmethod
    def _require_editable(period: PayrollPeriod) -> None:
        if not PayrollStateMachine.is_editable(period.status):
            raise ConflictError(
                f"period locked: attendance cannot be imported while period "
                f"{period.label} is {period.status}",
                details={"period_id": str(period.period_id), "status": period.status},
            )

    async def _validate_employees(self, rows: list[AttendanceRow]) -> None:
        ids = [r.employee_id for r in rows]
        result = await self.session.execute(
            select(Employee.employee_id).where(Employee.employee_id.in_(ids))
        )
        known = set(result.scalars().all())
        unknown = [str(i) for i in ids if i not in known]
        if unknown:
            raise ValidationError(
                f"{len(unknown)} row(s) reference unknown employees",
                {"unknown_employee_ids": unknown},
            )

    async def _same_rows(self, batch: AttendanceImportBatch, rows: list[AttendanceRow]) -> bool:
        result = await self.session.execute(
            select(AttendanceRecord).where(AttendanceRecord.batch_id == batch.batch_id)
        )
        current = {
            r.employee_id: (r.working_days, r.leave_days, r.overtime_hours)
            for r in result.scalars().all()
        }
        incoming = {
            r.employee_id: (r.working_days, r.leave_days, r.overtime_hours) for r in rows
        }
        return current == incoming

    async def _write_batch(
        self,
        period: PayrollPeriod,
        rows: list[AttendanceRow],
        imported_by: str,
        existing: AttendanceImportBatch | None,
    ) -> AttendanceImportBatch:
        """Persist the batch and all its rows in one savepoint."""
        try:
            async with self.session.begin_nested():
                if existing is not None:
                    existing.is_active = False
                    existing.superseded_at = utcnow()
                    await self.session.flush()

                batch = AttendanceImportBatch(
                    period_id=period.period_id,
                    imported_by=imported_by,
                    row_count=len(rows),
                    total_working_days=sum((r.working_days for r in rows), ZERO),
                    is_active=True,
                )
                batch.records = [
                    AttendanceRecord(
                        employee_id=r.employee_id,
                        working_days=r.working_days,
                        leave_days=r.leave_days,
                        overtime_hours=r.overtime_hours,
                    )
                    for r in rows
                ]
                self.session.add(batch)
                await self.session.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"Another attendance batch became active for period {period.label}",
                details={"period_id": str(period.period_id)},
            ) from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Attendance import failed: {e}") from e

        logger.info(
            "Imported %d attendance row(s) for period %s (batch %s)",
            batch.row_count,
            period.label,
            batch.batch_id,
        )
        self.emitter.emit(
            AttendanceImported(
                metadata=EventMetadata.create(actor=imported_by),
                period_id=period.period_id,
                batch_id=batch.batch_id,
                row_count=batch.row_count,
                superseded_batch_id=existing.batch_id if existing else None,
            )
        )
        return batch
