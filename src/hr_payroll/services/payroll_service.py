"""Payroll generation pipeline.

Generation claims a period with a compare-and-set status update, then
computes one PayrollItem per employee. Every employee runs in its own
savepoint: a failure is recorded in the summary and the batch continues.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll.calculators.money import ZERO, money_str, round_to_cents, to_decimal
from hr_payroll.calculators.proration import daily_rate_from_monthly, prorate_salary
from hr_payroll.calculators.statutory import StatutoryDeductionCalculator
from hr_payroll.calculators.types import ProrationReason
from hr_payroll.config import Settings, get_settings
from hr_payroll.errors import (
    CalculationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
)
from hr_payroll.events import EventEmitter, EventMetadata, PayrollGenerated, PeriodTransitioned
from hr_payroll.models import (
    AllowanceType,
    AttendanceRecord,
    DeductionType,
    Employee,
    PayrollItem,
    PayrollPeriod,
)
from hr_payroll.models.base import utcnow
from hr_payroll.result import Err
from hr_payroll.services.attendance_service import AttendanceStore
from hr_payroll.services.employee_directory import EmployeeDirectory, SqlEmployeeDirectory
from hr_payroll.services.override_service import ActiveOverrides, OverrideService
from hr_payroll.services.state_machine import (
    PayrollItemStatus,
    PayrollPeriodStatus,
    PayrollStateMachine,
)

logger = logging.getLogger(__name__)

PERCENT = Decimal("100")


@dataclass
class GenerationSummary:
    """Outcome of generating payroll for one period."""

    period_id: UUID
    processed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    failures: dict[UUID, Err] = field(default_factory=dict)
    skipped: list[UUID] = field(default_factory=list)
    total_net_pay: Decimal = ZERO
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.failed_count == 0


@dataclass(frozen=True)
class _PayComponents:
    """Active allowance and deduction definitions plus overrides."""

    allowance_types: Sequence[AllowanceType]
    deduction_types: Sequence[DeductionType]
    overrides: ActiveOverrides


async def recompute_period_totals(session: AsyncSession, period: PayrollPeriod) -> PayrollPeriod:
    """Recompute a period's aggregates from its persisted items."""
    row = (
        await session.execute(
            select(
                func.count(PayrollItem.item_id),
                func.coalesce(func.sum(PayrollItem.basic_pay), 0),
                func.coalesce(func.sum(PayrollItem.gross_pay), 0),
                func.coalesce(func.sum(PayrollItem.total_deductions), 0),
                func.coalesce(func.sum(PayrollItem.net_pay), 0),
            ).where(PayrollItem.period_id == period.period_id)
        )
    ).one()

    period.employee_count = row[0]
    period.total_basic_pay = round_to_cents(to_decimal(row[1]))
    period.total_gross_pay = round_to_cents(to_decimal(row[2]))
    period.total_deductions = round_to_cents(to_decimal(row[3]))
    period.total_net_pay = round_to_cents(to_decimal(row[4]))
    await session.flush()
    return period


class PayrollGenerationService:
    """Generates and recalculates payroll items for a period.

    Pipeline per employee (stable order):
    1) Working days from the active attendance batch (absent = skipped)
    2) Daily rate and proration for mid-period appointment/separation
    3) Basic pay = daily rate x payable days
    4) Allowances and deductions: active override, else type default
    5) Statutory deductions from basic pay
    6) Gross, total deductions, net; persist as Calculated
    """

    def __init__(
        self,
        session: AsyncSession,
        emitter: EventEmitter | None = None,
        directory: EmployeeDirectory | None = None,
        settings: Settings | None = None,
        calculator: StatutoryDeductionCalculator | None = None,
    ):
        self.session = session
        self.emitter = emitter or EventEmitter()
        self.directory = directory or SqlEmployeeDirectory(session)
        self.settings = settings or get_settings()
        self.calculator = calculator or StatutoryDeductionCalculator()
        self.attendance = AttendanceStore(session, self.emitter)
        self.overrides = OverrideService(session, self.emitter)

    async def generate(self, period_id: UUID, actor: str = "system") -> GenerationSummary:
        """Generate payroll for every employee in the period's attendance.

        Fails outright only when the period is missing, not Draft/Open,
        has no attendance, or was claimed by a concurrent run.
        """
        started = time.perf_counter()
        period = await self._load_period(period_id)
        from_status = period.status

        has_attendance = await self.attendance.get_active_batch(period_id) is not None
        if not PayrollStateMachine.is_editable(from_status):
            raise InvalidTransitionError(
                from_status,
                PayrollPeriodStatus.PROCESSING.value,
                "payroll can only be generated for Draft or Open periods",
            )
        errors, _ = PayrollStateMachine.validate_period_for_transition(
            period, PayrollPeriodStatus.PROCESSING, [], has_attendance=has_attendance
        )
        if errors:
            raise InvalidTransitionError(
                from_status, PayrollPeriodStatus.PROCESSING.value, "; ".join(errors)
            )

        await self._claim_period(period)

        employees = [
            e
            for e in await self.directory.get_active_employees(separated_since=period.start_date)
            if e.appointment_date <= period.end_date
        ]
        records = await self.attendance.get_records(period_id)
        components = await self._load_components(period)
        existing = await self._existing_items(period_id)

        summary = GenerationSummary(period_id=period_id)
        for employee in employees:
            employee_id = employee.employee_id
            record = records.get(employee_id)
            if record is None:
                summary.skipped.append(employee_id)
                logger.debug("Employee %s has no attendance in period %s", employee_id, period.label)
                continue

            try:
                async with self.session.begin_nested():
                    item = await self._calculate_item(
                        period, employee, record, components, existing.get(employee_id)
                    )
                summary.processed_count += 1
                summary.total_net_pay += item.net_pay
            except Exception as e:
                summary.failures[employee_id] = Err.from_exception(
                    e, employee_id=str(employee_id)
                )
                logger.warning(
                    "Payroll failed for employee %s in period %s: %s",
                    employee_id,
                    period.label,
                    e,
                )

        summary.failed_count = len(summary.failures)
        summary.skipped_count = len(summary.skipped)
        await recompute_period_totals(self.session, period)
        summary.total_net_pay = period.total_net_pay
        summary.duration_seconds = time.perf_counter() - started

        logger.info(
            "Generated payroll for period %s: %d processed, %d failed, %d skipped in %.2fs",
            period.label,
            summary.processed_count,
            summary.failed_count,
            summary.skipped_count,
            summary.duration_seconds,
        )
        metadata = EventMetadata.create(actor=actor)
        with self.emitter.batch():
            self.emitter.emit(
                PeriodTransitioned(
                    metadata=metadata,
                    period_id=period_id,
                    from_status=from_status,
                    to_status=PayrollPeriodStatus.PROCESSING.value,
                )
            )
            self.emitter.emit(
                PayrollGenerated(
                    metadata=metadata,
                    period_id=period_id,
                    processed_count=summary.processed_count,
                    failed_count=summary.failed_count,
                    skipped_count=summary.skipped_count,
                    total_net_pay=summary.total_net_pay,
                )
            )
        return summary

    async def recalculate_employee(self, period_id: UUID, employee_id: UUID) -> PayrollItem:
        """Recompute one employee's item while the period is Processing."""
        period = await self._load_period(period_id)
        if not PayrollStateMachine.can_recalculate(period.status):
            raise ConflictError(
                f"Items can only be recalculated while the period is Processing "
                f"(current: {period.status})",
                details={"period_id": str(period_id), "status": period.status},
            )

        employee = await self.directory.get_employee(employee_id)
        records = await self.attendance.get_records(period_id)
        record = records.get(employee_id)
        if record is None:
            raise CalculationError(
                f"Employee {employee_id} has no attendance in period {period.label}",
                {"employee_id": str(employee_id)},
            )

        existing = (await self._existing_items(period_id)).get(employee_id)
        components = await self._load_components(period)
        async with self.session.begin_nested():
            item = await self._calculate_item(period, employee, record, components, existing)
        await recompute_period_totals(self.session, period)
        logger.info("Recalculated employee %s in period %s", employee_id, period.label)
        return item

    # ----- Internals -----

    async def _load_period(self, period_id: UUID) -> PayrollPeriod:
        period = await self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise NotFoundError("PayrollPeriod", period_id)
        return period

    async def _claim_period(self, period: PayrollPeriod) -> None:
        """Atomically move the period to Processing.

        The WHERE on status makes this a compare-and-set: of two concurrent
        generations only one sees a matched row.
        """
        editable = [s.value for s in PayrollStateMachine.EDITABLE]
        result = await self.session.execute(
            update(PayrollPeriod)
            .where(
                PayrollPeriod.period_id == period.period_id,
                PayrollPeriod.status.in_(editable),
            )
            .values(status=PayrollPeriodStatus.PROCESSING.value, processed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.refresh(period)
            raise ConflictError(
                f"Period {period.label} was claimed by another run (status: {period.status})",
                details={"period_id": str(period.period_id), "status": period.status},
            )
        await self.session.refresh(period)

    async def _load_components(self, period: PayrollPeriod) -> _PayComponents:
        allowance_types = (
            await self.session.execute(
                select(AllowanceType)
                .where(AllowanceType.is_active.is_(True))
                .order_by(AllowanceType.code)
            )
        ).scalars().all()
        deduction_types = (
            await self.session.execute(
                select(DeductionType)
                .where(DeductionType.is_active.is_(True))
                .order_by(DeductionType.code)
            )
        ).scalars().all()
        overrides = await self.overrides.load_active_overrides(period.end_date)
        return _PayComponents(allowance_types, deduction_types, overrides)

    async def _existing_items(self, period_id: UUID) -> dict[UUID, PayrollItem]:
        result = await self.session.execute(
            select(PayrollItem).where(PayrollItem.period_id == period_id)
        )
        return {i.employee_id: i for i in result.scalars().all()}

    def _daily_rate(self, employee: Employee) -> Decimal:
        if employee.current_daily_rate:
            return to_decimal(employee.current_daily_rate, "daily_rate")
        return daily_rate_from_monthly(
            employee.current_monthly_salary, self.settings.standard_working_days
        )

    @staticmethod
    def _component_amount(
        calculation_type: str, default_amount: Any, override: Any, basic_pay: Decimal
    ) -> Decimal:
        if override is not None:
            return round_to_cents(to_decimal(override, "override"))
        default = to_decimal(default_amount, "default_amount")
        if calculation_type == "percentage":
            return round_to_cents(basic_pay * default / PERCENT)
        return round_to_cents(default)

    async def _calculate_item(
        self,
        period: PayrollPeriod,
        employee: Employee,
        record: AttendanceRecord,
        components: _PayComponents,
        existing: PayrollItem | None,
    ) -> PayrollItem:
        """Compute and persist one employee's item (caller holds the savepoint)."""
        employee_id = employee.employee_id
        if existing is not None and existing.status in PayrollStateMachine.FROZEN_ITEM_STATUSES:
            raise ConflictError(
                f"Payroll item for employee {employee_id} is {existing.status} and cannot be "
                "recalculated",
                details={"item_id": str(existing.item_id), "status": existing.status},
            )

        daily_rate = self._daily_rate(employee)
        if daily_rate <= 0:
            raise CalculationError(
                f"Employee {employee.employee_number} has no salary rate",
                {"employee_id": str(employee_id)},
            )

        proration = prorate_salary(
            daily_rate,
            employee.appointment_date,
            employee.separation_date,
            period.start_date,
            period.end_date,
            weekdays_only=self.settings.prorate_weekdays_only,
        )
        if proration.reason == ProrationReason.NOT_EMPLOYED:
            raise CalculationError(
                f"Employee {employee.employee_number} was not employed during {period.label}",
                {"employee_id": str(employee_id)},
            )

        working_days = to_decimal(record.working_days, "working_days")
        payable_days = working_days
        if proration.is_prorated:
            payable_days = min(working_days, Decimal(proration.prorated_days))
        basic_pay = round_to_cents(daily_rate * payable_days)

        allowances: dict[str, str] = {}
        total_allowances = taxable_allowances = ZERO
        for allowance in components.allowance_types:
            amount = self._component_amount(
                allowance.calculation_type,
                allowance.default_amount,
                components.overrides.allowance(employee_id, allowance.allowance_type_id),
                basic_pay,
            )
            if amount <= 0:
                continue
            allowances[allowance.code] = money_str(amount)
            total_allowances += amount
            if allowance.is_taxable:
                taxable_allowances += amount

        other_deductions = ZERO
        other_breakdown: dict[str, str] = {}
        for deduction in components.deduction_types:
            amount = self._component_amount(
                deduction.calculation_type,
                deduction.default_amount,
                components.overrides.deduction(employee_id, deduction.deduction_type_id),
                basic_pay,
            )
            if amount <= 0:
                continue
            other_breakdown[deduction.code] = money_str(amount)
            other_deductions += amount

        statutory = self.calculator.compute(basic_pay, taxable_additions=taxable_allowances)
        deductions = {code: money_str(amount) for code, amount in statutory.breakdown().items()}
        deductions.update(other_breakdown)

        gross_pay = basic_pay + total_allowances
        total_deductions = statutory.total_employee + other_deductions
        net_pay = gross_pay - total_deductions
        if net_pay < 0:
            raise CalculationError(
                f"Deductions ({total_deductions}) exceed gross pay ({gross_pay}) for employee "
                f"{employee.employee_number}",
                {"employee_id": str(employee_id)},
            )

        item = existing
        if item is None:
            item = PayrollItem(period_id=period.period_id, employee_id=employee_id)
            self.session.add(item)

        item.working_days = working_days
        item.daily_rate = daily_rate
        item.basic_pay = basic_pay
        item.allowances = allowances
        item.deductions = deductions
        item.total_allowances = total_allowances
        item.gsis_employee = statutory.gsis.employee_share
        item.gsis_employer = statutory.gsis.employer_share
        item.pagibig_employee = statutory.pagibig.employee_share
        item.pagibig_employer = statutory.pagibig.employer_share
        item.philhealth_employee = statutory.philhealth.employee_share
        item.philhealth_employer = statutory.philhealth.employer_share
        item.withholding_tax = statutory.withholding_tax
        item.other_deductions = other_deductions
        item.total_deductions = total_deductions
        item.gross_pay = gross_pay
        item.net_pay = net_pay
        item.proration_reason = proration.reason.value
        item.status = PayrollItemStatus.CALCULATED.value
        item.calculated_at = utcnow()
        item.approved_at = None
        item.approved_by = None

        await self.session.flush()
        return item
