"""Benefits calculation service.

Single-employee operations raise the specific error. Bulk calculation
isolates each employee in its own savepoint and returns a tagged result
per employee, so one ineligible record never aborts the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll.calculators import benefit_formulas
from hr_payroll.calculators.money import ZERO, to_decimal
from hr_payroll.calculators.proration import full_years_between
from hr_payroll.calculators.types import BenefitCalculation, BenefitType
from hr_payroll.errors import (
    CalculationError,
    ConflictError,
    NotFoundError,
    PayrollError,
    PersistenceError,
    ValidationError,
)
from hr_payroll.events import (
    BenefitItemCreated,
    CompensationBenefitProcessed,
    EventEmitter,
    EventMetadata,
)
from hr_payroll.models import (
    BenefitCycle,
    BenefitItem,
    CompensationBenefit,
    EmployeeLeaveBalance,
    LeaveType,
)
from hr_payroll.models.base import utcnow
from hr_payroll.result import Err, Ok, Result
from hr_payroll.services.employee_directory import EmployeeDirectory, SqlEmployeeDirectory

logger = logging.getLogger(__name__)

# Paid once per employee through the ledger, never through a cycle
ONE_OFF_TYPES = frozenset({BenefitType.TERMINAL_LEAVE, BenefitType.MONETIZATION})

OPEN_CYCLE_STATUSES = ("Draft", "Processing")


def parse_benefit_type(value: BenefitType | str) -> BenefitType:
    if isinstance(value, BenefitType):
        return value
    try:
        return BenefitType(value)
    except ValueError as e:
        raise ValidationError(f"Unknown benefit type {value!r}") from e


@dataclass
class BulkCalculationResult:
    """Per-employee outcomes of a bulk benefit calculation."""

    benefit_type: BenefitType
    results: dict[UUID, Result] = field(default_factory=dict)

    @property
    def succeeded(self) -> dict[UUID, Any]:
        return {k: r.value for k, r in self.results.items() if isinstance(r, Ok)}

    @property
    def failed(self) -> dict[UUID, Err]:
        return {k: r for k, r in self.results.items() if isinstance(r, Err)}

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def total_amount(self) -> Decimal:
        total = ZERO
        for value in self.succeeded.values():
            total += value.calculated_amount if isinstance(value, BenefitItem) else value.amount
        return total


class BenefitsService:
    """Calculates benefits and records cycle items and ledger payouts."""

    def __init__(
        self,
        session: AsyncSession,
        emitter: EventEmitter | None = None,
        directory: EmployeeDirectory | None = None,
    ):
        self.session = session
        self.emitter = emitter or EventEmitter()
        self.directory = directory or SqlEmployeeDirectory(session)

    # ----- Cycles -----

    async def create_cycle(
        self,
        benefit_type: BenefitType | str,
        year: int,
        applicable_date: date,
        payment_date: date | None = None,
        cutoff_date: date | None = None,
        created_by: str | None = None,
    ) -> BenefitCycle:
        btype = parse_benefit_type(benefit_type)
        if btype in ONE_OFF_TYPES:
            raise ValidationError(f"{btype.value} is processed per employee, not in cycles")
        if payment_date is not None and payment_date < applicable_date:
            raise ValidationError("payment_date cannot precede applicable_date")

        cycle = BenefitCycle(
            benefit_type=btype.value,
            year=year,
            applicable_date=applicable_date,
            payment_date=payment_date,
            cutoff_date=cutoff_date,
            status="Draft",
            created_by=created_by,
        )
        self.session.add(cycle)
        await self.session.flush()
        logger.info("Created %s benefit cycle %s for %d", btype.value, cycle.cycle_id, year)
        return cycle

    async def get_cycle(self, cycle_id: UUID) -> BenefitCycle:
        cycle = await self.session.get(BenefitCycle, cycle_id)
        if cycle is None:
            raise NotFoundError("BenefitCycle", cycle_id)
        return cycle

    async def complete_cycle(self, cycle_id: UUID) -> BenefitCycle:
        cycle = await self.get_cycle(cycle_id)
        if cycle.status not in OPEN_CYCLE_STATUSES:
            raise ConflictError(f"Benefit cycle is already {cycle.status}")
        cycle.status = "Completed"
        cycle.completed_at = utcnow()
        await self.session.flush()
        logger.info("Completed benefit cycle %s", cycle_id)
        return cycle

    async def cancel_cycle(self, cycle_id: UUID) -> BenefitCycle:
        cycle = await self.get_cycle(cycle_id)
        if cycle.status not in OPEN_CYCLE_STATUSES:
            raise ConflictError(f"Benefit cycle is already {cycle.status}")
        cycle.status = "Cancelled"
        await self.session.flush()
        return cycle

    async def get_cycle_items(self, cycle_id: UUID) -> list[BenefitItem]:
        result = await self.session.execute(
            select(BenefitItem).where(BenefitItem.cycle_id == cycle_id)
        )
        return list(result.scalars().all())

    # ----- Calculation -----

    async def calculate(
        self,
        benefit_type: BenefitType | str,
        employee_id: UUID,
        as_of: date | None = None,
        cutoff_date: date | None = None,
        days_to_monetize: Any = None,
    ) -> BenefitCalculation:
        """Calculate one benefit for one employee, raising on ineligibility."""
        btype = parse_benefit_type(benefit_type)
        employee = await self.directory.get_employee(employee_id)
        as_of = as_of or date.today()

        if btype in benefit_formulas.CYCLE_BONUS_TYPES:
            months = benefit_formulas.check_bonus_eligibility(
                employee.employment_status, employee.appointment_date, cutoff_date or as_of
            )
            calc = benefit_formulas.salary_bonus(btype, employee.current_monthly_salary)
            calc.basis["service_months"] = months
            return calc

        if btype == BenefitType.GSIS_PAYOUT:
            years = full_years_between(employee.appointment_date, employee.separation_date or as_of)
            return benefit_formulas.gsis_payout(employee.current_monthly_salary, years)

        if btype == BenefitType.TERMINAL_LEAVE:
            earned = await self.monetizable_leave_earned(employee_id, as_of.year)
            return benefit_formulas.terminal_leave_benefit(
                employee.employment_status,
                earned,
                employee.highest_monthly_salary,
                employee.current_monthly_salary,
            )

        if btype == BenefitType.MONETIZATION:
            if days_to_monetize is None:
                raise ValidationError("Days to monetize not specified")
            balance = await self.monetizable_balance(employee_id, as_of.year)
            return benefit_formulas.leave_monetization(
                days_to_monetize, balance, employee.current_monthly_salary
            )

        # BenefitType.LOYALTY_AWARD
        years = full_years_between(employee.appointment_date, as_of)
        return benefit_formulas.loyalty_award(years)

    async def monetizable_leave_earned(self, employee_id: UUID, year: int) -> Decimal:
        """Leave earned in the year, counting monetizable leave types only."""
        total = await self.session.scalar(
            select(func.coalesce(func.sum(EmployeeLeaveBalance.earned_days), 0))
            .join(LeaveType, LeaveType.leave_type_id == EmployeeLeaveBalance.leave_type_id)
            .where(
                EmployeeLeaveBalance.employee_id == employee_id,
                EmployeeLeaveBalance.year == year,
                LeaveType.is_monetizable.is_(True),
            )
        )
        return to_decimal(total)

    async def monetizable_balance(self, employee_id: UUID, year: int) -> Decimal:
        """Current balance in the year, counting monetizable leave types only."""
        total = await self.session.scalar(
            select(func.coalesce(func.sum(EmployeeLeaveBalance.current_balance), 0))
            .join(LeaveType, LeaveType.leave_type_id == EmployeeLeaveBalance.leave_type_id)
            .where(
                EmployeeLeaveBalance.employee_id == employee_id,
                EmployeeLeaveBalance.year == year,
                LeaveType.is_monetizable.is_(True),
            )
        )
        return to_decimal(total)

    # ----- Cycle items -----

    async def create_benefit_item(
        self,
        cycle_id: UUID,
        employee_id: UUID,
        record_ineligible: bool = False,
        actor: str | None = None,
    ) -> BenefitItem:
        """Calculate and store the cycle's benefit for one employee.

        A second item for the same (cycle, employee) is a ConflictError.
        With record_ineligible, an ineligible employee gets a zero item
        carrying the reason instead of raising CalculationError.
        """
        cycle = await self.get_cycle(cycle_id)
        if cycle.status not in OPEN_CYCLE_STATUSES:
            raise ConflictError(
                f"Benefit cycle {cycle_id} is {cycle.status}; no new items allowed"
            )

        existing = await self.session.scalar(
            select(BenefitItem.item_id).where(
                BenefitItem.cycle_id == cycle_id, BenefitItem.employee_id == employee_id
            )
        )
        if existing is not None:
            raise ConflictError(
                f"Benefit item already exists for employee {employee_id} in cycle {cycle_id}",
                details={"item_id": str(existing)},
            )

        try:
            calc = await self.calculate(
                cycle.benefit_type,
                employee_id,
                as_of=cycle.applicable_date,
                cutoff_date=cycle.cutoff_date or cycle.applicable_date,
            )
            item = BenefitItem(
                cycle_id=cycle_id,
                employee_id=employee_id,
                calculated_amount=calc.amount,
                tax_amount=calc.tax_amount,
                net_amount=calc.net_amount,
                is_eligible=True,
                calculation_basis=calc.basis,
            )
        except CalculationError as e:
            if not record_ineligible:
                raise
            item = BenefitItem(
                cycle_id=cycle_id,
                employee_id=employee_id,
                calculated_amount=ZERO,
                tax_amount=ZERO,
                net_amount=ZERO,
                is_eligible=False,
                eligibility_notes=e.message,
                calculation_basis=e.details,
            )

        try:
            async with self.session.begin_nested():
                self.session.add(item)
                if cycle.status == "Draft":
                    cycle.status = "Processing"
                await self.session.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"Benefit item already exists for employee {employee_id} in cycle {cycle_id}"
            ) from e

        self.emitter.emit(
            BenefitItemCreated(
                metadata=EventMetadata.create(actor=actor),
                cycle_id=cycle_id,
                item_id=item.item_id,
                employee_id=employee_id,
                benefit_type=cycle.benefit_type,
                calculated_amount=item.calculated_amount,
            )
        )
        return item

    async def bulk_calculate(
        self,
        benefit_type: BenefitType | str,
        employee_ids: Iterable[UUID],
        cycle_id: UUID | None = None,
        days_to_monetize: Mapping[UUID, Any] | None = None,
        as_of: date | None = None,
    ) -> BulkCalculationResult:
        """Calculate a benefit for many employees without early abort.

        With a cycle, each success is stored as a BenefitItem. Each
        employee's outcome is Ok(calculation or item) or Err(kind, message).
        """
        btype = parse_benefit_type(benefit_type)
        cycle: BenefitCycle | None = None
        if cycle_id is not None:
            cycle = await self.get_cycle(cycle_id)
            if cycle.benefit_type != btype.value:
                raise ValidationError(
                    f"Cycle {cycle_id} is for {cycle.benefit_type}, not {btype.value}"
                )

        outcome = BulkCalculationResult(benefit_type=btype)
        for employee_id in employee_ids:
            try:
                async with self.session.begin_nested():
                    if cycle_id is not None:
                        value: Any = await self.create_benefit_item(cycle_id, employee_id)
                    else:
                        days = (days_to_monetize or {}).get(employee_id)
                        value = await self.calculate(
                            btype, employee_id, as_of=as_of, days_to_monetize=days
                        )
                outcome.results[employee_id] = Ok(value)
            except Exception as e:
                outcome.results[employee_id] = Err.from_exception(e, employee_id=str(employee_id))
                logger.warning(
                    "%s calculation failed for employee %s: %s", btype.value, employee_id, e
                )

        logger.info(
            "Bulk %s calculation: %d succeeded, %d failed",
            btype.value,
            outcome.success_count,
            outcome.failure_count,
        )
        return outcome

    async def get_eligible_employees(
        self, benefit_type: BenefitType | str, as_of: date | None = None
    ) -> list[UUID]:
        """Active employees who pass the benefit's eligibility gate."""
        btype = parse_benefit_type(benefit_type)
        eligible: list[UUID] = []
        for employee in await self.directory.get_active_employees():
            try:
                await self.calculate(btype, employee.employee_id, as_of=as_of)
            except (CalculationError, ValidationError):
                continue
            eligible.append(employee.employee_id)
        return eligible

    # ----- Ledger payouts -----

    async def process_monetization(
        self,
        employee_id: UUID,
        days_to_monetize: Any,
        processed_by: str,
        notes: str | None = None,
        as_of: date | None = None,
    ) -> CompensationBenefit:
        """Pay out leave days, decrementing balances and writing the ledger atomically."""
        as_of = as_of or date.today()
        calc = await self.calculate(
            BenefitType.MONETIZATION, employee_id, as_of=as_of, days_to_monetize=days_to_monetize
        )

        try:
            async with self.session.begin_nested():
                await self._decrement_monetizable_balance(employee_id, as_of.year, calc.days_used)
                benefit = await self._record_payout(calc, employee_id, processed_by, notes)
        except PayrollError:
            raise
        except SQLAlchemyError as e:
            raise PersistenceError(f"Leave monetization failed: {e}") from e

        logger.info(
            "Monetized %s leave day(s) for employee %s: %s",
            calc.days_used,
            employee_id,
            calc.amount,
        )
        self._emit_payout(benefit, processed_by)
        return benefit

    async def process_terminal_leave(
        self,
        employee_id: UUID,
        processed_by: str,
        notes: str | None = None,
        as_of: date | None = None,
    ) -> CompensationBenefit:
        """Pay the terminal leave benefit once per employee."""
        already = await self.session.scalar(
            select(CompensationBenefit.benefit_id).where(
                CompensationBenefit.employee_id == employee_id,
                CompensationBenefit.benefit_type == BenefitType.TERMINAL_LEAVE.value,
            )
        )
        if already is not None:
            raise ConflictError(
                f"Terminal leave benefit already processed for employee {employee_id}",
                details={"benefit_id": str(already)},
            )
        calc = await self.calculate(BenefitType.TERMINAL_LEAVE, employee_id, as_of=as_of)
        return await self._process_simple(calc, employee_id, processed_by, notes)

    async def process_loyalty_award(
        self,
        employee_id: UUID,
        processed_by: str,
        notes: str | None = None,
        as_of: date | None = None,
    ) -> CompensationBenefit:
        calc = await self.calculate(BenefitType.LOYALTY_AWARD, employee_id, as_of=as_of)
        return await self._process_simple(calc, employee_id, processed_by, notes)

    async def get_ledger(
        self, employee_id: UUID | None = None, benefit_type: BenefitType | str | None = None
    ) -> list[CompensationBenefit]:
        stmt = select(CompensationBenefit).order_by(CompensationBenefit.processed_at.desc())
        if employee_id is not None:
            stmt = stmt.where(CompensationBenefit.employee_id == employee_id)
        if benefit_type is not None:
            stmt = stmt.where(
                CompensationBenefit.benefit_type == parse_benefit_type(benefit_type).value
            )
        return list((await self.session.execute(stmt)).scalars().all())

    # ----- Internals -----

    async def _process_simple(
        self,
        calc: BenefitCalculation,
        employee_id: UUID,
        processed_by: str,
        notes: str | None,
    ) -> CompensationBenefit:
        try:
            async with self.session.begin_nested():
                benefit = await self._record_payout(calc, employee_id, processed_by, notes)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Recording {calc.benefit_type.value} failed: {e}") from e
        logger.info(
            "Processed %s for employee %s: %s", calc.benefit_type.value, employee_id, calc.amount
        )
        self._emit_payout(benefit, processed_by)
        return benefit

    async def _record_payout(
        self,
        calc: BenefitCalculation,
        employee_id: UUID,
        processed_by: str,
        notes: str | None,
    ) -> CompensationBenefit:
        benefit = CompensationBenefit(
            employee_id=employee_id,
            benefit_type=calc.benefit_type.value,
            days_used=calc.days_used,
            amount=calc.amount,
            processed_by=processed_by,
            notes=notes,
        )
        self.session.add(benefit)
        await self.session.flush()
        return benefit

    async def _decrement_monetizable_balance(
        self, employee_id: UUID, year: int, days: Decimal | None
    ) -> None:
        """Take days from monetizable balances, largest first.

        Each row is decremented with a conditional UPDATE so a concurrent
        change to the balance surfaces as a ConflictError.
        """
        remaining = to_decimal(days)
        result = await self.session.execute(
            select(EmployeeLeaveBalance.balance_id, EmployeeLeaveBalance.current_balance)
            .join(LeaveType, LeaveType.leave_type_id == EmployeeLeaveBalance.leave_type_id)
            .where(
                EmployeeLeaveBalance.employee_id == employee_id,
                EmployeeLeaveBalance.year == year,
                LeaveType.is_monetizable.is_(True),
                EmployeeLeaveBalance.current_balance > 0,
            )
            .order_by(EmployeeLeaveBalance.current_balance.desc())
        )
        now = utcnow()
        for balance_id, current in result.all():
            if remaining <= 0:
                break
            take = min(remaining, to_decimal(current))
            updated = await self.session.execute(
                update(EmployeeLeaveBalance)
                .where(
                    EmployeeLeaveBalance.balance_id == balance_id,
                    EmployeeLeaveBalance.current_balance >= take,
                )
                .values(
                    current_balance=EmployeeLeaveBalance.current_balance - take,
                    monetized_days=EmployeeLeaveBalance.monetized_days + take,
                    last_monetized_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 0:
                raise ConflictError(
                    f"Leave balance {balance_id} changed during monetization",
                    details={"balance_id": str(balance_id)},
                )
            remaining -= take

        if remaining > 0:
            raise ConflictError(
                f"Insufficient monetizable leave balance: {remaining} day(s) short",
                details={"employee_id": str(employee_id)},
            )

    def _emit_payout(self, benefit: CompensationBenefit, actor: str) -> None:
        self.emitter.emit(
            CompensationBenefitProcessed(
                metadata=EventMetadata.create(actor=actor),
                benefit_id=benefit.benefit_id,
                employee_id=benefit.employee_id,
                benefit_type=benefit.benefit_type,
                amount=benefit.amount,
                days_used=benefit.days_used,
            )
        )
