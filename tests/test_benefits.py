"""Integration tests for the benefits service."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from hr_payroll.calculators.types import BenefitType
from hr_payroll.errors import CalculationError, ConflictError, PersistenceError, ValidationError
from hr_payroll.events import BenefitItemCreated, CompensationBenefitProcessed
from hr_payroll.models import CompensationBenefit, EmployeeLeaveBalance
from hr_payroll.result import Err, Ok
from hr_payroll.services import BenefitsService

AS_OF = date(2024, 6, 30)


@pytest.fixture
def benefits(session, emitter) -> BenefitsService:
    return BenefitsService(session, emitter)


@pytest.fixture
async def pbb_cycle(benefits):
    return await benefits.create_cycle(
        BenefitType.PERFORMANCE_BONUS,
        2024,
        applicable_date=date(2024, 5, 15),
        cutoff_date=date(2024, 5, 15),
        created_by="hr",
    )


async def _balance(session, row: EmployeeLeaveBalance) -> Decimal:
    return await session.scalar(
        select(EmployeeLeaveBalance.current_balance).where(
            EmployeeLeaveBalance.balance_id == row.balance_id
        )
    )


class TestCalculate:
    async def test_bonus(self, benefits, make_employee):
        employee = await make_employee(current_monthly_salary=Decimal("30000"))

        calc = await benefits.calculate(BenefitType.YEAR_END_BONUS, employee.employee_id, as_of=AS_OF)

        assert calc.amount == Decimal("30000.00")
        assert calc.tax_amount == Decimal("3000.00")
        assert calc.basis["service_months"] > 4

    async def test_unknown_type(self, benefits, make_employee):
        employee = await make_employee()
        with pytest.raises(ValidationError, match="Unknown benefit type"):
            await benefits.calculate("HAZARD_PAY", employee.employee_id)

    async def test_gsis_payout_uses_years_of_service(self, benefits, make_employee):
        employee = await make_employee(
            appointment_date=date(2014, 6, 1), current_monthly_salary=Decimal("20000")
        )
        calc = await benefits.calculate(BenefitType.GSIS_PAYOUT, employee.employee_id, as_of=AS_OF)
        assert calc.amount == Decimal("18000.00")

    async def test_loyalty_award(self, benefits, make_employee):
        employee = await make_employee(appointment_date=date(2009, 1, 1))
        calc = await benefits.calculate(BenefitType.LOYALTY_AWARD, employee.employee_id, as_of=AS_OF)
        assert calc.amount == Decimal("15000.00")

    async def test_monetization_requires_days(self, benefits, make_employee):
        employee = await make_employee()
        with pytest.raises(ValidationError, match="not specified"):
            await benefits.calculate(BenefitType.MONETIZATION, employee.employee_id, as_of=AS_OF)


class TestMonetizableLeaveOnly:
    async def test_terminal_leave_counts_monetizable_leave_only(
        self, benefits, make_employee, leave_types, add_leave_balance
    ):
        employee = await make_employee(
            employment_status="Retired",
            separation_date=date(2024, 6, 1),
            highest_monthly_salary=Decimal("22000"),
        )
        await add_leave_balance(employee, leave_types["VL"], 5)
        await add_leave_balance(employee, leave_types["SPL"], 100)

        calc = await benefits.calculate(BenefitType.TERMINAL_LEAVE, employee.employee_id, as_of=AS_OF)

        assert calc.days_used == Decimal("5")
        assert calc.amount == Decimal("5000.00")

    async def test_terminal_leave_requires_separation(
        self, benefits, make_employee, leave_types, add_leave_balance
    ):
        employee = await make_employee()
        await add_leave_balance(employee, leave_types["VL"], 5)

        with pytest.raises(CalculationError):
            await benefits.calculate(BenefitType.TERMINAL_LEAVE, employee.employee_id, as_of=AS_OF)

    async def test_terminal_leave_processed_once(
        self, benefits, make_employee, leave_types, add_leave_balance
    ):
        employee = await make_employee(employment_status="Resigned", separation_date=date(2024, 6, 1))
        await add_leave_balance(employee, leave_types["VL"], 5)

        await benefits.process_terminal_leave(employee.employee_id, "hr", as_of=AS_OF)
        with pytest.raises(ConflictError, match="already processed"):
            await benefits.process_terminal_leave(employee.employee_id, "hr", as_of=AS_OF)


class TestMonetization:
    async def test_decrements_balance_and_writes_ledger(
        self, session, benefits, recorder, make_employee, leave_types, add_leave_balance
    ):
        employee = await make_employee()
        vacation = await add_leave_balance(employee, leave_types["VL"], 5)
        special = await add_leave_balance(employee, leave_types["SPL"], 100)

        benefit = await benefits.process_monetization(employee.employee_id, 10, "hr", as_of=AS_OF)

        assert benefit.days_used == Decimal("5")
        assert benefit.amount == Decimal("5000.00")
        assert await _balance(session, vacation) == Decimal("0")
        assert await _balance(session, special) == Decimal("100")
        assert len(recorder.of_type(CompensationBenefitProcessed)) == 1

    async def test_ledger_failure_leaves_balance_untouched(
        self, session, benefits, make_employee, leave_types, add_leave_balance
    ):
        employee = await make_employee()
        vacation = await add_leave_balance(employee, leave_types["VL"], 5)

        with pytest.raises(PersistenceError):
            await benefits.process_monetization(employee.employee_id, 3, None, as_of=AS_OF)

        assert await _balance(session, vacation) == Decimal("5")
        ledger_rows = await session.scalar(select(func.count()).select_from(CompensationBenefit))
        assert ledger_rows == 0

    async def test_zero_balance(self, benefits, make_employee, leave_types, add_leave_balance):
        employee = await make_employee()
        await add_leave_balance(employee, leave_types["SPL"], 100)

        with pytest.raises(CalculationError, match="balance is zero"):
            await benefits.process_monetization(employee.employee_id, 3, "hr", as_of=AS_OF)


class TestCycles:
    async def test_one_off_types_have_no_cycle(self, benefits):
        with pytest.raises(ValidationError):
            await benefits.create_cycle(BenefitType.MONETIZATION, 2024, date(2024, 5, 15))

    async def test_create_item(self, benefits, recorder, pbb_cycle, make_employee):
        employee = await make_employee(current_monthly_salary=Decimal("25000"))

        item = await benefits.create_benefit_item(pbb_cycle.cycle_id, employee.employee_id)

        assert item.calculated_amount == Decimal("25000.00")
        assert item.is_eligible is True
        assert pbb_cycle.status == "Processing"
        assert recorder.of_type(BenefitItemCreated)[0].item_id == item.item_id

    async def test_duplicate_item(self, benefits, pbb_cycle, make_employee):
        employee = await make_employee()
        await benefits.create_benefit_item(pbb_cycle.cycle_id, employee.employee_id)

        with pytest.raises(ConflictError, match="already exists"):
            await benefits.create_benefit_item(pbb_cycle.cycle_id, employee.employee_id)

    async def test_record_ineligible(self, benefits, pbb_cycle, make_employee):
        employee = await make_employee(appointment_date=date(2024, 4, 1))

        item = await benefits.create_benefit_item(
            pbb_cycle.cycle_id, employee.employee_id, record_ineligible=True
        )

        assert item.is_eligible is False
        assert item.calculated_amount == Decimal("0")
        assert "Insufficient service" in item.eligibility_notes

    async def test_completed_cycle_is_closed(self, benefits, pbb_cycle, make_employee):
        employee = await make_employee()
        await benefits.complete_cycle(pbb_cycle.cycle_id)

        with pytest.raises(ConflictError):
            await benefits.create_benefit_item(pbb_cycle.cycle_id, employee.employee_id)


class TestBulk:
    async def test_failure_is_isolated(self, benefits, pbb_cycle, make_employee):
        first = await make_employee()
        newcomer = await make_employee(appointment_date=date(2024, 4, 1))
        third = await make_employee()

        outcome = await benefits.bulk_calculate(
            BenefitType.PERFORMANCE_BONUS,
            [first.employee_id, newcomer.employee_id, third.employee_id],
            cycle_id=pbb_cycle.cycle_id,
        )

        assert outcome.success_count == 2
        assert outcome.failure_count == 1
        assert isinstance(outcome.results[first.employee_id], Ok)
        assert isinstance(outcome.results[third.employee_id], Ok)
        failure = outcome.results[newcomer.employee_id]
        assert isinstance(failure, Err)
        assert failure.kind == "calculation"
        assert outcome.total_amount == Decimal("44000.00")
        assert len(await benefits.get_cycle_items(pbb_cycle.cycle_id)) == 2

    async def test_monetization_days_per_employee(
        self, benefits, make_employee, leave_types, add_leave_balance
    ):
        first = await make_employee()
        second = await make_employee()
        await add_leave_balance(first, leave_types["VL"], 10)
        await add_leave_balance(second, leave_types["VL"], 10)

        outcome = await benefits.bulk_calculate(
            BenefitType.MONETIZATION,
            [first.employee_id, second.employee_id],
            days_to_monetize={first.employee_id: 2},
            as_of=AS_OF,
        )

        assert outcome.results[first.employee_id].value.amount == Decimal("2000.00")
        assert outcome.results[second.employee_id].kind == "validation"

    async def test_cycle_type_mismatch_fails_outright(self, benefits, pbb_cycle, make_employee):
        employee = await make_employee()
        with pytest.raises(ValidationError):
            await benefits.bulk_calculate(
                BenefitType.YEAR_END_BONUS, [employee.employee_id], cycle_id=pbb_cycle.cycle_id
            )

    async def test_eligible_employees(self, benefits, make_employee):
        veteran = await make_employee(appointment_date=date(2010, 1, 1))
        await make_employee(appointment_date=date(2020, 1, 1))

        eligible = await benefits.get_eligible_employees(BenefitType.LOYALTY_AWARD, as_of=AS_OF)

        assert eligible == [veteran.employee_id]
