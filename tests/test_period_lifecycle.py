"""Integration tests for the payroll period lifecycle."""

from datetime import date

import pytest

from hr_payroll.errors import ConflictError, InvalidTransitionError, ValidationError
from hr_payroll.events import PeriodTransitioned
from hr_payroll.services import PayrollGenerationService, PayrollPeriodService
from hr_payroll.services.period_service import half_month_bounds


@pytest.fixture
async def generated(session, emitter, settings, period, make_employee, import_attendance):
    """Period in Processing with two Calculated items."""
    first = await make_employee()
    second = await make_employee()
    await import_attendance(period, [(first, 10), (second, 11)])
    await PayrollGenerationService(session, emitter, settings=settings).generate(period.period_id)
    return period, first, second


@pytest.fixture
def periods(session, emitter) -> PayrollPeriodService:
    return PayrollPeriodService(session, emitter)


async def _statuses(periods, period_id) -> set[str]:
    return {item.status for item in await periods.get_items(period_id)}


class TestCreatePeriod:
    def test_half_month_bounds(self):
        assert half_month_bounds(2024, 2, 1) == (date(2024, 2, 1), date(2024, 2, 15))
        assert half_month_bounds(2024, 2, 2) == (date(2024, 2, 16), date(2024, 2, 29))

    async def test_defaults(self, periods):
        created = await periods.create_period(2024, 3, 2)
        assert created.status == "Draft"
        assert created.end_date == date(2024, 3, 31)
        assert created.pay_date == created.end_date

    async def test_duplicate_rejected(self, periods, period):
        with pytest.raises(ConflictError, match="already exists"):
            await periods.create_period(2024, 1, 1)

    async def test_invalid_period_number(self, periods):
        with pytest.raises(ValidationError):
            await periods.create_period(2024, 1, 3)

    async def test_open(self, periods, period):
        opened = await periods.open_period(period.period_id)
        assert opened.status == "Open"
        assert periods.can_edit(opened)


class TestFinalize:
    async def test_blocked_by_calculated_item(self, periods, generated):
        period, first, second = generated
        await periods.approve_items(period.period_id, [first.employee_id], actor="supervisor")

        with pytest.raises(InvalidTransitionError) as exc_info:
            await periods.finalize_period(period.period_id)

        err = exc_info.value
        assert "1 payroll item(s) not yet approved" in err.message
        assert len(err.blocking) == 1
        assert str(second.employee_id) in err.blocking[0]
        assert "Calculated" in err.blocking[0]
        assert period.status == "Processing"

    async def test_finalize_freezes_items(self, periods, generated):
        period, _, _ = generated
        approved = await periods.approve_items(period.period_id, actor="supervisor")
        assert len(approved) == 2

        finalized = await periods.finalize_period(period.period_id)

        assert finalized.status == "Finalized"
        assert finalized.finalized_at is not None
        assert await _statuses(periods, period.period_id) == {"Finalized"}

    async def test_completed_checkpoint(self, periods, generated):
        period, _, _ = generated
        await periods.approve_items(period.period_id)

        await periods.complete_period(period.period_id)
        assert period.status == "Completed"
        await periods.finalize_period(period.period_id)
        assert period.status == "Finalized"

    async def test_approve_requires_processing(self, periods, period):
        with pytest.raises(ConflictError, match="only be approved"):
            await periods.approve_items(period.period_id)


class TestPaymentAndLock:
    async def _finalize(self, periods, period):
        await periods.approve_items(period.period_id)
        await periods.finalize_period(period.period_id)

    async def test_bulk_mark_paid_and_lock(self, periods, generated, recorder):
        period, _, _ = generated
        await self._finalize(periods, period)

        await periods.mark_paid(period.period_id, actor="cashier")
        assert period.status == "Paid"
        assert await _statuses(periods, period.period_id) == {"Paid"}

        await periods.lock_period(period.period_id)
        assert period.status == "Locked"

        transitions = [(e.from_status, e.to_status) for e in recorder.of_type(PeriodTransitioned)]
        assert transitions[-3:] == [
            ("Processing", "Finalized"),
            ("Finalized", "Paid"),
            ("Paid", "Locked"),
        ]

    async def test_per_item_payment(self, periods, generated):
        period, first, second = generated
        await self._finalize(periods, period)

        await periods.mark_paid(period.period_id, [first.employee_id])
        assert period.status == "Finalized"
        assert await _statuses(periods, period.period_id) == {"Finalized", "Paid"}

        await periods.mark_paid(period.period_id, [second.employee_id])
        assert period.status == "Paid"

    async def test_cannot_pay_before_finalize(self, periods, generated):
        period, first, _ = generated
        with pytest.raises(InvalidTransitionError):
            await periods.mark_paid(period.period_id, [first.employee_id])

    async def test_lock_requires_paid(self, periods, generated):
        period, _, _ = generated
        await self._finalize(periods, period)
        with pytest.raises(InvalidTransitionError):
            await periods.lock_period(period.period_id)


class TestReopen:
    async def test_reopen_finalized(self, periods, generated):
        period, _, _ = generated
        await periods.approve_items(period.period_id)
        await periods.finalize_period(period.period_id)

        reopened = await periods.reopen_period(period.period_id, reason="Corrected DTR")

        assert reopened.status == "Processing"
        assert reopened.reopen_count == 1
        assert reopened.last_reopen_reason == "Corrected DTR"
        assert await _statuses(periods, period.period_id) == {"Processed"}

    async def test_reason_required(self, periods, generated):
        period, _, _ = generated
        await periods.approve_items(period.period_id)
        await periods.finalize_period(period.period_id)

        with pytest.raises(InvalidTransitionError, match="Reopen requires a reason"):
            await periods.reopen_period(period.period_id, reason="")

    async def test_locked_cannot_reopen(self, periods, generated):
        period, _, _ = generated
        await periods.approve_items(period.period_id)
        await periods.finalize_period(period.period_id)
        await periods.mark_paid(period.period_id)
        await periods.lock_period(period.period_id)

        with pytest.raises(InvalidTransitionError, match="Locked periods cannot be reopened"):
            await periods.reopen_period(period.period_id, reason="Late adjustment")


class TestCancel:
    async def test_cancel_discards_items(self, periods, generated):
        period, _, _ = generated

        await periods.cancel_processing(period.period_id)

        assert period.status == "Draft"
        assert await periods.get_items(period.period_id) == []
        assert period.employee_count == 0
        assert period.total_net_pay == 0
