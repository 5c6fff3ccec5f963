"""Tests for the periodic step-increment run."""

from datetime import date

from hr_payroll.events import StepIncrementApplied
from hr_payroll.services import SqlEmployeeDirectory, StepIncrementService

EVALUATION = date(2024, 3, 31)


async def test_applies_due_increments(session, emitter, recorder, make_employee):
    due = await make_employee(appointment_date=date(2021, 3, 10), step_increment=2)
    recent = await make_employee(
        appointment_date=date(2015, 3, 1),
        step_increment=4,
        last_step_increment_date=date(2023, 3, 1),
    )
    capped = await make_employee(appointment_date=date(1990, 3, 1), step_increment=8)
    other_month = await make_employee(appointment_date=date(2020, 7, 1))

    service = StepIncrementService(session, SqlEmployeeDirectory(session), emitter)
    run = await service.process(EVALUATION, actor="hr")

    assert run.applied == [due.employee_id]
    assert due.step_increment == 3
    assert due.last_step_increment_date == EVALUATION
    assert recent.step_increment == 4
    assert capped.step_increment == 8
    assert other_month.step_increment == 1
    assert dict(run.not_eligible) == {
        "insufficient_tenure": 1,
        "max_step_reached": 1,
        "not_anniversary_month": 1,
    }
    assert run.failures == {}

    events = recorder.of_type(StepIncrementApplied)
    assert [(e.from_step, e.to_step) for e in events] == [(2, 3)]


async def test_separated_employees_are_not_evaluated(session, make_employee):
    await make_employee(
        appointment_date=date(2021, 3, 10),
        employment_status="Resigned",
        separation_date=date(2024, 1, 31),
    )

    run = await StepIncrementService(session, SqlEmployeeDirectory(session)).process(EVALUATION)

    assert run.applied == []
    assert not run.not_eligible
