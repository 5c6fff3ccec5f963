"""Tests for allowance and deduction overrides."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from hr_payroll.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from hr_payroll.events import OverrideChanged
from hr_payroll.services import OverrideService


def _request(employee, type_id, amount="500", **extra):
    data = {
        "employee_id": employee.employee_id,
        "type_id": type_id,
        "amount": amount,
        "effective_date": date(2024, 1, 1),
        "created_by": "hr",
    }
    data.update(extra)
    return data


class TestCreate:
    async def test_create_and_lookup(self, session, emitter, recorder, make_employee, pera_allowance):
        employee = await make_employee()
        service = OverrideService(session, emitter)

        override = await service.create_allowance_override(
            _request(employee, pera_allowance.allowance_type_id)
        )

        found = await service.get_active_allowance_override(
            employee.employee_id, pera_allowance.allowance_type_id
        )
        assert found.override_id == override.override_id
        assert recorder.of_type(OverrideChanged)[0].action == "created"

    async def test_second_active_override_conflicts(self, session, make_employee, loan_deduction):
        employee = await make_employee()
        service = OverrideService(session)
        await service.create_deduction_override(_request(employee, loan_deduction.deduction_type_id))

        with pytest.raises(ConflictError, match="already exists"):
            await service.create_deduction_override(
                _request(employee, loan_deduction.deduction_type_id, amount="900")
            )

    async def test_deactivate_then_create(self, session, make_employee, loan_deduction):
        employee = await make_employee()
        service = OverrideService(session)
        first = await service.create_deduction_override(
            _request(employee, loan_deduction.deduction_type_id)
        )

        await service.deactivate_deduction_override(first.override_id, actor="hr")
        second = await service.create_deduction_override(
            _request(employee, loan_deduction.deduction_type_id, amount="900")
        )

        assert first.is_active is False
        assert first.deactivated_at is not None
        assert second.is_active is True

    async def test_replace(self, session, make_employee, pera_allowance):
        employee = await make_employee()
        service = OverrideService(session)
        first = await service.create_allowance_override(
            _request(employee, pera_allowance.allowance_type_id)
        )

        replacement = await service.replace_allowance_override(
            _request(employee, pera_allowance.allowance_type_id, amount="2000")
        )

        assert replacement.override_id != first.override_id
        active = await service.get_active_allowance_override(
            employee.employee_id, pera_allowance.allowance_type_id
        )
        assert active.amount == Decimal("2000.00")

    async def test_failed_replace_keeps_previous_override(
        self, session, make_employee, pera_allowance, monkeypatch
    ):
        employee = await make_employee()
        service = OverrideService(session)
        first = await service.create_allowance_override(
            _request(employee, pera_allowance.allowance_type_id)
        )

        async def failing_create(kind, data):
            raise PersistenceError("insert failed")

        monkeypatch.setattr(service, "_create", failing_create)
        with pytest.raises(PersistenceError):
            await service.replace_allowance_override(
                _request(employee, pera_allowance.allowance_type_id, amount="2000")
            )

        active = await service.get_active_allowance_override(
            employee.employee_id, pera_allowance.allowance_type_id
        )
        assert active.override_id == first.override_id
        assert active.deactivated_at is None

    async def test_replace_for_unknown_type(self, session, make_employee):
        employee = await make_employee()
        with pytest.raises(NotFoundError):
            await OverrideService(session).replace_deduction_override(_request(employee, uuid4()))

    async def test_invalid_date_range(self, session, make_employee, pera_allowance):
        employee = await make_employee()
        with pytest.raises(ValidationError):
            await OverrideService(session).create_allowance_override(
                _request(
                    employee,
                    pera_allowance.allowance_type_id,
                    effective_date=date(2024, 2, 1),
                    end_date=date(2024, 1, 1),
                )
            )

    async def test_negative_amount(self, session, make_employee, pera_allowance):
        employee = await make_employee()
        with pytest.raises(ValidationError):
            await OverrideService(session).create_allowance_override(
                _request(employee, pera_allowance.allowance_type_id, amount="-1")
            )

    async def test_unknown_type(self, session, make_employee):
        employee = await make_employee()
        with pytest.raises(NotFoundError):
            await OverrideService(session).create_allowance_override(_request(employee, uuid4()))


class TestResolution:
    async def test_only_overrides_in_effect(self, session, make_employee, pera_allowance):
        current = await make_employee()
        expired = await make_employee()
        service = OverrideService(session)
        await service.create_allowance_override(
            _request(current, pera_allowance.allowance_type_id, amount="1000")
        )
        await service.create_allowance_override(
            _request(
                expired,
                pera_allowance.allowance_type_id,
                amount="1000",
                effective_date=date(2023, 1, 1),
                end_date=date(2023, 12, 31),
            )
        )

        active = await service.load_active_overrides(date(2024, 1, 15))

        type_id = pera_allowance.allowance_type_id
        assert active.allowance(current.employee_id, type_id) == Decimal("1000.00")
        assert active.allowance(expired.employee_id, type_id) is None
        assert active.deduction(current.employee_id, type_id) is None
