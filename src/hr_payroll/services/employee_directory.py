"""Employee directory lookups used by payroll and benefits."""

from __future__ import annotations

from datetime import date
from typing import Protocol, Sequence
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll.calculators.types import EmploymentStatus
from hr_payroll.errors import NotFoundError
from hr_payroll.models import Employee


class EmployeeDirectory(Protocol):
    """Read access to employee records owned by the HR directory."""

    async def get_active_employees(
        self, separated_since: date | None = None
    ) -> Sequence[Employee]:
        ...

    async def get_employee(self, employee_id: UUID) -> Employee:
        ...


class SqlEmployeeDirectory:
    """Directory backed by the local employee table."""

    # On-leave employees still draw pay for the period
    PAYROLL_STATUSES = (EmploymentStatus.ACTIVE.value, EmploymentStatus.ON_LEAVE.value)

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active_employees(
        self, separated_since: date | None = None
    ) -> Sequence[Employee]:
        """Employees on payroll.

        With ``separated_since``, employees who left on or after that date
        are included so their final partial period can be prorated.
        """
        condition = Employee.employment_status.in_(self.PAYROLL_STATUSES)
        if separated_since is not None:
            condition = or_(
                condition,
                and_(
                    Employee.separation_date.is_not(None),
                    Employee.separation_date >= separated_since,
                ),
            )
        result = await self.session.execute(
            select(Employee)
            .where(condition)
            .order_by(Employee.employee_number)
        )
        return result.scalars().all()

    async def get_employee(self, employee_id: UUID) -> Employee:
        """Load an employee, raising NotFoundError when absent."""
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        return employee

    async def get_employees(self, employee_ids: Sequence[UUID]) -> dict[UUID, Employee]:
        if not employee_ids:
            return {}
        result = await self.session.execute(
            select(Employee).where(Employee.employee_id.in_(list(employee_ids)))
        )
        return {e.employee_id: e for e in result.scalars().all()}
