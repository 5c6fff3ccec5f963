"""Pytest fixtures for HR payroll tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, AsyncGenerator, Awaitable, Callable
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll.config import Settings
from hr_payroll.database import Database
from hr_payroll.events import EventEmitter, RecordingHandler
from hr_payroll.models import (
    AllowanceType,
    DeductionType,
    Employee,
    EmployeeLeaveBalance,
    LeaveType,
    PayrollPeriod,
)
from hr_payroll.services import AttendanceStore, PayrollPeriodService

# In-memory SQLite with SAVEPOINT support; one fresh database per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        engine_version="test",
        echo_sql=False,
        pool_size=1,
        max_overflow=0,
        log_level="DEBUG",
        standard_working_days=22,
        prorate_weekdays_only=False,
    )


@pytest.fixture
async def database() -> AsyncGenerator[Database, None]:
    """Create test database with all tables."""
    db = Database.from_url(TEST_DATABASE_URL)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with database.session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def recorder() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def emitter(recorder: RecordingHandler) -> EventEmitter:
    emitter = EventEmitter()
    emitter.on_all(recorder)
    return emitter


EmployeeFactory = Callable[..., Awaitable[Employee]]


@pytest.fixture
def make_employee(session: AsyncSession) -> EmployeeFactory:
    """Factory for employees; keyword arguments override the defaults."""

    async def _make(**overrides: Any) -> Employee:
        values: dict[str, Any] = {
            "employee_number": f"EMP-{uuid4().hex[:8]}",
            "first_name": "Juan",
            "last_name": "Dela Cruz",
            "employment_status": "Active",
            "appointment_date": date(2020, 1, 6),
            "current_monthly_salary": Decimal("22000.00"),
            "highest_monthly_salary": Decimal("22000.00"),
            "salary_grade": 11,
            "step_increment": 1,
        }
        values.update(overrides)
        employee = Employee(**values)
        session.add(employee)
        await session.flush()
        return employee

    return _make


@pytest.fixture
async def period(session: AsyncSession) -> PayrollPeriod:
    """Draft period for 2024-01, days 1 to 15."""
    return await PayrollPeriodService(session).create_period(2024, 1, 1, created_by="hr")


@pytest.fixture
def import_attendance(session: AsyncSession, emitter: EventEmitter):
    """Import attendance rows given as (employee, working_days) pairs."""

    async def _import(period: PayrollPeriod, entries: list[tuple[Employee, Any]]):
        rows = [
            {"employee_id": employee.employee_id, "working_days": Decimal(str(days))}
            for employee, days in entries
        ]
        return await AttendanceStore(session, emitter).import_batch(
            period.period_id, rows, imported_by="hr"
        )

    return _import


@pytest.fixture
async def leave_types(session: AsyncSession) -> dict[str, LeaveType]:
    """Vacation leave is monetizable; special privilege leave is not."""
    vacation = LeaveType(code="VL", name="Vacation Leave", is_monetizable=True)
    special = LeaveType(code="SPL", name="Special Privilege Leave", is_monetizable=False)
    session.add_all([vacation, special])
    await session.flush()
    return {"VL": vacation, "SPL": special}


@pytest.fixture
def add_leave_balance(session: AsyncSession):
    async def _add(
        employee: Employee,
        leave_type: LeaveType,
        earned: Any,
        balance: Any | None = None,
        year: int = 2024,
    ) -> EmployeeLeaveBalance:
        row = EmployeeLeaveBalance(
            employee_id=employee.employee_id,
            leave_type_id=leave_type.leave_type_id,
            year=year,
            earned_days=Decimal(str(earned)),
            current_balance=Decimal(str(earned if balance is None else balance)),
        )
        session.add(row)
        await session.flush()
        return row

    return _add


@pytest.fixture
async def loan_deduction(session: AsyncSession) -> DeductionType:
    """Fixed deduction with no default amount; only overrides apply."""
    loan = DeductionType(code="LOAN", name="Salary Loan", calculation_type="fixed", default_amount=0)
    session.add(loan)
    await session.flush()
    return loan


@pytest.fixture
async def pera_allowance(session: AsyncSession) -> AllowanceType:
    """Non-taxable fixed allowance with no default amount."""
    pera = AllowanceType(
        code="PERA",
        name="Personnel Economic Relief Allowance",
        calculation_type="fixed",
        default_amount=0,
        is_taxable=False,
    )
    session.add(pera)
    await session.flush()
    return pera
