"""Employee directory and leave balance models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_payroll.models.base import Base, Days, Money, TimestampMixin

if TYPE_CHECKING:
    from hr_payroll.models.payroll import PayrollItem


class Employee(Base, TimestampMixin):
    """Employee record as exposed by the HR directory."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    employment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Active"
    )
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    separation_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    current_monthly_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    current_daily_rate: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    highest_monthly_salary: Mapped[Decimal | None] = mapped_column(Money, nullable=True)

    salary_grade: Mapped[int | None] = mapped_column(Integer, nullable=True)
    step_increment: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_step_increment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "employment_status IN ('Active', 'OnLeave', 'Resigned', 'Retired', 'Terminated')",
            name="employee_status_check",
        ),
        CheckConstraint("step_increment BETWEEN 1 AND 8", name="employee_step_check"),
        CheckConstraint("current_monthly_salary >= 0", name="employee_salary_check"),
        CheckConstraint(
            "separation_date IS NULL OR separation_date >= appointment_date",
            name="employee_dates_check",
        ),
    )

    # Relationships
    payroll_items: Mapped[list[PayrollItem]] = relationship(back_populates="employee")
    leave_balances: Mapped[list[EmployeeLeaveBalance]] = relationship(
        back_populates="employee"
    )

    @property
    def full_name(self) -> str:
        """Get full name."""
        return f"{self.first_name} {self.last_name}"


class LeaveType(Base, TimestampMixin):
    """Leave type; only monetizable types count toward cash conversions."""

    __tablename__ = "leave_type"

    leave_type_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_monetizable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class EmployeeLeaveBalance(Base, TimestampMixin):
    """Yearly leave balance per employee and leave type."""

    __tablename__ = "employee_leave_balance"

    balance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("leave_type.leave_type_id", ondelete="RESTRICT"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    earned_days: Mapped[Decimal] = mapped_column(Days, nullable=False, default=0)
    used_days: Mapped[Decimal] = mapped_column(Days, nullable=False, default=0)
    monetized_days: Mapped[Decimal] = mapped_column(Days, nullable=False, default=0)
    current_balance: Mapped[Decimal] = mapped_column(Days, nullable=False, default=0)
    last_monetized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "leave_type_id", "year", name="leave_balance_emp_type_year_unique"
        ),
        CheckConstraint("current_balance >= 0", name="leave_balance_nonnegative_check"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="leave_balances")
    leave_type: Mapped[LeaveType] = relationship()
