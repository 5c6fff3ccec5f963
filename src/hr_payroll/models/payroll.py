"""Payroll period, attendance, pay item, and override models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_payroll.models.base import Base, Days, Money, TimestampMixin, utcnow

if TYPE_CHECKING:
    from hr_payroll.models.employee import Employee


# ===== Payroll Periods =====


class PayrollPeriod(Base, TimestampMixin):
    """Half-month payroll period (1-15 or 16-end of month)."""

    __tablename__ = "payroll_period"

    period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Draft")

    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_basic_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    total_gross_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    total_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    total_net_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)

    reopen_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reopen_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("year", "month", "period_number", name="payroll_period_ymp_unique"),
        CheckConstraint("start_date < end_date", name="payroll_period_dates_check"),
        CheckConstraint("month BETWEEN 1 AND 12", name="payroll_period_month_check"),
        CheckConstraint("period_number IN (1, 2)", name="payroll_period_number_check"),
        CheckConstraint(
            "status IN ('Draft', 'Open', 'Processing', 'Completed', 'Finalized', 'Paid', 'Locked')",
            name="payroll_period_status_check",
        ),
    )

    # Relationships
    items: Mapped[list[PayrollItem]] = relationship(
        back_populates="period", cascade="all, delete-orphan"
    )
    attendance_batches: Mapped[list[AttendanceImportBatch]] = relationship(
        back_populates="period", cascade="all, delete-orphan"
    )

    @property
    def label(self) -> str:
        return f"{self.year}-{self.month:02d} P{self.period_number}"


# ===== Attendance =====


class AttendanceImportBatch(Base):
    """One attendance (DTR) import for a period; the latest active one wins."""

    __tablename__ = "attendance_import_batch"

    batch_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
    )
    imported_by: Mapped[str] = mapped_column(String(100), nullable=False)
    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    row_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_working_days: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index(
            "attendance_batch_one_active_per_period",
            "period_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    # Relationships
    period: Mapped[PayrollPeriod] = relationship(back_populates="attendance_batches")
    records: Mapped[list[AttendanceRecord]] = relationship(
        back_populates="batch", cascade="all, delete-orphan"
    )


class AttendanceRecord(Base):
    """Normalized attendance row for one employee within a batch."""

    __tablename__ = "attendance_record"

    record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    batch_id: Mapped[UUID] = mapped_column(
        ForeignKey("attendance_import_batch.batch_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    working_days: Mapped[Decimal] = mapped_column(Days, nullable=False)
    leave_days: Mapped[Decimal] = mapped_column(Days, nullable=False, default=0)
    overtime_hours: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("batch_id", "employee_id", name="attendance_record_batch_emp_unique"),
        CheckConstraint("working_days >= 0", name="attendance_record_days_check"),
    )

    # Relationships
    batch: Mapped[AttendanceImportBatch] = relationship(back_populates="records")


# ===== Pay Items =====


class PayrollItem(Base, TimestampMixin):
    """Computed pay for one employee in one period."""

    __tablename__ = "payroll_item"

    item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )

    working_days: Mapped[Decimal] = mapped_column(Days, nullable=False, default=0)
    daily_rate: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    basic_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)

    # Breakdowns keyed by allowance/deduction code; amounts stored as strings
    allowances: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    deductions: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    total_allowances: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)

    gsis_employee: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    gsis_employer: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    pagibig_employee: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    pagibig_employer: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    philhealth_employee: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    philhealth_employer: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    withholding_tax: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    other_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    total_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)

    gross_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    net_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)

    proration_reason: Mapped[str] = mapped_column(String(40), nullable=False, default="full_period")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Calculated")
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[str | None] = mapped_column(String(100))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("period_id", "employee_id", name="payroll_item_period_emp_unique"),
        CheckConstraint(
            "status IN ('Calculated', 'Processed', 'Finalized', 'Paid')",
            name="payroll_item_status_check",
        ),
        CheckConstraint("basic_pay >= 0", name="payroll_item_basic_check"),
    )

    # Relationships
    period: Mapped[PayrollPeriod] = relationship(back_populates="items")
    employee: Mapped[Employee] = relationship(back_populates="payroll_items")


# ===== Allowances & Deductions =====


class AllowanceType(Base, TimestampMixin):
    """Allowance definition with its default amount or rate."""

    __tablename__ = "allowance_type"

    allowance_type_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    calculation_type: Mapped[str] = mapped_column(String(20), nullable=False, default="fixed")
    default_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "calculation_type IN ('fixed', 'percentage')",
            name="allowance_type_calc_check",
        ),
    )


class DeductionType(Base, TimestampMixin):
    """Non-statutory deduction definition (loans, dues, cooperative shares)."""

    __tablename__ = "deduction_type"

    deduction_type_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    calculation_type: Mapped[str] = mapped_column(String(20), nullable=False, default="fixed")
    default_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "calculation_type IN ('fixed', 'percentage')",
            name="deduction_type_calc_check",
        ),
    )


class AllowanceOverride(Base, TimestampMixin):
    """Employee-specific allowance amount for a bounded date range."""

    __tablename__ = "allowance_override"

    override_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    allowance_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("allowance_type.allowance_type_id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index(
            "allowance_override_one_active",
            "employee_id",
            "allowance_type_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        CheckConstraint(
            "end_date IS NULL OR end_date >= effective_date",
            name="allowance_override_dates_check",
        ),
        CheckConstraint("amount >= 0", name="allowance_override_amount_check"),
    )

    allowance_type: Mapped[AllowanceType] = relationship()


class DeductionOverride(Base, TimestampMixin):
    """Employee-specific deduction amount for a bounded date range."""

    __tablename__ = "deduction_override"

    override_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    deduction_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("deduction_type.deduction_type_id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index(
            "deduction_override_one_active",
            "employee_id",
            "deduction_type_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        CheckConstraint(
            "end_date IS NULL OR end_date >= effective_date",
            name="deduction_override_dates_check",
        ),
        CheckConstraint("amount >= 0", name="deduction_override_amount_check"),
    )

    deduction_type: Mapped[DeductionType] = relationship()
